#!/usr/bin/env python3

import dataclasses
import os
import types
import yaml
from rifxlib.core import errors
from rifxlib.core import registry

#============================================

LIMIT_POLICIES = ('warn', 'fail')
MERGE_MODES = ('lenient', 'strict')
TIME_RANGE_POLICIES = ('report', 'clamp', 'fail')
TRACK_LAYOUTS = ('bucketed', 'flat')

MAX_CONFIG_FILE_SIZE = 10 ** 6

DEFAULT_MERGE_FIELD_DEFAULTS = types.MappingProxyType({
	'title': 'Main Title',
	'subtitle': 'Subtitle',
	'company': 'Your Company',
	'tagline': 'Your Tagline',
	'description': 'Description text here',
})

#============================================

def _frozen(mapping) -> types.MappingProxyType:
	return types.MappingProxyType(dict(mapping))

#============================================

@dataclasses.dataclass(frozen=True)
class ParseConfig():
	"""
	Immutable settings for one or more conversions.

	Built once and passed to the scanner, extractors, builder, resolver and
	compiler. Use with_overrides() to derive a variant.
	"""
	# limits
	max_file_size: int = 100 * 1024 * 1024
	max_analysis_size: int = 10 * 1024 * 1024
	timeout_seconds: float = 30.0
	root_search_window: int = 16
	max_compositions: int = 100
	max_layers: int = 1000
	max_keyframes: int = 50
	# composition defaults
	default_width: int = 1920
	default_height: int = 1080
	default_fps: float = 24.0
	default_duration: float = 10.0
	default_background: str = '#000000'
	# layer defaults
	layer_start: float = 0.0
	layer_duration: float = 5.0
	layer_opacity: float = 100.0
	layer_position: tuple = (960.0, 540.0)
	layer_scale: tuple = (100.0, 100.0)
	layer_rotation: float = 0.0
	# text defaults
	font_size: float = 48.0
	font_family: str = 'Arial'
	text_color: str = '#ffffff'
	# policies
	limit_policy: str = 'warn'
	merge_mode: str = 'lenient'
	time_range_policy: str = 'report'
	track_layout: str = 'bucketed'
	analysis_method: registry.AnalysisMethod = registry.AnalysisMethod.BINARY_HEURISTIC
	# tables
	signatures: types.MappingProxyType = dataclasses.field(
		default_factory=lambda: registry.DEFAULT_SIGNATURES)
	layer_type_map: types.MappingProxyType = dataclasses.field(
		default_factory=lambda: registry.DEFAULT_LAYER_TYPE_MAP)
	asset_type_map: types.MappingProxyType = dataclasses.field(
		default_factory=lambda: registry.DEFAULT_ASSET_TYPE_MAP)
	interpolation_map: types.MappingProxyType = dataclasses.field(
		default_factory=lambda: registry.DEFAULT_INTERPOLATION_MAP)
	track_priority: types.MappingProxyType = dataclasses.field(
		default_factory=lambda: registry.DEFAULT_TRACK_PRIORITY)
	merge_field_defaults: types.MappingProxyType = dataclasses.field(
		default_factory=lambda: DEFAULT_MERGE_FIELD_DEFAULTS)
	background_keywords: tuple = ('background', 'fondo')
	template_name: str = 'Generated Template'

	#============================
	def __post_init__(self):
		# callers may hand in plain dicts or lists; store read-only copies
		for name in ('signatures', 'layer_type_map', 'asset_type_map',
			'interpolation_map', 'track_priority', 'merge_field_defaults'):
			value = getattr(self, name)
			if not isinstance(value, types.MappingProxyType):
				object.__setattr__(self, name, _frozen(value))
		for name in ('layer_position', 'layer_scale', 'background_keywords'):
			object.__setattr__(self, name, tuple(getattr(self, name)))
		if isinstance(self.analysis_method, str):
			object.__setattr__(self, 'analysis_method',
				_parse_analysis_method(self.analysis_method))
		validate_config(self)

	#============================
	def with_overrides(self, **changes):
		return dataclasses.replace(self, **changes)

	#============================
	def type_mapper(self) -> registry.TypeMapper:
		return registry.TypeMapper.from_config(self)

#============================================

def _parse_analysis_method(raw_value) -> registry.AnalysisMethod:
	try:
		return registry.AnalysisMethod(str(raw_value))
	except ValueError:
		raise errors.ConfigError(f"unknown analysis method: {raw_value}",
			setting='analysis_method') from None

#============================================

def validate_config(config: ParseConfig) -> None:
	problems = []
	if config.default_width <= 0:
		problems.append('default width must be positive')
	if config.default_height <= 0:
		problems.append('default height must be positive')
	if config.default_fps <= 0:
		problems.append('default fps must be positive')
	if config.default_duration <= 0:
		problems.append('default duration must be positive')
	for name in ('max_file_size', 'max_analysis_size', 'max_compositions',
		'max_layers', 'max_keyframes', 'root_search_window'):
		if getattr(config, name) <= 0:
			problems.append(f"{name} must be positive")
	if config.timeout_seconds <= 0:
		problems.append('timeout_seconds must be positive')
	if len(config.layer_position) != 2 or len(config.layer_scale) != 2:
		problems.append('layer position and scale defaults must be [x, y]')
	choices = (
		('limit_policy', LIMIT_POLICIES),
		('merge_mode', MERGE_MODES),
		('time_range_policy', TIME_RANGE_POLICIES),
		('track_layout', TRACK_LAYOUTS),
	)
	for name, allowed in choices:
		if getattr(config, name) not in allowed:
			problems.append(f"{name} must be one of {', '.join(allowed)}")
	for tag, role in config.signatures.items():
		if not isinstance(tag, bytes) or len(tag) != 4:
			problems.append(f"signature {tag!r} must be 4 bytes")
		if not isinstance(role, registry.ChunkRole):
			problems.append(f"signature {tag!r} has no chunk role")
	if registry.ROOT_TAG not in config.signatures:
		problems.append('signatures must include the RIFX root tag')
	for name in ('layer_type_map', 'asset_type_map', 'interpolation_map'):
		if 'unknown' not in getattr(config, name):
			problems.append(f"{name} requires an 'unknown' fallback entry")
	for canonical in config.layer_type_map.values():
		if canonical not in registry.LAYER_TYPES:
			problems.append(f"layer type map target {canonical} is not a layer type")
	for canonical in config.asset_type_map.values():
		if canonical not in registry.ASSET_TYPES:
			problems.append(f"asset type map target {canonical} is not an asset type")
	if len(problems) > 0:
		raise errors.ConfigError("invalid configuration: " + "; ".join(problems),
			problems=problems)

#============================================

class ConfigLoader():
	"""
	Read a ParseConfig from YAML, then apply RIFX_* environment overrides.
	"""
	def __init__(self, yaml_file: str = None, environ: dict = None):
		self.yaml_file = yaml_file
		self.environ = environ if environ is not None else os.environ

	#============================
	def load(self) -> ParseConfig:
		data = {}
		if self.yaml_file is not None:
			data = self._load_yaml()
		settings = {}
		settings.update(self._parse_limits(data.get('limits', {})))
		settings.update(self._parse_defaults(data.get('defaults', {})))
		settings.update(self._parse_policies(data.get('policies', {})))
		settings.update(self._parse_tables(data))
		if data.get('analysis_method') is not None:
			settings['analysis_method'] = _parse_analysis_method(data['analysis_method'])
		if data.get('template_name') is not None:
			settings['template_name'] = str(data['template_name'])
		settings.update(self._parse_environment())
		return ParseConfig(**settings)

	#============================
	def _load_yaml(self) -> dict:
		file_size = os.path.getsize(self.yaml_file)
		if file_size > MAX_CONFIG_FILE_SIZE:
			raise errors.ConfigError("config yaml file is larger than 1MB",
				path=self.yaml_file)
		with open(self.yaml_file, 'r') as data_file:
			data = yaml.safe_load(data_file)
		if data is None:
			return {}
		if not isinstance(data, dict):
			raise errors.ConfigError("config yaml must be a mapping at the top level",
				path=self.yaml_file)
		allowed = ('limits', 'defaults', 'policies', 'analysis_method',
			'type_mapping', 'track_priority', 'signatures', 'merge_field_defaults',
			'background_keywords', 'template_name')
		for key in data:
			if key not in allowed:
				raise errors.ConfigError(f"unknown config key: {key}", path=self.yaml_file)
		return data

	#============================
	def _require_mapping(self, value, name: str) -> dict:
		if value is None:
			return {}
		if not isinstance(value, dict):
			raise errors.ConfigError(f"{name} must be a mapping", setting=name)
		return value

	#============================
	def _parse_limits(self, limits) -> dict:
		limits = self._require_mapping(limits, 'limits')
		settings = {}
		for key in ('max_file_size', 'max_analysis_size', 'root_search_window',
			'max_compositions', 'max_layers', 'max_keyframes'):
			if limits.get(key) is not None:
				settings[key] = int(limits[key])
		if limits.get('timeout_seconds') is not None:
			settings['timeout_seconds'] = float(limits['timeout_seconds'])
		return settings

	#============================
	def _parse_defaults(self, defaults) -> dict:
		defaults = self._require_mapping(defaults, 'defaults')
		settings = {}
		comp = self._require_mapping(defaults.get('composition'), 'defaults.composition')
		if comp.get('width') is not None:
			settings['default_width'] = int(comp['width'])
		if comp.get('height') is not None:
			settings['default_height'] = int(comp['height'])
		if comp.get('fps') is not None:
			settings['default_fps'] = float(comp['fps'])
		if comp.get('duration') is not None:
			settings['default_duration'] = float(comp['duration'])
		if comp.get('background') is not None:
			settings['default_background'] = str(comp['background'])
		layer = self._require_mapping(defaults.get('layer'), 'defaults.layer')
		if layer.get('start') is not None:
			settings['layer_start'] = float(layer['start'])
		if layer.get('duration') is not None:
			settings['layer_duration'] = float(layer['duration'])
		if layer.get('opacity') is not None:
			settings['layer_opacity'] = float(layer['opacity'])
		if layer.get('position') is not None:
			settings['layer_position'] = tuple(float(v) for v in layer['position'])
		if layer.get('scale') is not None:
			settings['layer_scale'] = tuple(float(v) for v in layer['scale'])
		if layer.get('rotation') is not None:
			settings['layer_rotation'] = float(layer['rotation'])
		text = self._require_mapping(defaults.get('text'), 'defaults.text')
		if text.get('font_size') is not None:
			settings['font_size'] = float(text['font_size'])
		if text.get('font_family') is not None:
			settings['font_family'] = str(text['font_family'])
		if text.get('color') is not None:
			settings['text_color'] = str(text['color'])
		return settings

	#============================
	def _parse_policies(self, policies) -> dict:
		policies = self._require_mapping(policies, 'policies')
		names = {
			'limits': 'limit_policy',
			'merge_fields': 'merge_mode',
			'time_range': 'time_range_policy',
			'track_layout': 'track_layout',
		}
		settings = {}
		for key, setting in names.items():
			if policies.get(key) is not None:
				settings[setting] = str(policies[key])
		return settings

	#============================
	def _parse_tables(self, data: dict) -> dict:
		settings = {}
		type_mapping = self._require_mapping(data.get('type_mapping'), 'type_mapping')
		table_names = {
			'layer': ('layer_type_map', registry.DEFAULT_LAYER_TYPE_MAP),
			'asset': ('asset_type_map', registry.DEFAULT_ASSET_TYPE_MAP),
			'interpolation': ('interpolation_map', registry.DEFAULT_INTERPOLATION_MAP),
		}
		for key, (setting, base) in table_names.items():
			override = self._require_mapping(type_mapping.get(key), f"type_mapping.{key}")
			if len(override) > 0:
				merged = dict(base)
				for token, canonical in override.items():
					merged[registry.normalize_token(token)] = str(canonical)
				settings[setting] = merged
		priority = self._require_mapping(data.get('track_priority'), 'track_priority')
		if len(priority) > 0:
			merged = dict(registry.DEFAULT_TRACK_PRIORITY)
			merged.update({str(k): int(v) for k, v in priority.items()})
			settings['track_priority'] = merged
		signatures = self._require_mapping(data.get('signatures'), 'signatures')
		if len(signatures) > 0:
			settings['signatures'] = self._parse_signatures(signatures)
		defaults = self._require_mapping(data.get('merge_field_defaults'),
			'merge_field_defaults')
		if len(defaults) > 0:
			merged = dict(DEFAULT_MERGE_FIELD_DEFAULTS)
			merged.update({str(k): str(v) for k, v in defaults.items()})
			settings['merge_field_defaults'] = merged
		keywords = data.get('background_keywords')
		if keywords is not None:
			if not isinstance(keywords, list):
				raise errors.ConfigError("background_keywords must be a list",
					setting='background_keywords')
			settings['background_keywords'] = tuple(str(k).lower() for k in keywords)
		return settings

	#============================
	def _parse_signatures(self, signatures: dict) -> dict:
		table = dict(registry.DEFAULT_SIGNATURES)
		for raw_tag, raw_role in signatures.items():
			tag = str(raw_tag).encode('ascii')
			if len(tag) != 4:
				raise errors.ConfigError(f"signature {raw_tag!r} must be 4 ascii characters",
					setting='signatures')
			if raw_role is None:
				table.pop(tag, None)
				continue
			try:
				table[tag] = registry.ChunkRole(str(raw_role))
			except ValueError:
				raise errors.ConfigError(f"unknown chunk role: {raw_role}",
					setting='signatures') from None
		return table

	#============================
	def _parse_environment(self) -> dict:
		settings = {}
		env_names = (
			('RIFX_DEFAULT_WIDTH', 'default_width', int),
			('RIFX_DEFAULT_HEIGHT', 'default_height', int),
			('RIFX_DEFAULT_FPS', 'default_fps', float),
			('RIFX_MAX_FILE_SIZE', 'max_file_size', int),
		)
		for env_name, setting, cast in env_names:
			raw_value = self.environ.get(env_name)
			if raw_value is None or raw_value == '':
				continue
			try:
				settings[setting] = cast(raw_value)
			except ValueError:
				raise errors.ConfigError(f"{env_name} must be a number",
					setting=env_name) from None
		return settings

#============================================

def load_config(yaml_file: str = None, environ: dict = None) -> ParseConfig:
	return ConfigLoader(yaml_file, environ=environ).load()
