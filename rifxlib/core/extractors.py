#!/usr/bin/env python3

"""
Entity extractors: compositions, layers, keyframes and the asset catalog.

Payload layouts (big-endian, a field is used only when the payload is long
enough to hold it):

	comp  id u32 @0, width u32 @4, height u32 @8, fps f32 @12,
	      duration f32 @16, background rgb @20, name cstring @23
	layr  id u32 @0, type token 8 bytes @4, start f32 @12, duration f32 @16,
	      opacity f32 @20, position f32 x2 @24, scale f32 x2 @32,
	      rotation f32 @40, name cstring @44, source path cstring
	TEXT  font size f32 @0, color rgb @4, font family 32 bytes @7,
	      text cstring @39
	SHAP  fill rgb @0, stroke rgb @3, stroke width f32 @6, width f32 @10,
	      height f32 @14, kind cstring @18
	FOOT  type token 8 bytes @0, width u32 @8, height u32 @12,
	      duration f32 @16, flags u8 @20, source path cstring @21
	EFCT  enabled u8 @0, name cstring @1
	EXPR  expression cstring @0
	ANIM  property cstring @0
	KEYF  time f32 @0, value f32 @4, interpolation cstring @8
"""

import hashlib
from rifxlib.core import errors
from rifxlib.core import registry
from rifxlib.core import utils
from rifxlib.core.entities import Asset
from rifxlib.core.entities import Composition
from rifxlib.core.entities import Keyframe
from rifxlib.core.entities import Layer
from rifxlib.core.entities import ShapeStyle
from rifxlib.core.entities import TextStyle
from rifxlib.core.payload import PayloadReader

#============================================

DEFAULT_COMPOSITION_ID = 'comp_default'

# (minimum, maximum) accepted for composition values read from the container
COMPOSITION_RANGES = {
	'width': (1, 7680),
	'height': (1, 4320),
	'frame_rate': (1, 120),
	'duration': (0.1, 3600),
}

#============================================

def unique_id(base: str, taken) -> str:
	"""
	First of base, base_2, base_3, ... not already in taken.
	"""
	candidate = base
	suffix = 2
	while candidate in taken:
		candidate = f"{base}_{suffix}"
		suffix += 1
	return candidate

#============================================

class WarningLog():
	"""
	Collects recoverable errors for one conversion.

	With limit_policy 'fail' a promotable error is raised instead.
	"""
	def __init__(self, limit_policy: str = 'warn'):
		self.limit_policy = limit_policy
		self.items = []

	#============================
	def record(self, error: errors.ConversionError, promotable: bool = False) -> None:
		if promotable and self.limit_policy == 'fail':
			raise error
		self.items.append(error)

	#============================
	def extend(self, items: list) -> None:
		self.items.extend(items)

	#============================
	def __len__(self) -> int:
		return len(self.items)

	#============================
	def __iter__(self):
		return iter(self.items)

#============================================

class CompositionExtractor():
	def __init__(self, config, warnings: WarningLog):
		self.config = config
		self.warnings = warnings
		self.compositions = []
		self.table = {}
		# raw container id -> composition, only these may be reopened
		self.by_raw_id = {}
		self.limit_reported = False

	#============================
	def extract(self, chunk) -> Composition:
		reader = PayloadReader(chunk.payload)
		raw_id = reader.u32(0)
		if raw_id:
			existing = self.by_raw_id.get(raw_id)
			if existing is not None:
				return existing
		if self._extracted_count() >= self.config.max_compositions:
			self._report_limit(chunk)
			return None
		if raw_id:
			comp_id = unique_id(f"comp_{raw_id}", self.table)
		else:
			comp_id = unique_id(f"comp_{self._extracted_count() + 1}", self.table)
		(name, _) = reader.cstring(23)
		composition = Composition(
			id=comp_id,
			name=name or 'Composition',
			width=int(self._normalize(comp_id, chunk, 'width', reader.u32(4),
				self.config.default_width)),
			height=int(self._normalize(comp_id, chunk, 'height', reader.u32(8),
				self.config.default_height)),
			frame_rate=self._normalize(comp_id, chunk, 'frame_rate', reader.f32(12),
				self.config.default_fps),
			duration=self._normalize(comp_id, chunk, 'duration', reader.f32(16),
				self.config.default_duration),
			background_color=reader.rgb(20) or self.config.default_background,
			offset=chunk.offset,
		)
		self._add(composition)
		if raw_id:
			self.by_raw_id[raw_id] = composition
		return composition

	#============================
	def default_composition(self) -> Composition:
		"""
		Synthetic composition for layers found outside any composition.
		"""
		composition = self.table.get(DEFAULT_COMPOSITION_ID)
		if composition is not None:
			return composition
		composition = Composition(
			id=DEFAULT_COMPOSITION_ID,
			name='Main Composition',
			width=self.config.default_width,
			height=self.config.default_height,
			frame_rate=self.config.default_fps,
			duration=self.config.default_duration,
			background_color=self.config.default_background,
		)
		self._add(composition)
		return composition

	#============================
	def _add(self, composition: Composition) -> None:
		self.compositions.append(composition)
		self.table[composition.id] = composition

	#============================
	def _extracted_count(self) -> int:
		if DEFAULT_COMPOSITION_ID in self.table:
			return len(self.compositions) - 1
		return len(self.compositions)

	#============================
	def _report_limit(self, chunk) -> None:
		if self.limit_reported:
			return
		self.limit_reported = True
		limit = self.config.max_compositions
		self.warnings.record(errors.CompositionLimitExceeded(
			f"more than {limit} compositions, ignoring the rest from offset {chunk.offset}",
			limit='max_compositions', maximum=limit, offset=chunk.offset),
			promotable=True)

	#============================
	def _normalize(self, comp_id: str, chunk, field: str, value, default):
		# zero means the field was left unset by the writer
		if value is None or value == 0:
			return default
		(minimum, maximum) = COMPOSITION_RANGES[field]
		clamped = utils.clamp_number(value, minimum, maximum)
		if clamped != value:
			self.warnings.record(errors.ValueNormalized(
				f"composition {comp_id} {field} {value} clamped to {clamped}",
				entity=comp_id, field=field, value=value, clamped=clamped,
				offset=chunk.offset))
		return clamped

#============================================

class LayerExtractor():
	def __init__(self, config, mapper: registry.TypeMapper, warnings: WarningLog):
		self.config = config
		self.mapper = mapper
		self.warnings = warnings
		self.layers = []
		self.ids = set()
		self.limit_reported = False

	#============================
	def extract(self, chunk, composition_id: str, index: int) -> Layer:
		if not self._has_room(chunk):
			return None
		reader = PayloadReader(chunk.payload)
		raw_type = registry.normalize_token(reader.fixed_string(4, 8)) or 'unknown'
		layer = self._new_layer(reader.u32(0), composition_id, index, raw_type)
		start = reader.f32(12)
		if start is not None:
			if start < 0:
				self._report_value(layer, chunk, 'start_time', start, 0.0)
				start = 0.0
			layer.start_time = start
		duration = reader.f32(16)
		if duration is not None and duration > 0:
			layer.duration = duration
		opacity = reader.f32(20)
		if opacity is not None:
			clamped = utils.clamp_number(opacity, 0.0, 100.0)
			if clamped != opacity:
				self._report_value(layer, chunk, 'opacity', opacity, clamped)
			layer.opacity = clamped
		layer.position = self._pair(reader, 24, layer.position)
		layer.scale = self._pair(reader, 32, layer.scale)
		rotation = reader.f32(40)
		if rotation is not None:
			layer.rotation = rotation
		(name, next_offset) = reader.cstring(44)
		if name is not None:
			layer.name = name
		(source_path, _) = reader.cstring(next_offset)
		layer.source_path = source_path
		self._add(layer)
		return layer

	#============================
	def create(self, role: registry.ChunkRole, composition_id: str, index: int,
		chunk) -> Layer:
		"""
		Layer implied by a TEXT or SHAP chunk with no layer to decorate.
		"""
		if not self._has_room(chunk):
			return None
		raw_type = 'text' if role is registry.ChunkRole.TEXT else 'shape'
		layer = self._new_layer(None, composition_id, index, raw_type)
		layer.name = 'Text Layer' if raw_type == 'text' else 'Shape Layer'
		self._add(layer)
		return layer

	#============================
	def apply_text(self, layer: Layer, chunk) -> None:
		reader = PayloadReader(chunk.payload)
		font_size = reader.f32(0)
		if font_size is None or font_size <= 0:
			font_size = self.config.font_size
		layer.text_style = TextStyle(
			font_size=font_size,
			font_family=reader.fixed_string(7, 32) or self.config.font_family,
			color=reader.rgb(4) or utils.normalize_color(self.config.text_color, '#ffffff'),
		)
		(text, _) = reader.cstring(39)
		layer.text = text if text is not None else ''

	#============================
	def apply_shape(self, layer: Layer, chunk) -> None:
		reader = PayloadReader(chunk.payload)
		style = ShapeStyle()
		style.fill = reader.rgb(0) or style.fill
		style.stroke = reader.rgb(3) or style.stroke
		stroke_width = reader.f32(6)
		if stroke_width is not None and stroke_width >= 0:
			style.stroke_width = stroke_width
		width = reader.f32(10)
		height = reader.f32(14)
		if width is not None and height is not None and width > 0 and height > 0:
			style.width = width
			style.height = height
		(kind, _) = reader.cstring(18)
		if kind is not None:
			style.kind = kind.strip().lower()
		layer.shape_style = style

	#============================
	def apply_effect(self, layer: Layer, chunk) -> None:
		reader = PayloadReader(chunk.payload)
		enabled = reader.u8(0)
		(name, _) = reader.cstring(1)
		layer.effects.append({
			'name': name or 'Effect',
			'enabled': enabled != 0 if enabled is not None else True,
		})

	#============================
	def apply_expression(self, layer: Layer, chunk) -> None:
		(expression, _) = PayloadReader(chunk.payload).cstring(0)
		if expression is not None:
			layer.expressions.append(expression)

	#============================
	def _new_layer(self, raw_id, composition_id: str, index: int, raw_type: str) -> Layer:
		ordinal = len(self.layers) + 1
		base = f"layer_{raw_id}" if raw_id else f"layer_{ordinal}"
		layer_id = unique_id(base, self.ids)
		return Layer(
			id=layer_id,
			name='Layer',
			composition_id=composition_id,
			raw_type=raw_type,
			canonical_type=self.mapper.layer(raw_type),
			start_time=self.config.layer_start,
			duration=self.config.layer_duration,
			opacity=self.config.layer_opacity,
			position=tuple(self.config.layer_position),
			scale=tuple(self.config.layer_scale),
			rotation=self.config.layer_rotation,
			extraction_index=index,
		)

	#============================
	def _pair(self, reader: PayloadReader, offset: int, default: tuple) -> tuple:
		first = reader.f32(offset)
		second = reader.f32(offset + 4)
		if first is None or second is None:
			return default
		return (first, second)

	#============================
	def _add(self, layer: Layer) -> None:
		self.layers.append(layer)
		self.ids.add(layer.id)

	#============================
	def _has_room(self, chunk) -> bool:
		limit = self.config.max_layers
		if len(self.layers) < limit:
			return True
		if not self.limit_reported:
			self.limit_reported = True
			self.warnings.record(errors.LayerLimitExceeded(
				f"more than {limit} layers, extraction stopped at offset {chunk.offset}",
				limit='max_layers', maximum=limit, offset=chunk.offset),
				promotable=True)
		return False

	#============================
	def _report_value(self, layer: Layer, chunk, field: str, value, clamped) -> None:
		self.warnings.record(errors.ValueNormalized(
			f"layer {layer.id} {field} {value} clamped to {clamped}",
			entity=layer.id, field=field, value=value, clamped=clamped,
			offset=chunk.offset))

#============================================

class KeyframeExtractor():
	def __init__(self, config, mapper: registry.TypeMapper, warnings: WarningLog):
		self.config = config
		self.mapper = mapper
		self.warnings = warnings

	#============================
	def add(self, layer: Layer, chunk, property_name: str) -> Keyframe:
		limit = self.config.max_keyframes
		if len(layer.keyframes) >= limit:
			if not layer.keyframes_truncated:
				layer.keyframes_truncated = True
				self.warnings.record(errors.KeyframeLimitExceeded(
					f"layer {layer.id} has more than {limit} keyframes, truncated",
					limit='max_keyframes', maximum=limit, entity=layer.id,
					offset=chunk.offset),
					promotable=True)
			return None
		reader = PayloadReader(chunk.payload)
		time_value = reader.f32(0)
		value = reader.f32(4)
		(raw_interpolation, _) = reader.cstring(8)
		keyframe = Keyframe(
			time=time_value if time_value is not None else 0.0,
			value=value if value is not None else 0.0,
			interpolation=self.mapper.interpolation(raw_interpolation or 'linear'),
			property=property_name,
		)
		layer.keyframes.append(keyframe)
		return keyframe

	#============================
	def finalize(self, layer: Layer) -> None:
		# stable: equal timestamps keep stream order, the later one wins at render
		layer.keyframes.sort(key=lambda keyframe: keyframe.time)

#============================================

def make_asset_id(source_path: str) -> str:
	digest = hashlib.sha1(source_path.encode('utf-8')).hexdigest()
	return f"asset_{digest[:12]}"

#============================================

class AssetCatalog():
	"""
	Assets keyed by source path; one record per unique path.
	"""
	def __init__(self, mapper: registry.TypeMapper, warnings: WarningLog):
		self.mapper = mapper
		self.warnings = warnings
		self.by_path = {}
		self.by_id = {}

	#============================
	def register(self, source_path: str, raw_type, width: int = None,
		height: int = None, duration: float = None, has_audio: bool = False) -> Asset:
		asset = self.by_path.get(source_path)
		if asset is None:
			asset = Asset(
				id=make_asset_id(source_path),
				canonical_type=self.mapper.asset(raw_type),
				source_path=source_path,
			)
			self.by_path[source_path] = asset
			self.by_id[asset.id] = asset
		if asset.width is None and width:
			asset.width = width
		if asset.height is None and height:
			asset.height = height
		if asset.duration is None and duration:
			asset.duration = duration
		asset.has_audio = asset.has_audio or has_audio
		return asset

	#============================
	def extract(self, chunk) -> Asset:
		reader = PayloadReader(chunk.payload)
		(source_path, _) = reader.cstring(21)
		if source_path is None:
			self.warnings.record(errors.OrphanChunk(
				f"footage chunk at offset {chunk.offset} has no source path",
				offset=chunk.offset, tag=chunk.name))
			return None
		flags = reader.u8(20) or 0
		return self.register(source_path, reader.fixed_string(0, 8) or 'unknown',
			width=reader.u32(8), height=reader.u32(12), duration=reader.f32(16),
			has_audio=bool(flags & 1))

	#============================
	def reference(self, layer: Layer) -> None:
		"""
		Link a media layer to the shared catalog entry for its source path.
		"""
		if layer.source_path is None:
			return
		raw_type = layer.canonical_type
		if raw_type not in registry.ASSET_TYPES:
			raw_type = 'unknown'
		asset = self.register(layer.source_path, raw_type,
			has_audio=layer.canonical_type == 'audio')
		layer.asset_id = asset.id

	#============================
	def get(self, asset_id: str) -> Asset:
		return self.by_id.get(asset_id)

	#============================
	def assets(self) -> list:
		return list(self.by_path.values())

	#============================
	def __len__(self) -> int:
		return len(self.by_path)
