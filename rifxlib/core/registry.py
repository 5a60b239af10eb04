#!/usr/bin/env python3

"""
Signature registry and type mapping tables.

The signature table is a closed set: every tag maps to one ChunkRole, and
the loader dispatches on the role enum. The type tables map raw tokens found
in the container to canonical types, with an explicit fallback arm so an
unrecognized token never raises.
"""

import enum
import types
from rifxlib.core import utils

#============================================

REGISTRY_VERSION = 1

#============================================

class ChunkRole(enum.Enum):
	ROOT = 'root'
	COMPOSITION = 'composition'
	LAYER = 'layer'
	TEXT = 'text'
	SHAPE = 'shape'
	FOOTAGE = 'footage'
	EFFECT = 'effect'
	EXPRESSION = 'expression'
	ANIMATION = 'animation'
	KEYFRAME = 'keyframe'

#============================================

class AnalysisMethod(enum.Enum):
	BINARY_HEURISTIC = 'binary_heuristic'
	EXTEND_SCRIPT = 'extend_script'
	NATIVE_MODULE = 'native_module'

ACTIVE_ANALYSIS_METHODS = frozenset([AnalysisMethod.BINARY_HEURISTIC])

#============================================

ROOT_TAG = b'RIFX'
FORM_TAG = b'ADBE'

DEFAULT_SIGNATURES = types.MappingProxyType({
	b'RIFX': ChunkRole.ROOT,
	b'ADBE': ChunkRole.ROOT,
	b'comp': ChunkRole.COMPOSITION,
	b'layr': ChunkRole.LAYER,
	b'TEXT': ChunkRole.TEXT,
	b'SHAP': ChunkRole.SHAPE,
	b'FOOT': ChunkRole.FOOTAGE,
	b'EFCT': ChunkRole.EFFECT,
	b'EXPR': ChunkRole.EXPRESSION,
	b'ANIM': ChunkRole.ANIMATION,
	b'KEYF': ChunkRole.KEYFRAME,
})

LAYER_TYPES = ('text', 'shape', 'video', 'image', 'audio')
ASSET_TYPES = ('video', 'audio', 'image')
INTERPOLATIONS = ('linear', 'hold', 'bezier', 'ease_in', 'ease_out', 'ease_in_out')

DEFAULT_LAYER_TYPE_MAP = types.MappingProxyType({
	'text': 'text',
	'shape': 'shape',
	'av': 'video',
	'video': 'video',
	'image': 'image',
	'still': 'image',
	'audio': 'audio',
	'null': 'shape',
	'solid': 'shape',
	'unknown': 'shape',
})

DEFAULT_ASSET_TYPE_MAP = types.MappingProxyType({
	'video': 'video',
	'audio': 'audio',
	'image': 'image',
	'still': 'image',
	'unknown': 'image',
})

DEFAULT_INTERPOLATION_MAP = types.MappingProxyType({
	'linear': 'linear',
	'hold': 'hold',
	'bezier': 'bezier',
	'easein': 'ease_in',
	'easeout': 'ease_out',
	'easeinout': 'ease_in_out',
	'unknown': 'linear',
})

# lower value renders first (bottom of the stack)
DEFAULT_TRACK_PRIORITY = types.MappingProxyType({
	'background': 0,
	'shape': 1,
	'image': 2,
	'video': 3,
	'audio': 4,
	'text': 5,
})

#============================================

def normalize_token(raw_token) -> str:
	if raw_token is None:
		return ''
	if isinstance(raw_token, (bytes, bytearray, memoryview)):
		raw_token = bytes(raw_token).split(b'\x00', 1)[0].decode('ascii', 'replace')
	token = str(raw_token).strip().lower()
	return token.replace('-', '').replace(' ', '')

#============================================

class TypeMapper():
	"""
	Pure lookups from raw tokens to canonical types.

	Each table must contain an 'unknown' entry, which is the fallback arm.
	"""
	def __init__(self, layer_map=None, asset_map=None, interpolation_map=None,
		track_priority=None):
		self.layer_map = types.MappingProxyType(
			dict(layer_map if layer_map is not None else DEFAULT_LAYER_TYPE_MAP))
		self.asset_map = types.MappingProxyType(
			dict(asset_map if asset_map is not None else DEFAULT_ASSET_TYPE_MAP))
		self.interpolation_map = types.MappingProxyType(
			dict(interpolation_map if interpolation_map is not None
				else DEFAULT_INTERPOLATION_MAP))
		self.track_priority = types.MappingProxyType(
			dict(track_priority if track_priority is not None
				else DEFAULT_TRACK_PRIORITY))
		for name, table in (('layer', self.layer_map), ('asset', self.asset_map),
			('interpolation', self.interpolation_map)):
			if 'unknown' not in table:
				raise RuntimeError(f"{name} type table requires an 'unknown' fallback")

	#============================
	@classmethod
	def from_config(cls, config):
		return cls(layer_map=config.layer_type_map, asset_map=config.asset_type_map,
			interpolation_map=config.interpolation_map,
			track_priority=config.track_priority)

	#============================
	def _lookup(self, table, raw_token, kind: str) -> str:
		token = normalize_token(raw_token)
		mapped = table.get(token)
		if mapped is not None:
			return mapped
		fallback = table['unknown']
		utils.log_info(f"unknown {kind} token {token!r}, using {fallback}")
		return fallback

	#============================
	def layer(self, raw_token) -> str:
		return self._lookup(self.layer_map, raw_token, 'layer')

	#============================
	def asset(self, raw_token) -> str:
		return self._lookup(self.asset_map, raw_token, 'asset')

	#============================
	def interpolation(self, raw_token) -> str:
		return self._lookup(self.interpolation_map, raw_token, 'interpolation')

	#============================
	def priority(self, clip_type: str) -> int:
		"""
		Unlisted clip types sort after every listed one.
		"""
		value = self.track_priority.get(clip_type)
		if value is None:
			return len(self.track_priority) + max(self.track_priority.values(), default=0)
		return value
