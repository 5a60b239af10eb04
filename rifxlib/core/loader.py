#!/usr/bin/env python3

import dataclasses
from rifxlib.core import errors
from rifxlib.core import registry
from rifxlib.core.extractors import AssetCatalog
from rifxlib.core.extractors import CompositionExtractor
from rifxlib.core.extractors import KeyframeExtractor
from rifxlib.core.extractors import LayerExtractor
from rifxlib.core.extractors import WarningLog
from rifxlib.core.payload import PayloadReader

Role = registry.ChunkRole

# marks a composition or layer dropped by a limit; its children are skipped
SKIPPED = object()

# chunk role -> ProjectLoader method, checked against ChunkRole at import
ROLE_HANDLERS = {
	Role.ROOT: '_handle_root',
	Role.COMPOSITION: '_handle_composition',
	Role.LAYER: '_handle_layer',
	Role.TEXT: '_handle_style',
	Role.SHAPE: '_handle_style',
	Role.FOOTAGE: '_handle_footage',
	Role.EFFECT: '_handle_layer_detail',
	Role.EXPRESSION: '_handle_layer_detail',
	Role.ANIMATION: '_handle_animation',
	Role.KEYFRAME: '_handle_keyframe',
}

#============================================

@dataclasses.dataclass(frozen=True)
class ClassifiedChunk():
	"""
	A chunk plus the stream indexes of its enclosing entities.

	For LAYER, TEXT and SHAPE chunks layer_index is the layer that was open
	before the chunk, which a TEXT or SHAPE chunk may decorate.
	"""
	index: int
	chunk: object
	composition_index: int = None
	layer_index: int = None
	animation_index: int = None

	#============================
	@property
	def role(self) -> registry.ChunkRole:
		return self.chunk.role

#============================================

class ProjectData():
	def __init__(self):
		self.compositions = []
		self.composition_table = {}
		self.layers = []
		self.assets = None
		self.warnings = []
		self.chunk_count = 0
		self.role_counts = {}

	#============================
	def composition(self, composition_id: str):
		return self.composition_table.get(composition_id)

	#============================
	def layers_for(self, composition_id: str) -> list:
		return [layer for layer in self.layers if layer.composition_id == composition_id]

#============================================

def classify_chunks(chunks) -> list:
	"""
	Assign each chunk its positional context.

	A composition chunk opens a composition; layer, text and shape chunks
	open a layer inside it; animation chunks open a property inside the
	layer. Footage chunks are project level and leave the context alone.
	"""
	classified = []
	composition_index = None
	layer_index = None
	animation_index = None
	for index, chunk in enumerate(chunks):
		role = chunk.role
		entry = ClassifiedChunk(index, chunk, composition_index, layer_index,
			animation_index)
		classified.append(entry)
		if role is Role.COMPOSITION:
			composition_index = index
			layer_index = None
			animation_index = None
		elif role in (Role.LAYER, Role.TEXT, Role.SHAPE):
			layer_index = index
			animation_index = None
		elif role is Role.ANIMATION:
			animation_index = index
	return classified

#============================================

class ProjectLoader():
	def __init__(self, config, warnings: WarningLog = None):
		self.config = config
		self.warnings = warnings if warnings is not None else WarningLog(config.limit_policy)
		self.mapper = config.type_mapper()
		self.comp_extractor = CompositionExtractor(config, self.warnings)
		self.layer_extractor = LayerExtractor(config, self.mapper, self.warnings)
		self.keyframe_extractor = KeyframeExtractor(config, self.mapper, self.warnings)
		self.catalog = AssetCatalog(self.mapper, self.warnings)
		self.compositions_at = {}
		self.layers_at = {}
		self.properties_at = {}
		self.handlers = {}
		for role, method_name in ROLE_HANDLERS.items():
			self.handlers[role] = getattr(self, method_name)

	#============================
	def load(self, classified: list) -> ProjectData:
		for entry in classified:
			self.handlers[entry.role](entry)
		if len(self.comp_extractor.compositions) == 0:
			self.comp_extractor.default_composition()
		for layer in self.layer_extractor.layers:
			self.keyframe_extractor.finalize(layer)
			self.catalog.reference(layer)
		project = ProjectData()
		project.compositions = list(self.comp_extractor.compositions)
		project.composition_table = dict(self.comp_extractor.table)
		project.layers = list(self.layer_extractor.layers)
		project.assets = self.catalog
		project.warnings = list(self.warnings)
		project.chunk_count = len(classified)
		for entry in classified:
			key = entry.role.value
			project.role_counts[key] = project.role_counts.get(key, 0) + 1
		for layer in project.layers:
			if layer.composition_id not in project.composition_table:
				raise RuntimeError(
					f"layer {layer.id} references missing composition {layer.composition_id}")
		return project

	#============================
	def _composition_for(self, entry: ClassifiedChunk):
		if entry.composition_index is None:
			return self.comp_extractor.default_composition()
		return self.compositions_at.get(entry.composition_index, SKIPPED)

	#============================
	def _layer_for(self, entry: ClassifiedChunk):
		if entry.layer_index is None:
			self.warnings.record(errors.OrphanChunk(
				f"{entry.chunk.name} chunk at offset {entry.chunk.offset} has no enclosing layer",
				offset=entry.chunk.offset, tag=entry.chunk.name))
			return None
		layer = self.layers_at.get(entry.layer_index, SKIPPED)
		if layer is SKIPPED:
			return None
		return layer

	#============================
	def _handle_root(self, entry: ClassifiedChunk) -> None:
		return

	#============================
	def _handle_composition(self, entry: ClassifiedChunk) -> None:
		composition = self.comp_extractor.extract(entry.chunk)
		self.compositions_at[entry.index] = composition if composition is not None else SKIPPED

	#============================
	def _handle_layer(self, entry: ClassifiedChunk) -> None:
		composition = self._composition_for(entry)
		layer = None
		if composition is not SKIPPED:
			layer = self.layer_extractor.extract(entry.chunk, composition.id, entry.index)
		self.layers_at[entry.index] = layer if layer is not None else SKIPPED

	#============================
	def _handle_style(self, entry: ClassifiedChunk) -> None:
		composition = self._composition_for(entry)
		if composition is SKIPPED:
			self.layers_at[entry.index] = SKIPPED
			return
		is_text = entry.role is Role.TEXT
		layer = self.layers_at.get(entry.layer_index)
		decorate = False
		if layer is not None and layer is not SKIPPED:
			if is_text:
				decorate = layer.canonical_type == 'text' and layer.text_style is None
			else:
				decorate = layer.canonical_type == 'shape' and layer.shape_style is None
		if not decorate:
			layer = self.layer_extractor.create(entry.role, composition.id, entry.index,
				entry.chunk)
		if layer is None:
			self.layers_at[entry.index] = SKIPPED
			return
		if is_text:
			self.layer_extractor.apply_text(layer, entry.chunk)
		else:
			self.layer_extractor.apply_shape(layer, entry.chunk)
		self.layers_at[entry.index] = layer

	#============================
	def _handle_footage(self, entry: ClassifiedChunk) -> None:
		self.catalog.extract(entry.chunk)

	#============================
	def _handle_layer_detail(self, entry: ClassifiedChunk) -> None:
		layer = self._layer_for(entry)
		if layer is None:
			return
		if entry.role is Role.EFFECT:
			self.layer_extractor.apply_effect(layer, entry.chunk)
		else:
			self.layer_extractor.apply_expression(layer, entry.chunk)

	#============================
	def _handle_animation(self, entry: ClassifiedChunk) -> None:
		(property_name, _) = PayloadReader(entry.chunk.payload).cstring(0)
		self.properties_at[entry.index] = property_name or 'value'
		self._layer_for(entry)

	#============================
	def _handle_keyframe(self, entry: ClassifiedChunk) -> None:
		layer = self._layer_for(entry)
		if layer is None:
			return
		property_name = self.properties_at.get(entry.animation_index, 'value')
		self.keyframe_extractor.add(layer, entry.chunk, property_name)

#============================================

def check_role_handlers() -> None:
	"""
	Raise RuntimeError unless every chunk role maps to a loader method.
	"""
	missing = set(Role) - set(ROLE_HANDLERS)
	if len(missing) > 0:
		names = ', '.join(sorted(role.value for role in missing))
		raise RuntimeError(f"no extractor for chunk roles: {names}")
	for role, method_name in ROLE_HANDLERS.items():
		if not callable(getattr(ProjectLoader, method_name, None)):
			raise RuntimeError(f"chunk role {role.value} names unknown handler {method_name}")

check_role_handlers()
