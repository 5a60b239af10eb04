#!/usr/bin/env python3

"""
Unit tests for composition, layer, keyframe and asset extraction.
"""

# Standard Library
import os
import sys
import unittest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)
TOOLS_DIR = os.path.join(REPO_ROOT, "tools")
if TOOLS_DIR not in sys.path:
	sys.path.insert(0, TOOLS_DIR)
import rifx_writer

# local repo modules
from rifxlib.core import errors
from rifxlib.core import utils
from rifxlib.core.config import ParseConfig
from rifxlib.core.extractors import DEFAULT_COMPOSITION_ID
from rifxlib.core.extractors import make_asset_id
from rifxlib.core.loader import ProjectLoader
from rifxlib.core.loader import classify_chunks
from rifxlib.core.project import Stage
from rifxlib.core.project import convert
from rifxlib.core.scanner import ChunkScanner

#============================================

def load_project(builder, config: ParseConfig = None):
	"""
	Scan, classify and extract a container built with rifx_writer.
	"""
	config = config if config is not None else ParseConfig()
	chunks = ChunkScanner(builder.to_bytes(), config).scan()
	return ProjectLoader(config).load(classify_chunks(chunks))

#============================================

def warning_types(project) -> list:
	return [type(warning).__name__ for warning in project.warnings]

#============================================

class CompositionExtractionTest(unittest.TestCase):
	#============================================
	def test_fields_read_from_payload(self) -> None:
		"""Ensure composition fields come from the comp chunk."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=3, width=1280, height=720, fps=30, duration=12.5,
			background='#102030', name="Intro")
		project = load_project(builder)
		self.assertEqual(len(project.compositions), 1)
		comp = project.compositions[0]
		self.assertEqual(comp.id, 'comp_3')
		self.assertEqual(comp.name, 'Intro')
		self.assertEqual((comp.width, comp.height), (1280, 720))
		self.assertEqual(comp.frame_rate, 30.0)
		self.assertEqual(comp.duration, 12.5)
		self.assertEqual(comp.background_color, '#102030')
		self.assertEqual(comp.offset, 12)

	#============================================
	def test_missing_fields_take_defaults(self) -> None:
		"""Ensure a bare comp chunk yields the default canvas."""
		builder = rifx_writer.ContainerBuilder()
		builder.raw(b'comp', b'')
		comp = load_project(builder).compositions[0]
		self.assertEqual(comp.id, 'comp_1')
		self.assertEqual((comp.width, comp.height), (1920, 1080))
		self.assertEqual(comp.frame_rate, 24.0)
		self.assertEqual(comp.duration, 10.0)
		self.assertEqual(comp.background_color, '#000000')

	#============================================
	def test_out_of_range_values_are_clamped(self) -> None:
		"""Ensure normalization clamps and records a warning."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1, width=10000, height=720, fps=500, duration=4)
		project = load_project(builder)
		comp = project.compositions[0]
		self.assertEqual(comp.width, 7680)
		self.assertEqual(comp.frame_rate, 120)
		self.assertEqual(warning_types(project), ['ValueNormalized', 'ValueNormalized'])

	#============================================
	def test_composition_limit_warns(self) -> None:
		"""Ensure compositions past the limit are dropped with one warning."""
		builder = rifx_writer.ContainerBuilder()
		for comp_id in range(1, 5):
			builder.composition(comp_id=comp_id)
			builder.layer(layer_id=comp_id, layer_type='text')
		project = load_project(builder, ParseConfig(max_compositions=2))
		self.assertEqual([comp.id for comp in project.compositions], ['comp_1', 'comp_2'])
		self.assertEqual(len(project.layers), 2)
		self.assertEqual(warning_types(project), ['CompositionLimitExceeded'])
		self.assertEqual(project.warnings[0].context['limit'], 'max_compositions')

	#============================================
	def test_composition_limit_fail_policy(self) -> None:
		"""Ensure limit_policy fail promotes the limit to an error."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.composition(comp_id=2)
		config = ParseConfig(max_compositions=1, limit_policy='fail')
		with self.assertRaises(errors.CompositionLimitExceeded):
			load_project(builder, config)

	#============================================
	def test_repeated_id_reuses_composition(self) -> None:
		"""Ensure a second comp chunk with the same id reopens the first."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=5, name="Main")
		builder.layer(layer_id=1)
		builder.composition(comp_id=5)
		builder.layer(layer_id=2)
		project = load_project(builder)
		self.assertEqual(len(project.compositions), 1)
		self.assertEqual([layer.composition_id for layer in project.layers],
			['comp_5', 'comp_5'])

	#============================================
	def test_ordinal_id_after_raw_id_stays_unique(self) -> None:
		"""Ensure an id-less comp never takes the id of an earlier raw id."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=2, duration=4)
		builder.layer(layer_id=1, layer_type='text')
		builder.composition(comp_id=0, duration=6)
		builder.layer(layer_id=2, layer_type='text')
		project = load_project(builder)
		comp_ids = [comp.id for comp in project.compositions]
		self.assertEqual(len(comp_ids), 2)
		self.assertEqual(len(set(comp_ids)), 2)
		self.assertEqual([comp.duration for comp in project.compositions], [4.0, 6.0])
		for comp_id in comp_ids:
			self.assertEqual(len(project.layers_for(comp_id)), 1)

	#============================================
	def test_raw_id_after_ordinal_id_is_not_merged(self) -> None:
		"""Ensure a raw id matching an ordinal id opens a new composition."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=0, width=1280, height=720)
		builder.composition(comp_id=1, width=640, height=480, fps=25, duration=5)
		builder.layer(layer_id=1, layer_type='text')
		project = load_project(builder)
		self.assertEqual(len(project.compositions), 2)
		second = project.compositions[1]
		self.assertNotEqual(second.id, project.compositions[0].id)
		self.assertEqual((second.width, second.height), (640, 480))
		self.assertEqual(second.frame_rate, 25.0)
		self.assertEqual(second.duration, 5.0)
		self.assertEqual(project.layers[0].composition_id, second.id)

	#============================================
	def test_mixed_ids_build_a_valid_template(self) -> None:
		"""Ensure mixed raw and ordinal ids convert without duplicate tracks."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=2)
		builder.layer(layer_id=1, layer_type='text')
		builder.composition(comp_id=0)
		builder.layer(layer_id=2, layer_type='text')
		result = convert(builder.to_bytes())
		self.assertIs(result.state, Stage.COMPILED)
		track_ids = [track['id'] for track in result.template['timeline']['tracks']]
		self.assertEqual(len(track_ids), len(set(track_ids)))

#============================================

class LayerExtractionTest(unittest.TestCase):
	#============================================
	def setUp(self) -> None:
		utils.set_quiet_mode(True)

	#============================================
	def tearDown(self) -> None:
		utils.set_quiet_mode(False)

	#============================================
	def test_fields_read_from_payload(self) -> None:
		"""Ensure layer timing and transform come from the layr chunk."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=9, layer_type='av', start=1.5, duration=3, opacity=80,
			position=(100, 200), scale=(50, 75), rotation=45, name="Clip",
			source="media/clip.mp4")
		layer = load_project(builder).layers[0]
		self.assertEqual(layer.id, 'layer_9')
		self.assertEqual(layer.raw_type, 'av')
		self.assertEqual(layer.canonical_type, 'video')
		self.assertEqual(layer.composition_id, 'comp_1')
		self.assertEqual((layer.start_time, layer.duration), (1.5, 3.0))
		self.assertEqual(layer.opacity, 80.0)
		self.assertEqual(layer.position, (100.0, 200.0))
		self.assertEqual(layer.scale, (50.0, 75.0))
		self.assertEqual(layer.rotation, 45.0)
		self.assertEqual(layer.name, 'Clip')
		self.assertEqual(layer.source_path, 'media/clip.mp4')

	#============================================
	def test_missing_fields_take_defaults(self) -> None:
		"""Ensure absent fields use the layer defaults."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_type='mystery')
		project = load_project(builder)
		layer = project.layers[0]
		self.assertEqual(layer.id, 'layer_1')
		self.assertEqual(layer.canonical_type, 'shape')
		self.assertEqual((layer.start_time, layer.duration), (0.0, 5.0))
		self.assertEqual(layer.opacity, 100.0)
		self.assertEqual(layer.position, (960.0, 540.0))
		self.assertEqual(layer.scale, (100.0, 100.0))
		self.assertEqual(layer.rotation, 0.0)
		# unknown tokens are informational, never warnings
		self.assertEqual(warning_types(project), [])

	#============================================
	def test_layer_without_composition_gets_default(self) -> None:
		"""Ensure orphan layers attach to one synthetic composition."""
		builder = rifx_writer.ContainerBuilder()
		builder.layer(layer_id=1, layer_type='text')
		builder.layer(layer_id=2, layer_type='image')
		project = load_project(builder)
		self.assertEqual([comp.id for comp in project.compositions], [DEFAULT_COMPOSITION_ID])
		for layer in project.layers:
			self.assertEqual(layer.composition_id, DEFAULT_COMPOSITION_ID)
			self.assertIsNotNone(project.composition(layer.composition_id))

	#============================================
	def test_empty_container_gets_default_composition(self) -> None:
		"""Ensure a container with no comp chunk still has one composition."""
		project = load_project(rifx_writer.ContainerBuilder())
		self.assertEqual(len(project.compositions), 1)
		self.assertEqual(project.compositions[0].width, 1920)
		self.assertEqual(project.layers, [])

	#============================================
	def test_values_are_normalized(self) -> None:
		"""Ensure negative start and out-of-range opacity are clamped."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1, start=-2, opacity=150)
		project = load_project(builder)
		layer = project.layers[0]
		self.assertEqual(layer.start_time, 0.0)
		self.assertEqual(layer.opacity, 100.0)
		self.assertEqual(warning_types(project), ['ValueNormalized', 'ValueNormalized'])

	#============================================
	def test_layer_limit_boundary(self) -> None:
		"""Ensure exactly max_layers is accepted and one more is reported."""
		config = ParseConfig(max_layers=3)
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		for layer_id in range(1, 4):
			builder.layer(layer_id=layer_id)
		project = load_project(builder, config)
		self.assertEqual(len(project.layers), 3)
		self.assertEqual(warning_types(project), [])
		builder.layer(layer_id=4)
		project = load_project(builder, config)
		self.assertEqual(len(project.layers), 3)
		self.assertEqual(warning_types(project), ['LayerLimitExceeded'])
		self.assertEqual(project.warnings[0].context['limit'], 'max_layers')
		self.assertFalse(project.warnings[0].fatal)

	#============================================
	def test_layer_limit_fail_policy(self) -> None:
		"""Ensure limit_policy fail raises instead of truncating."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1)
		builder.layer(layer_id=2)
		with self.assertRaises(errors.LayerLimitExceeded):
			load_project(builder, ParseConfig(max_layers=1, limit_policy='fail'))

	#============================================
	def test_text_chunk_decorates_text_layer(self) -> None:
		"""Ensure a TEXT chunk styles the text layer before it."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1, layer_type='text', name="Title")
		builder.text(text="Hello {{name}}", font_size=72, color='#ff0000',
			font_family="Futura")
		project = load_project(builder)
		self.assertEqual(len(project.layers), 1)
		layer = project.layers[0]
		self.assertEqual(layer.text, 'Hello {{name}}')
		self.assertEqual(layer.text_style.font_size, 72.0)
		self.assertEqual(layer.text_style.font_family, 'Futura')
		self.assertEqual(layer.text_style.color, '#ff0000')

	#============================================
	def test_text_chunk_without_layer_creates_one(self) -> None:
		"""Ensure TEXT and SHAP chunks create layers when nothing can be decorated."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1, layer_type='image')
		builder.text(text="Caption")
		builder.shape(fill='#00ff00', kind='ellipse', width=100, height=50)
		project = load_project(builder)
		types = [layer.canonical_type for layer in project.layers]
		self.assertEqual(types, ['image', 'text', 'shape'])
		self.assertEqual(project.layers[1].text, 'Caption')
		self.assertEqual(project.layers[2].shape_style.kind, 'ellipse')
		self.assertEqual(project.layers[2].shape_style.fill, '#00ff00')
		self.assertEqual(project.layers[2].shape_style.width, 100.0)

	#============================================
	def test_effects_and_expressions(self) -> None:
		"""Ensure EFCT and EXPR chunks attach to the current layer."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1)
		builder.effect("Gaussian Blur")
		builder.effect("Glow", enabled=False)
		builder.expression("wiggle(2, 10)")
		layer = load_project(builder).layers[0]
		self.assertEqual(layer.effects, [
			{'name': 'Gaussian Blur', 'enabled': True},
			{'name': 'Glow', 'enabled': False},
		])
		self.assertEqual(layer.expressions, ['wiggle(2, 10)'])

	#============================================
	def test_orphan_detail_chunks_warn(self) -> None:
		"""Ensure effect and keyframe chunks with no layer are dropped."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.effect("Blur")
		builder.keyframe(0, 1)
		project = load_project(builder)
		self.assertEqual(project.layers, [])
		self.assertEqual(warning_types(project), ['OrphanChunk', 'OrphanChunk'])

#============================================

class KeyframeExtractionTest(unittest.TestCase):
	#============================================
	def test_keyframes_sorted_stably(self) -> None:
		"""Ensure keyframes sort by time and keep duplicate timestamps."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1)
		builder.animation("opacity")
		builder.keyframe(2, 10, 'hold')
		builder.keyframe(0, 0, 'linear')
		builder.keyframe(2, 20, 'EaseIn')
		layer = load_project(builder).layers[0]
		self.assertEqual([(k.time, k.value) for k in layer.keyframes],
			[(0.0, 0.0), (2.0, 10.0), (2.0, 20.0)])
		self.assertEqual([k.property for k in layer.keyframes], ['opacity'] * 3)
		self.assertEqual(layer.keyframes[2].interpolation, 'ease_in')

	#============================================
	def test_keyframe_limit_truncates(self) -> None:
		"""Ensure keyframes past the per-layer cap are dropped with one warning."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1)
		builder.animation("position")
		for index in range(6):
			builder.keyframe(index, index)
		builder.layer(layer_id=2)
		builder.keyframe(0, 1)
		project = load_project(builder, ParseConfig(max_keyframes=4))
		self.assertEqual(len(project.layers[0].keyframes), 4)
		self.assertEqual(len(project.layers[1].keyframes), 1)
		self.assertEqual(warning_types(project), ['KeyframeLimitExceeded'])
		self.assertEqual(project.warnings[0].context['entity'], 'layer_1')

	#============================================
	def test_keyframe_without_animation_uses_value(self) -> None:
		"""Ensure keyframes outside an ANIM chunk use the generic property."""
		builder = rifx_writer.ContainerBuilder()
		builder.composition(comp_id=1)
		builder.layer(layer_id=1)
		builder.keyframe(1, 5)
		layer = load_project(builder).layers[0]
		self.assertEqual(layer.keyframes[0].property, 'value')

#============================================

class AssetCatalogTest(unittest.TestCase):
	#============================================
	def test_assets_deduplicated_by_path(self) -> None:
		"""Ensure layers sharing a source share one catalog entry."""
		builder = rifx_writer.ContainerBuilder()
		builder.footage(source="media/a.mov", asset_type='video', width=640, height=480,
			duration=8, has_audio=True)
		builder.composition(comp_id=1)
		builder.layer(layer_id=1, layer_type='av', source="media/a.mov")
		builder.layer(layer_id=2, layer_type='av', source="media/a.mov")
		builder.layer(layer_id=3, layer_type='still', source="media/b.png")
		project = load_project(builder)
		self.assertEqual(len(project.assets), 2)
		first = project.layers[0].asset_id
		self.assertEqual(first, project.layers[1].asset_id)
		self.assertEqual(first, make_asset_id("media/a.mov"))
		asset = project.assets.get(first)
		self.assertIs(asset, project.assets.get(project.layers[1].asset_id))
		self.assertEqual(asset.canonical_type, 'video')
		self.assertEqual((asset.width, asset.height), (640, 480))
		self.assertTrue(asset.has_audio)
		self.assertEqual(project.assets.get(project.layers[2].asset_id).canonical_type,
			'image')

	#============================================
	def test_first_registration_fixes_type(self) -> None:
		"""Ensure a later registration cannot change the asset type."""
		builder = rifx_writer.ContainerBuilder()
		builder.footage(source="media/track.wav", asset_type='audio')
		builder.composition(comp_id=1)
		builder.layer(layer_id=1, layer_type='video', source="media/track.wav")
		project = load_project(builder)
		self.assertEqual(project.assets.assets()[0].canonical_type, 'audio')

	#============================================
	def test_asset_id_is_deterministic(self) -> None:
		"""Ensure asset ids depend only on the path."""
		self.assertEqual(make_asset_id("x.mp4"), make_asset_id("x.mp4"))
		self.assertNotEqual(make_asset_id("x.mp4"), make_asset_id("y.mp4"))
		self.assertTrue(make_asset_id("x.mp4").startswith('asset_'))
		self.assertEqual(len(make_asset_id("x.mp4")), len('asset_') + 12)

	#============================================
	def test_footage_without_path_warns(self) -> None:
		"""Ensure a FOOT chunk with no source path is reported."""
		builder = rifx_writer.ContainerBuilder()
		builder.raw(b'FOOT', b'video\x00\x00\x00')
		project = load_project(builder)
		self.assertEqual(len(project.assets), 0)
		self.assertEqual(warning_types(project), ['OrphanChunk'])

#============================================

def main() -> None:
	"""Run the unit tests."""
	unittest.main()

#============================================

if __name__ == "__main__":
	main()
