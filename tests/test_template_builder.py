
"""
Pytest coverage for template assembly.
"""

# Standard Library
import os
import sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)
TOOLS_DIR = os.path.join(REPO_ROOT, "tools")
if TOOLS_DIR not in sys.path:
	sys.path.insert(0, TOOLS_DIR)
import rifx_writer

# local repo modules
from rifxlib.core import registry
from rifxlib.core.config import ParseConfig
from rifxlib.core.loader import ProjectLoader
from rifxlib.core.loader import classify_chunks
from rifxlib.core.scanner import ChunkScanner
from rifxlib.core.template import TemplateBuilder
from rifxlib.core.template import template_to_json

#============================================

def build_template(builder, config: ParseConfig = None, name: str = None) -> dict:
	config = config if config is not None else ParseConfig()
	chunks = ChunkScanner(builder.to_bytes(), config).scan()
	project = ProjectLoader(config).load(classify_chunks(chunks))
	return TemplateBuilder(config).build(project, name=name)

#============================================

def _mixed_builder():
	builder = rifx_writer.ContainerBuilder()
	builder.footage(source="media/clip.mp4", asset_type='video')
	builder.composition(comp_id=1, width=1920, height=1080, fps=24, duration=10)
	builder.layer(layer_id=1, layer_type='text', start=0, duration=4, name="Title")
	builder.text(text="{{title}}")
	builder.layer(layer_id=2, layer_type='av', start=2, duration=6, name="Clip",
		source="media/clip.mp4")
	builder.layer(layer_id=3, layer_type='solid', start=0, duration=10,
		name="Background Solid")
	builder.shape(fill='#223344')
	builder.layer(layer_id=4, layer_type='image', start=1, duration=2, name="Logo",
		source="media/logo.png")
	builder.layer(layer_id=5, layer_type='shape', start=3, duration=1, name="Box")
	builder.layer(layer_id=6, layer_type='image', start=0, duration=2, name="Badge",
		source="media/badge.png")
	return builder

#============================================

def _clips(template: dict) -> list:
	clips = []
	for track in template['timeline']['tracks']:
		clips.extend(track['clips'])
	return clips

#============================================

def test_single_text_layer_scenario() -> None:
	builder = rifx_writer.ContainerBuilder()
	builder.composition(comp_id=1, width=1920, height=1080, fps=24, duration=10)
	builder.layer(layer_id=1, layer_type='text', start=1, duration=8, name="Title")
	builder.text(text="Hello")
	template = build_template(builder)
	timeline = template['timeline']
	assert timeline['resolution'] == {'width': 1920, 'height': 1080}
	assert timeline['fps'] == 24
	assert len(timeline['tracks']) == 1
	clips = timeline['tracks'][0]['clips']
	assert len(clips) == 1
	assert clips[0]['type'] == 'text'
	assert clips[0]['start'] == 1
	assert clips[0]['duration'] == 8
	assert clips[0]['text'] == 'Hello'

#============================================

def test_bucketed_tracks_follow_priority() -> None:
	template = build_template(_mixed_builder())
	track_ids = [track['id'] for track in template['timeline']['tracks']]
	assert track_ids == ['comp_1:background', 'comp_1:shape', 'comp_1:image',
		'comp_1:video', 'comp_1:text']
	image_track = template['timeline']['tracks'][2]
	# equal priority orders by start time, then extraction order
	assert [clip['name'] for clip in image_track['clips']] == ['Badge', 'Logo']
	for track in template['timeline']['tracks']:
		assert track['duration'] == 10
		assert track['composition'] == 'comp_1'

#============================================

def test_flat_layout_orders_background_before_text() -> None:
	config = ParseConfig(track_layout='flat')
	template = build_template(_mixed_builder(), config)
	tracks = template['timeline']['tracks']
	assert [track['id'] for track in tracks] == ['comp_1:main']
	types = [clip['type'] for clip in tracks[0]['clips']]
	assert types == ['background', 'shape', 'image', 'image', 'video', 'text']
	priorities = [config.track_priority[clip_type] for clip_type in types]
	assert priorities == sorted(priorities)

#============================================

def test_background_layer_sets_timeline_color() -> None:
	template = build_template(_mixed_builder())
	assert template['timeline']['background'] == {'color': '#223344'}
	background = template['timeline']['tracks'][0]['clips'][0]
	assert background['type'] == 'background'
	assert background['color'] == '#223344'

#============================================

def test_background_defaults_to_composition_color() -> None:
	builder = rifx_writer.ContainerBuilder()
	builder.composition(comp_id=1, background='#0a0b0c')
	builder.layer(layer_id=1, layer_type='text')
	template = build_template(builder)
	assert template['timeline']['background'] == {'color': '#0a0b0c'}

#============================================

def test_media_clips_reference_assets() -> None:
	template = build_template(_mixed_builder())
	clip = [clip for clip in _clips(template) if clip['name'] == 'Clip'][0]
	assert clip['src'] == 'media/clip.mp4'
	asset_ids = [asset['id'] for asset in template['metadata']['assets']]
	assert clip['asset'] in asset_ids
	assert len(asset_ids) == 3

#============================================

def test_merge_fields_detected_with_defaults() -> None:
	builder = rifx_writer.ContainerBuilder()
	builder.composition(comp_id=1)
	builder.layer(layer_id=1, layer_type='text', name="Headline")
	builder.text(text="{{title}} by ${company}")
	builder.layer(layer_id=2, layer_type='text', name="%speaker%")
	builder.text(text="[title]")
	template = build_template(builder)
	assert template['mergeFields'] == {
		'title': 'Main Title',
		'company': 'Your Company',
		'speaker': '',
	}

#============================================

def test_merge_fields_detected_in_nested_effects() -> None:
	builder = rifx_writer.ContainerBuilder()
	builder.composition(comp_id=1)
	builder.layer(layer_id=1, layer_type='text', name="Headline")
	builder.text(text="Plain")
	builder.effect("{{brand}} Glow")
	template = build_template(builder)
	assert template['mergeFields'] == {'brand': ''}

#============================================

def test_multiple_compositions() -> None:
	builder = rifx_writer.ContainerBuilder()
	builder.composition(comp_id=1, width=1280, height=720, fps=30, duration=5)
	builder.layer(layer_id=1, layer_type='text')
	builder.composition(comp_id=2, duration=20)
	builder.layer(layer_id=2, layer_type='text')
	template = build_template(builder)
	timeline = template['timeline']
	assert timeline['duration'] == 5
	assert timeline['fps'] == 30
	assert [track['id'] for track in timeline['tracks']] == ['comp_1:text', 'comp_2:text']
	assert [track['duration'] for track in timeline['tracks']] == [5, 20]
	assert len(template['metadata']['compositions']) == 2

#============================================

def test_metadata_contents() -> None:
	builder = _mixed_builder()
	builder.layer(layer_id=7, layer_type='text')
	builder.effect("Glow")
	builder.animation("opacity")
	builder.keyframe(0, 0)
	builder.keyframe(1, 100)
	template = build_template(builder, name="Promo")
	metadata = template['metadata']
	assert metadata['name'] == 'Promo'
	assert metadata['method'] == 'binary_heuristic'
	assert metadata['registryVersion'] == registry.REGISTRY_VERSION
	assert metadata['stats']['layers'] == 7
	assert metadata['stats']['keyframes'] == 2
	assert metadata['stats']['effects'] == 1
	assert metadata['id'].startswith('tpl_')
	assert metadata['complexity'] == 'medium'
	clip = [clip for clip in _clips(template) if clip['id'] == 'layer_7'][0]
	assert clip['effects'] == [{'name': 'Glow', 'enabled': True}]
	assert [keyframe['value'] for keyframe in clip['keyframes']] == [0, 100]

#============================================

def test_template_output_is_deterministic() -> None:
	first = template_to_json(build_template(_mixed_builder()))
	second = template_to_json(build_template(_mixed_builder()))
	assert first == second

#============================================

def test_template_id_tracks_timeline() -> None:
	first = build_template(_mixed_builder())
	builder = _mixed_builder()
	builder.layer(layer_id=8, layer_type='text')
	second = build_template(builder)
	assert first['metadata']['id'] != second['metadata']['id']
