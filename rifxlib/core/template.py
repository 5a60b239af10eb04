#!/usr/bin/env python3

import hashlib
import json
from rifxlib.core import merge
from rifxlib.core import registry
from rifxlib.core.entities import ShapeStyle

#============================================

TEMPLATE_VERSION = '1.0'

#============================================

def template_to_json(data: dict) -> str:
	return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

#============================================

class TemplateBuilder():
	"""
	Assemble extracted compositions, layers and assets into a template.

	Output depends only on the extracted entities and the config, so two
	builds of the same project serialize to identical bytes.
	"""
	def __init__(self, config):
		self.config = config
		self.mapper = config.type_mapper()

	#============================
	def build(self, project, name: str = None) -> dict:
		main = project.compositions[0]
		tracks = []
		clips_by_comp = {}
		for composition in project.compositions:
			clips = self._build_clips(project, composition)
			clips_by_comp[composition.id] = clips
			tracks.extend(self._build_tracks(composition, clips))
		timeline = {
			'duration': main.duration,
			'fps': main.frame_rate,
			'resolution': {'width': main.width, 'height': main.height},
			'background': {'color': self._background_color(main, clips_by_comp[main.id])},
			'tracks': tracks,
		}
		template = {
			'metadata': self._build_metadata(project, timeline, name),
			'timeline': timeline,
			'mergeFields': self._build_merge_fields(tracks),
		}
		return template

	#============================
	def _clip_sort_key(self, clip: dict, extraction_index: int) -> tuple:
		return (self.mapper.priority(clip['type']), clip['start'], extraction_index)

	#============================
	def _build_clips(self, project, composition) -> list:
		keyed = []
		for layer in project.layers_for(composition.id):
			clip = self._layer_to_clip(project, layer)
			keyed.append((self._clip_sort_key(clip, layer.extraction_index), clip))
		keyed.sort(key=lambda item: item[0])
		return [clip for _, clip in keyed]

	#============================
	def _build_tracks(self, composition, clips: list) -> list:
		if len(clips) == 0:
			return []
		if self.config.track_layout == 'flat':
			return [self._track(f"{composition.id}:main", composition, clips)]
		buckets = {}
		for clip in clips:
			buckets.setdefault(clip['type'], []).append(clip)
		ordered = sorted(buckets, key=lambda bucket: (self.mapper.priority(bucket), bucket))
		tracks = []
		for bucket in ordered:
			tracks.append(self._track(f"{composition.id}:{bucket}", composition,
				buckets[bucket]))
		return tracks

	#============================
	def _track(self, track_id: str, composition, clips: list) -> dict:
		return {
			'id': track_id,
			'composition': composition.id,
			'duration': composition.duration,
			'clips': clips,
		}

	#============================
	def _clip_type(self, layer) -> str:
		if layer.canonical_type != 'shape':
			return layer.canonical_type
		lowered = layer.name.lower()
		for keyword in self.config.background_keywords:
			if keyword in lowered:
				return 'background'
		return 'shape'

	#============================
	def _layer_to_clip(self, project, layer) -> dict:
		clip_type = self._clip_type(layer)
		clip = {
			'id': layer.id,
			'type': clip_type,
			'name': layer.name,
			'composition': layer.composition_id,
			'start': layer.start_time,
			'duration': layer.duration,
			'opacity': layer.opacity,
			'position': {'x': layer.position[0], 'y': layer.position[1]},
			'scale': {'x': layer.scale[0], 'y': layer.scale[1]},
			'rotation': layer.rotation,
		}
		if clip_type == 'text':
			clip['text'] = layer.text if layer.text is not None else ''
			if layer.text_style is not None:
				clip['style'] = layer.text_style.to_dict()
			else:
				clip['style'] = {
					'fontSize': self.config.font_size,
					'fontFamily': self.config.font_family,
					'color': self.config.text_color,
				}
		elif clip_type in ('shape', 'background'):
			style = layer.shape_style if layer.shape_style is not None else ShapeStyle()
			clip['shape'] = style.to_dict()
			if clip_type == 'background':
				clip['color'] = style.fill
		if layer.asset_id is not None:
			asset = project.assets.get(layer.asset_id)
			clip['asset'] = asset.id
			clip['src'] = asset.source_path
		if len(layer.keyframes) > 0:
			clip['keyframes'] = [keyframe.to_dict() for keyframe in layer.keyframes]
		if len(layer.effects) > 0:
			clip['effects'] = [dict(effect) for effect in layer.effects]
		if len(layer.expressions) > 0:
			clip['expressions'] = list(layer.expressions)
		return clip

	#============================
	def _background_color(self, composition, clips: list) -> str:
		for clip in clips:
			if clip['type'] == 'background':
				return clip['color']
		return composition.background_color

	#============================
	def _build_merge_fields(self, tracks: list) -> dict:
		names = []
		for track in tracks:
			for clip in track['clips']:
				merge.find_clip_variables(clip, names)
		defaults = self.config.merge_field_defaults
		fields = {}
		for name in names:
			fields[name] = defaults.get(name, defaults.get(name.lower(), ''))
		return fields

	#============================
	def _complexity(self, project) -> str:
		layer_count = len(project.layers)
		animated = sum(1 for layer in project.layers if len(layer.keyframes) > 0)
		effect_count = sum(len(layer.effects) for layer in project.layers)
		if layer_count > 10 or animated > 5 or effect_count > 3:
			return 'high'
		if layer_count > 5 or animated > 2 or effect_count > 1:
			return 'medium'
		return 'low'

	#============================
	def _build_metadata(self, project, timeline: dict, name: str) -> dict:
		canonical = json.dumps(timeline, sort_keys=True, separators=(',', ':'))
		digest = hashlib.sha1(canonical.encode('utf-8')).hexdigest()
		compositions = []
		for composition in project.compositions:
			compositions.append({
				'id': composition.id,
				'name': composition.name,
				'width': composition.width,
				'height': composition.height,
				'fps': composition.frame_rate,
				'duration': composition.duration,
				'background': composition.background_color,
			})
		stats = {
			'chunks': project.chunk_count,
			'compositions': len(project.compositions),
			'layers': len(project.layers),
			'keyframes': sum(len(layer.keyframes) for layer in project.layers),
			'effects': sum(len(layer.effects) for layer in project.layers),
			'expressions': sum(len(layer.expressions) for layer in project.layers),
			'assets': len(project.assets),
		}
		return {
			'id': f"tpl_{digest[:16]}",
			'name': name or self.config.template_name,
			'version': TEMPLATE_VERSION,
			'source': 'rifx',
			'method': self.config.analysis_method.value,
			'registryVersion': registry.REGISTRY_VERSION,
			'complexity': self._complexity(project),
			'compositions': compositions,
			'assets': [asset.to_dict() for asset in project.assets.assets()],
			'stats': stats,
			'warnings': [warning.to_dict() for warning in project.warnings],
		}
