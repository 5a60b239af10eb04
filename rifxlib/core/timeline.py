#!/usr/bin/env python3

import copy
from rifxlib.core import errors
from rifxlib.core import utils
from rifxlib.core.merge import MergeFieldResolver

#============================================

REQUIRED_TEMPLATE_KEYS = ('timeline',)
REQUIRED_TIMELINE_KEYS = ('duration', 'fps', 'tracks')
REQUIRED_TRACK_KEYS = ('id', 'clips')
REQUIRED_CLIP_KEYS = ('id', 'type', 'start', 'duration')

#============================================

def _is_number(value) -> bool:
	if isinstance(value, bool):
		return False
	return isinstance(value, (int, float)) and utils.is_usable_number(value)

#============================================

def validate_template(template) -> None:
	"""
	Check the structure of a template, built or hand written.

	Raises TemplateInvalid naming the first offending path.
	"""
	if not isinstance(template, dict):
		raise errors.TemplateInvalid("template must be a mapping", path='')
	for key in REQUIRED_TEMPLATE_KEYS:
		if key not in template:
			raise errors.TemplateInvalid(f"template missing {key}", path=key)
	timeline = template['timeline']
	if not isinstance(timeline, dict):
		raise errors.TemplateInvalid("timeline must be a mapping", path='timeline')
	for key in REQUIRED_TIMELINE_KEYS:
		if key not in timeline:
			raise errors.TemplateInvalid(f"timeline missing {key}", path=f"timeline.{key}")
	if not _is_number(timeline['duration']) or timeline['duration'] <= 0:
		raise errors.TemplateInvalid("timeline duration must be a positive number",
			path='timeline.duration')
	if not _is_number(timeline['fps']) or timeline['fps'] <= 0:
		raise errors.TemplateInvalid("timeline fps must be a positive number",
			path='timeline.fps')
	if not isinstance(timeline['tracks'], list):
		raise errors.TemplateInvalid("timeline tracks must be a list",
			path='timeline.tracks')
	track_ids = set()
	clip_ids = set()
	for track_index, track in enumerate(timeline['tracks']):
		track_path = f"timeline.tracks[{track_index}]"
		if not isinstance(track, dict):
			raise errors.TemplateInvalid("track must be a mapping", path=track_path)
		for key in REQUIRED_TRACK_KEYS:
			if key not in track:
				raise errors.TemplateInvalid(f"track missing {key}", path=f"{track_path}.{key}")
		if track['id'] in track_ids:
			raise errors.TemplateInvalid(f"duplicate track id: {track['id']}",
				path=f"{track_path}.id")
		track_ids.add(track['id'])
		if track.get('duration') is not None:
			if not _is_number(track['duration']) or track['duration'] <= 0:
				raise errors.TemplateInvalid("track duration must be a positive number",
					path=f"{track_path}.duration")
		if not isinstance(track['clips'], list):
			raise errors.TemplateInvalid("track clips must be a list",
				path=f"{track_path}.clips")
		for clip_index, clip in enumerate(track['clips']):
			clip_path = f"{track_path}.clips[{clip_index}]"
			if not isinstance(clip, dict):
				raise errors.TemplateInvalid("clip must be a mapping", path=clip_path)
			for key in REQUIRED_CLIP_KEYS:
				if key not in clip:
					raise errors.TemplateInvalid(f"clip missing {key}",
						path=f"{clip_path}.{key}")
			if clip['id'] in clip_ids:
				raise errors.TemplateInvalid(f"duplicate clip id: {clip['id']}",
					path=f"{clip_path}.id")
			clip_ids.add(clip['id'])
			for key in ('start', 'duration'):
				if not _is_number(clip[key]):
					raise errors.TemplateInvalid(f"clip {key} must be a number",
						path=f"{clip_path}.{key}")

#============================================

def collapse_keyframes(keyframes: list) -> list:
	"""
	Drop keyframes shadowed by a later one at the same property and time.

	The surviving keyframe keeps the position of the first occurrence, so
	time order from extraction is preserved.
	"""
	latest = {}
	order = []
	for keyframe in keyframes:
		key = (keyframe.get('property', 'value'), keyframe.get('time'))
		if key not in latest:
			order.append(key)
		latest[key] = keyframe
	return [dict(latest[key]) for key in order]

#============================================

class TimelineCompiler():
	def __init__(self, config):
		self.config = config
		self.policy = config.time_range_policy

	#============================
	def compile(self, template: dict, merge_fields: dict = None,
		resolver: MergeFieldResolver = None) -> dict:
		validate_template(template)
		if resolver is None:
			resolver = MergeFieldResolver.from_config(self.config, merge_fields)
		resolved = resolver.resolve_template(template)
		timeline = resolved['timeline']
		fps = utils.parse_fps(timeline['fps'])
		warnings = []
		tracks = []
		for track in timeline['tracks']:
			tracks.append(self._compile_track(track, timeline, fps, warnings))
		resolution = timeline.get('resolution', {})
		plan = {
			'fps': timeline['fps'],
			'duration': timeline['duration'],
			'duration_frames': utils.frames_from_seconds(timeline['duration'], fps),
			'resolution': copy.deepcopy(resolution),
			'background': copy.deepcopy(timeline.get('background', {})),
			'tracks': tracks,
			'warnings': [warning.to_dict() for warning in warnings],
			'unresolved': resolver.unresolved_names(),
		}
		metadata = resolved.get('metadata')
		if isinstance(metadata, dict) and metadata.get('id') is not None:
			plan['template_id'] = metadata['id']
		return plan

	#============================
	def _compile_track(self, track: dict, timeline: dict, fps, warnings: list) -> dict:
		track_duration = track.get('duration')
		if track_duration is None:
			track_duration = timeline['duration']
		compiled_clips = []
		for clip in track['clips']:
			compiled_clips.append(self._compile_clip(clip, track, track_duration, fps,
				warnings))
		compiled = {
			'id': track['id'],
			'duration': track_duration,
			'duration_frames': utils.frames_from_seconds(track_duration, fps),
			'clips': compiled_clips,
		}
		if track.get('composition') is not None:
			compiled['composition'] = track['composition']
		return compiled

	#============================
	def _compile_clip(self, clip: dict, track: dict, track_duration: float, fps,
		warnings: list) -> dict:
		start = clip['start']
		duration = clip['duration']
		end = start + duration
		if start < 0 or duration < 0 or end > track_duration:
			error = errors.TimeRangeExceeded(
				f"clip {clip['id']} window [{start}, {end}) exceeds track "
				f"{track['id']} duration {track_duration}",
				clip_id=clip['id'], track_id=track['id'], start=start, end=end,
				limit=track_duration)
			if self.policy == 'fail':
				raise error
			if self.policy == 'report':
				warnings.append(error)
			start = utils.clamp_number(start, 0, track_duration)
			end = utils.clamp_number(end, start, track_duration)
			duration = end - start
		compiled = copy.deepcopy(clip)
		compiled['start'] = start
		compiled['duration'] = duration
		compiled['start_frame'] = utils.frames_from_seconds(start, fps)
		compiled['duration_frames'] = utils.frames_from_seconds(duration, fps)
		if isinstance(clip.get('keyframes'), list):
			compiled['keyframes'] = collapse_keyframes(clip['keyframes'])
		return compiled
