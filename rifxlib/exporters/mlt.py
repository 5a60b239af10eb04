
import argparse
import json
import os
import lxml.etree
from rifxlib.core import utils

#============================================

def parse_args():
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="Export a rifx render plan to MLT XML")
	parser.add_argument('-i', '--input', dest='plan_file', required=True,
		help='render plan JSON file written by rifx_cli.py')
	parser.add_argument('-o', '--output', dest='output_file',
		help='output MLT XML file path')
	args = parser.parse_args()
	return args

#============================================

def reduce_fraction(num: int, den: int) -> tuple:
	if den == 0:
		return (num, den)
	a = num
	b = den
	while b != 0:
		a, b = b, a % b
	gcd = a if a != 0 else 1
	return (num // gcd, den // gcd)

#============================================

def pack_lanes(clips: list) -> list:
	"""
	Split clips into lanes whose clips do not overlap in time.

	A playlist plays its entries back to back, so overlapping clips of one
	track need separate playlists. Each clip goes to the first lane that
	is free at its start frame.
	"""
	lanes = []
	lane_ends = []
	for clip in clips:
		if clip['duration_frames'] <= 0:
			continue
		placed = False
		for index, lane_end in enumerate(lane_ends):
			if lane_end <= clip['start_frame']:
				lanes[index].append(clip)
				lane_ends[index] = clip['start_frame'] + clip['duration_frames']
				placed = True
				break
		if not placed:
			lanes.append([clip])
			lane_ends.append(clip['start_frame'] + clip['duration_frames'])
	for lane in lanes:
		lane.sort(key=lambda clip: clip['start_frame'])
	return lanes

#============================================

def safe_id(raw_id: str) -> str:
	return ''.join(ch if ch.isalnum() or ch in '_-' else '_' for ch in str(raw_id))

#============================================
class MltExporter():
	def __init__(self, plan: dict, output_file: str):
		self.plan = plan
		self.output_file = output_file
		self.fps = utils.parse_fps(plan['fps'])
		self.producer_counter = 0
		self.root = None
		self.playlist_ids = []

	#============================
	def export(self) -> None:
		self.root = self.build()
		self._write_output()
		utils.log_info(f"wrote {self.output_file}")

	#============================
	def build(self):
		self.producer_counter = 0
		self.playlist_ids = []
		self.root = lxml.etree.Element('mlt')
		self._emit_profile()
		self._emit_background()
		for track in self.plan['tracks']:
			for lane_index, lane in enumerate(pack_lanes(track['clips'])):
				playlist_id = f"{safe_id(track['id'])}_{lane_index}"
				self._emit_playlist(playlist_id, lane)
		self._emit_tractor()
		return self.root

	#============================
	def _emit_profile(self) -> None:
		resolution = self.plan.get('resolution') or {}
		width = int(resolution.get('width', 1920))
		height = int(resolution.get('height', 1080))
		(display_num, display_den) = reduce_fraction(width, height)
		profile = lxml.etree.SubElement(self.root, 'profile')
		profile.set('description', 'rifx')
		profile.set('width', str(width))
		profile.set('height', str(height))
		profile.set('progressive', '1')
		profile.set('sample_aspect_num', '1')
		profile.set('sample_aspect_den', '1')
		profile.set('display_aspect_num', str(display_num))
		profile.set('display_aspect_den', str(display_den))
		profile.set('frame_rate_num', str(self.fps.numerator))
		profile.set('frame_rate_den', str(self.fps.denominator))
		profile.set('colorspace', '709')

	#============================
	def _emit_background(self) -> None:
		duration_frames = max(1, self.plan['duration_frames'])
		background = self.plan.get('background') or {}
		color = background.get('color') or '#000000'
		playlist_elem = lxml.etree.SubElement(self.root, 'playlist')
		playlist_elem.set('id', 'background')
		producer_id = self._emit_color_producer(color, duration_frames)
		self._emit_entry(playlist_elem, producer_id, duration_frames)
		self.playlist_ids.append('background')

	#============================
	def _emit_playlist(self, playlist_id: str, clips: list) -> None:
		playlist_elem = lxml.etree.SubElement(self.root, 'playlist')
		playlist_elem.set('id', playlist_id)
		position = 0
		for clip in clips:
			gap = clip['start_frame'] - position
			if gap > 0:
				self._emit_blank_entry(playlist_elem, gap)
			self._emit_clip(playlist_elem, clip)
			position = clip['start_frame'] + clip['duration_frames']
		self.playlist_ids.append(playlist_id)

	#============================
	def _emit_clip(self, playlist_elem, clip: dict) -> None:
		clip_type = clip['type']
		duration_frames = clip['duration_frames']
		if clip_type in ('background', 'shape'):
			color = clip.get('color')
			if color is None:
				color = (clip.get('shape') or {}).get('fill', '#808080')
			producer_id = self._emit_color_producer(color, duration_frames)
		elif clip_type == 'text':
			producer_id = self._emit_text_producer(clip, duration_frames)
		elif clip_type in ('video', 'image', 'audio'):
			if clip.get('src') is None:
				utils.log_info(f"clip {clip['id']} has no source, exported as a gap")
				self._emit_blank_entry(playlist_elem, duration_frames)
				return
			producer_id = self._emit_source_producer(clip, duration_frames)
		else:
			raise RuntimeError(f"clip type not supported for MLT export: {clip_type}")
		self._emit_entry(playlist_elem, producer_id, duration_frames)

	#============================
	def _emit_entry(self, playlist_elem, producer_id: str, duration_frames: int) -> None:
		playlist_entry = lxml.etree.SubElement(playlist_elem, 'entry')
		playlist_entry.set('producer', producer_id)
		playlist_entry.set('in', '0')
		playlist_entry.set('out', str(duration_frames - 1))

	#============================
	def _emit_blank_entry(self, playlist_elem, duration_frames: int) -> None:
		if duration_frames <= 0:
			raise RuntimeError("blank duration must be positive")
		blank_elem = lxml.etree.SubElement(playlist_elem, 'blank')
		blank_elem.set('length', str(duration_frames))

	#============================
	def _emit_source_producer(self, clip: dict, duration_frames: int) -> str:
		producer_id = self._next_producer_id('source')
		producer = lxml.etree.SubElement(self.root, 'producer')
		producer.set('id', producer_id)
		service = 'qimage' if clip['type'] == 'image' else 'avformat'
		self._set_property(producer, 'mlt_service', service)
		self._set_property(producer, 'resource', clip['src'])
		if clip['type'] == 'image':
			self._set_property(producer, 'length', str(duration_frames))
		return producer_id

	#============================
	def _emit_text_producer(self, clip: dict, duration_frames: int) -> str:
		style = clip.get('style') or {}
		producer_id = self._next_producer_id('text')
		producer = lxml.etree.SubElement(self.root, 'producer')
		producer.set('id', producer_id)
		self._set_property(producer, 'mlt_service', 'qtext')
		self._set_property(producer, 'text', str(clip.get('text', '')))
		self._set_property(producer, 'family', str(style.get('fontFamily', 'Arial')))
		self._set_property(producer, 'size', str(style.get('fontSize', 48)))
		self._set_property(producer, 'fgcolour', str(style.get('color', '#ffffff')))
		self._set_property(producer, 'length', str(duration_frames))
		self._set_property(producer, 'out', str(duration_frames - 1))
		return producer_id

	#============================
	def _emit_color_producer(self, color: str, duration_frames: int) -> str:
		producer_id = self._next_producer_id('color')
		producer = lxml.etree.SubElement(self.root, 'producer')
		producer.set('id', producer_id)
		self._set_property(producer, 'mlt_service', 'color')
		self._set_property(producer, 'resource', color)
		self._set_property(producer, 'length', str(duration_frames))
		self._set_property(producer, 'out', str(duration_frames - 1))
		return producer_id

	#============================
	def _emit_tractor(self) -> None:
		tractor = lxml.etree.SubElement(self.root, 'tractor')
		tractor.set('id', 'tractor0')
		if self.plan.get('template_id') is not None:
			self._set_property(tractor, 'rifx:template', self.plan['template_id'])
		multitrack = lxml.etree.SubElement(tractor, 'multitrack')
		for playlist_id in self.playlist_ids:
			track_elem = lxml.etree.SubElement(multitrack, 'track')
			track_elem.set('producer', playlist_id)

	#============================
	def _set_property(self, parent, name: str, value: str) -> None:
		prop = lxml.etree.SubElement(parent, 'property')
		prop.set('name', name)
		prop.text = value

	#============================
	def _next_producer_id(self, prefix: str) -> str:
		self.producer_counter += 1
		return f"{prefix}_{self.producer_counter:04d}"

	#============================
	def _write_output(self) -> None:
		os.makedirs(os.path.dirname(self.output_file) or '.', exist_ok=True)
		tree = lxml.etree.ElementTree(self.root)
		tree.write(self.output_file, encoding='utf-8', xml_declaration=True)

#============================================
#============================================
#============================================


def main():
	args = parse_args()
	with open(args.plan_file, 'r') as plan_file:
		plan = json.load(plan_file)
	output_file = args.output_file
	if output_file is None:
		output_file = os.path.splitext(args.plan_file)[0] + ".mlt"
	exporter = MltExporter(plan, output_file)
	exporter.export()


if __name__ == '__main__':
	main()
