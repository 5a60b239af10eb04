#!/usr/bin/env python3

import dataclasses

#============================================

@dataclasses.dataclass
class Composition():
	id: str
	name: str
	width: int
	height: int
	frame_rate: float
	duration: float
	background_color: str
	offset: int = -1

#============================================

@dataclasses.dataclass
class Keyframe():
	time: float
	value: float
	interpolation: str
	property: str = 'value'

	#============================
	def to_dict(self) -> dict:
		return {
			'property': self.property,
			'time': self.time,
			'value': self.value,
			'interpolation': self.interpolation,
		}

#============================================

@dataclasses.dataclass
class TextStyle():
	font_size: float
	font_family: str
	color: str

	#============================
	def to_dict(self) -> dict:
		return {
			'fontSize': self.font_size,
			'fontFamily': self.font_family,
			'color': self.color,
		}

#============================================

@dataclasses.dataclass
class ShapeStyle():
	kind: str = 'rectangle'
	fill: str = '#808080'
	stroke: str = '#000000'
	stroke_width: float = 0.0
	width: float = None
	height: float = None

	#============================
	def to_dict(self) -> dict:
		data = {
			'kind': self.kind,
			'fill': self.fill,
			'stroke': self.stroke,
			'strokeWidth': self.stroke_width,
		}
		if self.width is not None and self.height is not None:
			data['size'] = {'width': self.width, 'height': self.height}
		return data

#============================================

@dataclasses.dataclass
class Layer():
	id: str
	name: str
	composition_id: str
	raw_type: str
	canonical_type: str
	start_time: float
	duration: float
	opacity: float
	position: tuple
	scale: tuple
	rotation: float
	# position in the chunk stream, the final ordering tie-break
	extraction_index: int = 0
	source_path: str = None
	asset_id: str = None
	text: str = None
	text_style: TextStyle = None
	shape_style: ShapeStyle = None
	effects: list = dataclasses.field(default_factory=list)
	expressions: list = dataclasses.field(default_factory=list)
	keyframes: list = dataclasses.field(default_factory=list)
	keyframes_truncated: bool = False

#============================================

@dataclasses.dataclass
class Asset():
	id: str
	canonical_type: str
	source_path: str
	width: int = None
	height: int = None
	duration: float = None
	has_audio: bool = False

	#============================
	def to_dict(self) -> dict:
		data = {
			'id': self.id,
			'type': self.canonical_type,
			'src': self.source_path,
			'hasAudio': self.has_audio,
		}
		if self.width is not None and self.height is not None:
			data['size'] = {'width': self.width, 'height': self.height}
		if self.duration is not None:
			data['duration'] = self.duration
		return data
