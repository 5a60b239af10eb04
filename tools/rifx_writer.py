#!/usr/bin/env python3

"""
rifx_writer.py

Helpers to build RIFX project container bytes for fixtures and tests.
"""

# Standard Library
import argparse
import math
import struct

# PIP3 modules
import yaml

#============================================

def f32(value) -> bytes:
	"""
	Pack a big-endian float32; None packs as NaN, which reads as absent.

	Args:
		value: Number or None.

	Returns:
		bytes: Four packed bytes.
	"""
	if value is None:
		value = math.nan
	return struct.pack('>f', float(value))

#============================================

def u32(value) -> bytes:
	return struct.pack('>I', int(value or 0))

#============================================

def rgb(color) -> bytes:
	"""
	Pack a color as three bytes.

	Args:
		color: '#rrggbb' string or (r, g, b) tuple.

	Returns:
		bytes: Packed channels.
	"""
	if color is None:
		return b'\x00\x00\x00'
	if isinstance(color, str):
		value = color.lstrip('#')
		if len(value) != 6:
			raise RuntimeError(f"color must be #rrggbb: {color}")
		return bytes.fromhex(value)
	return bytes(int(channel) for channel in color[:3])

#============================================

def cstring(text) -> bytes:
	if text is None:
		return b'\x00'
	return text.encode('utf-8') + b'\x00'

#============================================

def fixed(text, size: int) -> bytes:
	raw = (text or '').encode('utf-8')[:size]
	return raw + b'\x00' * (size - len(raw))

#============================================

def chunk(tag, payload: bytes) -> bytes:
	"""
	Build one child chunk: tag, big-endian u32 length, payload.

	Args:
		tag: Four character tag, str or bytes.
		payload: Chunk payload.

	Returns:
		bytes: Encoded chunk.
	"""
	if isinstance(tag, str):
		tag = tag.encode('ascii')
	if len(tag) != 4:
		raise RuntimeError(f"chunk tag must be 4 bytes: {tag!r}")
	return tag + struct.pack('>I', len(payload)) + payload

#============================================

def container(chunks: list, form: bytes = b'ADBE', prefix: bytes = b'') -> bytes:
	"""
	Wrap child chunks in a RIFX root.

	Args:
		chunks: Encoded child chunks.
		form: Form type written after the root length.
		prefix: Bytes placed before the root tag.

	Returns:
		bytes: Container bytes.
	"""
	body = form + b''.join(chunks)
	return prefix + b'RIFX' + struct.pack('>I', len(body)) + body

#============================================

def comp_payload(comp_id: int = 0, width: int = 0, height: int = 0, fps=None,
	duration=None, background=None, name: str = None) -> bytes:
	return (u32(comp_id) + u32(width) + u32(height) + f32(fps) + f32(duration)
		+ rgb(background) + cstring(name))

#============================================

def layer_payload(layer_id: int = 0, layer_type: str = 'shape', start=None,
	duration=None, opacity=None, position=(None, None), scale=(None, None),
	rotation=None, name: str = None, source: str = None) -> bytes:
	return (u32(layer_id) + fixed(layer_type, 8) + f32(start) + f32(duration)
		+ f32(opacity) + f32(position[0]) + f32(position[1]) + f32(scale[0])
		+ f32(scale[1]) + f32(rotation) + cstring(name) + cstring(source))

#============================================

def text_payload(text: str = '', font_size=None, color=None,
	font_family: str = None) -> bytes:
	return f32(font_size) + rgb(color) + fixed(font_family, 32) + cstring(text)

#============================================

def shape_payload(fill=None, stroke=None, stroke_width=None, width=None, height=None,
	kind: str = 'rectangle') -> bytes:
	return (rgb(fill) + rgb(stroke) + f32(stroke_width) + f32(width) + f32(height)
		+ cstring(kind))

#============================================

def footage_payload(source: str, asset_type: str = 'video', width: int = 0,
	height: int = 0, duration=None, has_audio: bool = False) -> bytes:
	flags = 1 if has_audio else 0
	return (fixed(asset_type, 8) + u32(width) + u32(height) + f32(duration)
		+ bytes([flags]) + cstring(source))

#============================================

def effect_payload(name: str, enabled: bool = True) -> bytes:
	return bytes([1 if enabled else 0]) + cstring(name)

#============================================

def keyframe_payload(time_value, value, interpolation: str = 'linear') -> bytes:
	return f32(time_value) + f32(value) + cstring(interpolation)

#============================================

class ContainerBuilder():
	"""
	Accumulate chunks in stream order, then encode the container.

	Nesting is positional, so call order decides which composition and
	layer each chunk belongs to.
	"""
	def __init__(self):
		self.chunks = []

	#============================
	def raw(self, tag, payload: bytes):
		self.chunks.append(chunk(tag, payload))
		return self

	#============================
	def composition(self, **kwargs):
		return self.raw(b'comp', comp_payload(**kwargs))

	#============================
	def layer(self, **kwargs):
		return self.raw(b'layr', layer_payload(**kwargs))

	#============================
	def text(self, **kwargs):
		return self.raw(b'TEXT', text_payload(**kwargs))

	#============================
	def shape(self, **kwargs):
		return self.raw(b'SHAP', shape_payload(**kwargs))

	#============================
	def footage(self, **kwargs):
		return self.raw(b'FOOT', footage_payload(**kwargs))

	#============================
	def effect(self, name: str, enabled: bool = True):
		return self.raw(b'EFCT', effect_payload(name, enabled))

	#============================
	def expression(self, text: str):
		return self.raw(b'EXPR', cstring(text))

	#============================
	def animation(self, property_name: str):
		return self.raw(b'ANIM', cstring(property_name))

	#============================
	def keyframe(self, time_value, value, interpolation: str = 'linear'):
		return self.raw(b'KEYF', keyframe_payload(time_value, value, interpolation))

	#============================
	def to_bytes(self, form: bytes = b'ADBE', prefix: bytes = b'') -> bytes:
		return container(self.chunks, form=form, prefix=prefix)

#============================================

def build_from_description(data: dict) -> bytes:
	"""
	Build a container from a yaml description.

	Args:
		data: Mapping with a 'compositions' list; each composition holds
			its fields plus a 'layers' list, each layer its fields plus
			optional 'text', 'shape', 'effects', 'expressions' and
			'keyframes' ({property: [[time, value, interpolation], ...]}).
			An optional top-level 'footage' list registers assets.

	Returns:
		bytes: Container bytes.
	"""
	builder = ContainerBuilder()
	for footage in data.get('footage', []):
		builder.footage(**footage)
	for comp in data.get('compositions', []):
		comp_fields = {key: value for key, value in comp.items() if key != 'layers'}
		builder.composition(**comp_fields)
		for layer in comp.get('layers', []):
			nested = ('text', 'shape', 'effects', 'expressions', 'keyframes')
			layer_fields = {key: value for key, value in layer.items() if key not in nested}
			if 'position' in layer_fields:
				layer_fields['position'] = tuple(layer_fields['position'])
			if 'scale' in layer_fields:
				layer_fields['scale'] = tuple(layer_fields['scale'])
			builder.layer(**layer_fields)
			if layer.get('text') is not None:
				builder.text(**layer['text'])
			if layer.get('shape') is not None:
				builder.shape(**layer['shape'])
			for effect in layer.get('effects', []):
				builder.effect(effect)
			for expression in layer.get('expressions', []):
				builder.expression(expression)
			for property_name, keyframes in layer.get('keyframes', {}).items():
				builder.animation(property_name)
				for keyframe in keyframes:
					builder.keyframe(*keyframe)
	return builder.to_bytes()

#============================================

def parse_args():
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="Write a RIFX container from a yaml description")
	parser.add_argument('-y', '--yaml', dest='yamlfile', required=True,
		help='yaml description of compositions and layers')
	parser.add_argument('-o', '--output', dest='output_file', required=True,
		help='output container path')
	args = parser.parse_args()
	return args

#============================================

def main():
	args = parse_args()
	with open(args.yamlfile, 'r') as data_file:
		data = yaml.safe_load(data_file)
	if not isinstance(data, dict):
		raise RuntimeError("description yaml must be a mapping at the top level")
	with open(args.output_file, 'wb') as handle:
		handle.write(build_from_description(data))
	print(f"wrote {args.output_file}")


if __name__ == '__main__':
	main()
