#!/usr/bin/env python3

import struct
from rifxlib.core import utils

#============================================

class PayloadReader():
	"""
	Bounds-checked field reads from a chunk payload.

	A field that does not fit inside the payload is absent and reads as
	None; callers substitute their defaults.
	"""
	def __init__(self, payload):
		self.payload = payload
		self.size = len(payload)

	#============================
	def _unpack(self, fmt: str, offset: int):
		if offset < 0 or offset + struct.calcsize(fmt) > self.size:
			return None
		(value,) = struct.unpack_from(fmt, self.payload, offset)
		return value

	#============================
	def u8(self, offset: int) -> int:
		return self._unpack('>B', offset)

	#============================
	def u32(self, offset: int) -> int:
		return self._unpack('>I', offset)

	#============================
	def f32(self, offset: int) -> float:
		value = self._unpack('>f', offset)
		if not utils.is_usable_number(value):
			return None
		return utils.tidy_float32(value)

	#============================
	def rgb(self, offset: int) -> str:
		if offset < 0 or offset + 3 > self.size:
			return None
		red = self.payload[offset]
		green = self.payload[offset + 1]
		blue = self.payload[offset + 2]
		return utils.rgb_to_hex(red, green, blue)

	#============================
	def fixed_string(self, offset: int, size: int) -> str:
		if offset < 0 or offset >= self.size:
			return None
		raw = bytes(self.payload[offset:min(offset + size, self.size)])
		text = raw.split(b'\x00', 1)[0].decode('utf-8', 'replace').strip()
		if text == '':
			return None
		return text

	#============================
	def cstring(self, offset: int) -> tuple:
		"""
		Read a NUL-terminated UTF-8 string.

		Returns:
			tuple: (text or None, offset just past the terminator)
		"""
		if offset < 0 or offset >= self.size:
			return (None, self.size)
		raw = bytes(self.payload[offset:])
		end = raw.find(b'\x00')
		if end < 0:
			end = len(raw)
			next_offset = self.size
		else:
			next_offset = offset + end + 1
		text = raw[:end].decode('utf-8', 'replace')
		if text.strip() == '':
			return (None, next_offset)
		return (text, next_offset)
