#!/usr/bin/env python3

"""
Chunk scanner for RIFX project containers.

Layout: a root header (RIFX tag, big-endian u32 length, ADBE form type)
followed by child chunks, each a 4-byte tag, a big-endian u32 payload length
and the payload. Tags not present in the signature table are skipped by
their declared length.
"""

import dataclasses
import struct
import time
from rifxlib.core import errors
from rifxlib.core import registry

#============================================

TAG_SIZE = 4
LENGTH_FORMAT = '>I'
LENGTH_SIZE = struct.calcsize(LENGTH_FORMAT)
HEADER_SIZE = TAG_SIZE + LENGTH_SIZE
ROOT_HEADER_SIZE = HEADER_SIZE + TAG_SIZE

#============================================

@dataclasses.dataclass(frozen=True)
class Chunk():
	tag: bytes
	role: registry.ChunkRole
	offset: int
	length: int
	payload: memoryview

	#============================
	@property
	def name(self) -> str:
		return self.tag.decode('ascii', 'replace')

#============================================

class ChunkScanner():
	"""
	Lazy, restartable walk over the chunks of one buffer.

	Each iteration starts again from the root header. The deadline and the
	cancel event are only checked between chunks.
	"""
	def __init__(self, buffer, config, cancel_event=None, clock=None):
		if isinstance(buffer, (bytearray, memoryview)):
			buffer = bytes(buffer)
		if not isinstance(buffer, bytes):
			raise TypeError("buffer must be bytes")
		self.buffer = buffer
		self.config = config
		self.cancel_event = cancel_event
		self.clock = clock if clock is not None else time.monotonic

	#============================
	def __iter__(self):
		return self._scan()

	#============================
	def scan(self) -> list:
		return list(self._scan())

	#============================
	def check_size(self) -> None:
		size = len(self.buffer)
		if size > self.config.max_file_size:
			raise errors.SizeLimitExceeded(
				f"buffer of {size} bytes exceeds max_file_size {self.config.max_file_size}",
				limit='max_file_size', size=size, maximum=self.config.max_file_size)

	#============================
	def find_root(self) -> int:
		window = self.config.root_search_window
		offset = self.buffer.find(registry.ROOT_TAG, 0, window + TAG_SIZE)
		if offset < 0:
			raise errors.UnsupportedFormat(
				f"no RIFX root signature in the first {window} bytes",
				missing_signature=registry.ROOT_TAG.decode('ascii'), window=window)
		return offset

	#============================
	def _scan(self):
		self.check_size()
		started = self.clock()
		view = memoryview(self.buffer)
		root_offset = self.find_root()
		root_length = self._read_length(root_offset)
		root_end = root_offset + HEADER_SIZE + root_length
		if root_end > len(self.buffer):
			raise errors.TruncatedChunk(
				f"root chunk at offset {root_offset} declares {root_length} bytes "
				f"but the buffer ends at {len(self.buffer)}",
				offset=root_offset, tag='RIFX', declared=root_length,
				available=len(self.buffer) - root_offset - HEADER_SIZE)
		if root_length < TAG_SIZE:
			raise errors.TruncatedChunk(
				f"root chunk at offset {root_offset} has no form type",
				offset=root_offset, tag='RIFX', declared=root_length, available=root_length)
		form_start = root_offset + HEADER_SIZE
		form_tag = self.buffer[form_start:form_start + TAG_SIZE]
		if form_tag == registry.ROOT_TAG or \
			self.config.signatures.get(form_tag) is not registry.ChunkRole.ROOT:
			raise errors.UnsupportedFormat(
				f"unsupported form type {form_tag!r} at offset {form_start}",
				missing_signature=registry.FORM_TAG.decode('ascii'), offset=form_start)
		inspected = ROOT_HEADER_SIZE
		self._check_inspected(inspected, root_offset)
		yield Chunk(registry.ROOT_TAG, registry.ChunkRole.ROOT, root_offset, root_length,
			view[form_start:root_end])
		position = form_start + TAG_SIZE
		while position < root_end:
			self._check_deadline(started, position)
			if root_end - position < HEADER_SIZE:
				raise errors.TruncatedChunk(
					f"partial chunk header at offset {position}",
					offset=position, declared=HEADER_SIZE, available=root_end - position)
			tag = self.buffer[position:position + TAG_SIZE]
			length = self._read_length(position)
			payload_start = position + HEADER_SIZE
			payload_end = payload_start + length
			if payload_end > root_end:
				raise errors.TruncatedChunk(
					f"chunk {tag!r} at offset {position} declares {length} bytes "
					f"but only {root_end - payload_start} remain",
					offset=position, tag=tag.decode('ascii', 'replace'),
					declared=length, available=root_end - payload_start)
			role = self.config.signatures.get(tag)
			inspected += HEADER_SIZE
			if role is not None:
				inspected += length
			self._check_inspected(inspected, position)
			if role is not None:
				yield Chunk(tag, role, position, length, view[payload_start:payload_end])
			position = payload_end

	#============================
	def _read_length(self, offset: int) -> int:
		start = offset + TAG_SIZE
		if start + LENGTH_SIZE > len(self.buffer):
			raise errors.TruncatedChunk(
				f"chunk header at offset {offset} runs past the buffer end",
				offset=offset, declared=HEADER_SIZE, available=len(self.buffer) - offset)
		(length,) = struct.unpack_from(LENGTH_FORMAT, self.buffer, start)
		return length

	#============================
	def _check_inspected(self, inspected: int, offset: int) -> None:
		if inspected > self.config.max_analysis_size:
			raise errors.SizeLimitExceeded(
				f"inspected {inspected} bytes, over max_analysis_size "
				f"{self.config.max_analysis_size}",
				limit='max_analysis_size', offset=offset, inspected=inspected,
				maximum=self.config.max_analysis_size)

	#============================
	def _check_deadline(self, started: float, offset: int) -> None:
		if self.cancel_event is not None and self.cancel_event.is_set():
			raise errors.Timeout(f"scan cancelled at offset {offset}",
				limit='cancelled', offset=offset)
		elapsed = self.clock() - started
		if elapsed > self.config.timeout_seconds:
			raise errors.Timeout(
				f"scan exceeded {self.config.timeout_seconds}s at offset {offset}",
				limit='timeout_seconds', offset=offset, elapsed=elapsed)
