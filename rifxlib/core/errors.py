#!/usr/bin/env python3

"""
Error types raised while converting a container into a render plan.

Every error carries a context dict (byte offset, limit name, entity id) so a
failure can be reproduced from the same input. Recoverable errors are
collected as warnings unless the limit policy promotes them.
"""

#============================================

class ConversionError(RuntimeError):
	fatal = True

	def __init__(self, message: str, **context):
		super().__init__(message)
		self.message = message
		self.context = context

	#============================
	def to_dict(self) -> dict:
		return {
			'type': type(self).__name__,
			'message': self.message,
			'fatal': self.fatal,
			'context': dict(self.context),
		}

#============================================
# fatal: abort the parse, no partial result

class UnsupportedFormat(ConversionError):
	pass

class SizeLimitExceeded(ConversionError):
	pass

class Timeout(ConversionError):
	pass

class TruncatedChunk(ConversionError):
	pass

class UnsupportedAnalysisMethod(ConversionError):
	pass

class ConfigError(ConversionError):
	pass

class TemplateInvalid(ConversionError):
	pass

#============================================
# recoverable: partial result plus warning

class RecoverableError(ConversionError):
	fatal = False

class CompositionLimitExceeded(RecoverableError):
	pass

class LayerLimitExceeded(RecoverableError):
	pass

class KeyframeLimitExceeded(RecoverableError):
	pass

class ValueNormalized(RecoverableError):
	pass

class OrphanChunk(RecoverableError):
	pass

#============================================
# resolution time

class MergeFieldUnresolved(ConversionError):
	def __init__(self, name: str, clip_id: str):
		super().__init__(f"unresolved merge field '{name}' in clip {clip_id}",
			name=name, clip_id=clip_id)
		self.name = name
		self.clip_id = clip_id

class TimeRangeExceeded(ConversionError):
	fatal = False
