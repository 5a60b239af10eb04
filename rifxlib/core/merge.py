#!/usr/bin/env python3

"""
Merge-field substitution for text-bearing clip fields.

Recognized syntaxes, in precedence order: {{name}}, ${name}, %name%,
{name}, [name]. The text is scanned once from left to right, so a
substituted value is never scanned again.
"""

import copy
import re
from rifxlib.core import errors

#============================================

NAME_PATTERN = r'[A-Za-z_][A-Za-z0-9_.\-]*'

SYNTAXES = (
	('double_brace', r'\{\{\s*(?P<double_brace>' + NAME_PATTERN + r')\s*\}\}'),
	('dollar_brace', r'\$\{(?P<dollar_brace>' + NAME_PATTERN + r')\}'),
	('percent', r'%(?P<percent>' + NAME_PATTERN + r')%'),
	('single_brace', r'\{(?P<single_brace>' + NAME_PATTERN + r')\}'),
	('bracket', r'\[(?P<bracket>' + NAME_PATTERN + r')\]'),
)

# alternation order is the precedence order at any one position
VARIABLE_RE = re.compile('|'.join(pattern for _, pattern in SYNTAXES))

TEXT_FIELDS = ('text', 'src', 'name')

#============================================

def _match_name(match) -> str:
	for syntax, _ in SYNTAXES:
		name = match.group(syntax)
		if name is not None:
			return name
	return None

#============================================

def find_variables(text: str) -> list:
	"""
	Variable names in first-appearance order, without duplicates.
	"""
	names = []
	if not isinstance(text, str):
		return names
	for match in VARIABLE_RE.finditer(text):
		name = _match_name(match)
		if name not in names:
			names.append(name)
	return names

#============================================

def find_clip_variables(node, names: list = None) -> list:
	"""
	Variable names used in text fields at any depth of a clip.
	"""
	names = [] if names is None else names
	if isinstance(node, dict):
		for key, value in node.items():
			if key in TEXT_FIELDS and isinstance(value, str):
				for name in find_variables(value):
					if name not in names:
						names.append(name)
			else:
				find_clip_variables(value, names)
	elif isinstance(node, list):
		for item in node:
			find_clip_variables(item, names)
	return names

#============================================

class MergeFieldResolver():
	def __init__(self, merge_fields: dict = None, mode: str = 'lenient'):
		if mode not in ('lenient', 'strict'):
			raise RuntimeError(f"unknown merge field mode: {mode}")
		self.merge_fields = {}
		for name, value in (merge_fields or {}).items():
			self.merge_fields[str(name)] = '' if value is None else str(value)
		self.mode = mode
		self.unresolved = []

	#============================
	@classmethod
	def from_config(cls, config, merge_fields: dict = None):
		return cls(merge_fields, mode=config.merge_mode)

	#============================
	def resolve_text(self, text: str, clip_id: str = None) -> str:
		if not isinstance(text, str) or text == '':
			return text

		def substitute(match):
			name = _match_name(match)
			value = self.merge_fields.get(name)
			if value is not None:
				return value
			if self.mode == 'strict':
				raise errors.MergeFieldUnresolved(name, clip_id)
			if (name, clip_id) not in self.unresolved:
				self.unresolved.append((name, clip_id))
			return match.group(0)

		return VARIABLE_RE.sub(substitute, text)

	#============================
	def resolve_clip(self, clip: dict) -> dict:
		resolved = copy.deepcopy(clip)
		self._resolve_fields(resolved, clip.get('id'))
		return resolved

	#============================
	def _resolve_fields(self, node, clip_id: str) -> None:
		if isinstance(node, dict):
			for key, value in node.items():
				if key in TEXT_FIELDS and isinstance(value, str):
					node[key] = self.resolve_text(value, clip_id)
				else:
					self._resolve_fields(value, clip_id)
		elif isinstance(node, list):
			for item in node:
				self._resolve_fields(item, clip_id)

	#============================
	def resolve_template(self, template: dict) -> dict:
		"""
		Return a copy of the template with every clip resolved.
		"""
		resolved = copy.deepcopy(template)
		timeline = resolved.get('timeline', {})
		for track in timeline.get('tracks', []):
			track['clips'] = [self.resolve_clip(clip) for clip in track.get('clips', [])]
		return resolved

	#============================
	def unresolved_names(self) -> list:
		names = []
		for name, _ in self.unresolved:
			if name not in names:
				names.append(name)
		return names
