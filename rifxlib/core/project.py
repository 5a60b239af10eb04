#!/usr/bin/env python3

import enum
import os
from rifxlib.core import errors
from rifxlib.core import registry
from rifxlib.core import utils
from rifxlib.core.config import ParseConfig
from rifxlib.core.extractors import WarningLog
from rifxlib.core.loader import ProjectLoader
from rifxlib.core.loader import classify_chunks
from rifxlib.core.merge import MergeFieldResolver
from rifxlib.core.scanner import ChunkScanner
from rifxlib.core.template import TemplateBuilder
from rifxlib.core.timeline import TimelineCompiler

#============================================

class Stage(enum.Enum):
	PENDING = 'pending'
	SCANNING = 'scanning'
	CLASSIFYING = 'classifying'
	EXTRACTING = 'extracting'
	BUILDING = 'building'
	RESOLVING = 'resolving'
	COMPILED = 'compiled'
	FAILED = 'failed'

#============================================

class ConversionResult():
	"""
	Outcome of one conversion.

	state is Stage.COMPILED on success. On failure it is Stage.FAILED,
	failed_stage names the stage that stopped, and error holds the
	ConversionError with its diagnostic context.
	"""
	def __init__(self):
		self.state = Stage.PENDING
		self.failed_stage = None
		self.template = None
		self.plan = None
		self.warnings = []
		self.error = None

	#============================
	@property
	def ok(self) -> bool:
		return self.state is Stage.COMPILED

	#============================
	@property
	def reason(self) -> dict:
		if self.error is None:
			return None
		return self.error.to_dict()

	#============================
	def raise_for_failure(self) -> None:
		if self.state is Stage.FAILED:
			raise self.error

#============================================

class ConversionPipeline():
	def __init__(self, config: ParseConfig = None, cancel_event=None, clock=None):
		self.config = config if config is not None else ParseConfig()
		self.cancel_event = cancel_event
		self.clock = clock

	#============================
	def _enter(self, result: ConversionResult, stage: Stage) -> None:
		result.state = stage
		utils.log_info(f"stage: {stage.value}")

	#============================
	def _fail(self, result: ConversionResult, error: errors.ConversionError) -> ConversionResult:
		result.failed_stage = result.state
		result.state = Stage.FAILED
		result.error = error
		utils.log_info(f"failed during {result.failed_stage.value}: {error}")
		return result

	#============================
	def check_method(self) -> None:
		method = self.config.analysis_method
		if method not in registry.ACTIVE_ANALYSIS_METHODS:
			raise errors.UnsupportedAnalysisMethod(
				f"analysis method {method.value} is not available",
				method=method.value)

	#============================
	def convert(self, buffer, merge_fields: dict = None, name: str = None) -> ConversionResult:
		result = ConversionResult()
		try:
			self._enter(result, Stage.SCANNING)
			self.check_method()
			scanner = ChunkScanner(buffer, self.config, cancel_event=self.cancel_event,
				clock=self.clock)
			chunks = scanner.scan()
			self._enter(result, Stage.CLASSIFYING)
			classified = classify_chunks(chunks)
			self._enter(result, Stage.EXTRACTING)
			loader = ProjectLoader(self.config, WarningLog(self.config.limit_policy))
			project = loader.load(classified)
			result.warnings = [warning.to_dict() for warning in project.warnings]
			self._enter(result, Stage.BUILDING)
			result.template = TemplateBuilder(self.config).build(project, name=name)
			self._resolve(result, merge_fields)
		except errors.ConversionError as error:
			return self._fail(result, error)
		return result

	#============================
	def compile_template(self, template: dict, merge_fields: dict = None) -> ConversionResult:
		"""
		Compile a template that was written or stored as JSON.
		"""
		result = ConversionResult()
		result.template = template
		try:
			self._resolve(result, merge_fields)
		except errors.ConversionError as error:
			return self._fail(result, error)
		return result

	#============================
	def _resolve(self, result: ConversionResult, merge_fields: dict) -> None:
		self._enter(result, Stage.RESOLVING)
		resolver = MergeFieldResolver.from_config(self.config, merge_fields)
		compiler = TimelineCompiler(self.config)
		result.plan = compiler.compile(result.template, resolver=resolver)
		result.warnings = result.warnings + list(result.plan['warnings'])
		self._enter(result, Stage.COMPILED)

	#============================
	def convert_file(self, input_file: str, merge_fields: dict = None,
		name: str = None) -> ConversionResult:
		file_size = os.path.getsize(input_file)
		if file_size > self.config.max_file_size:
			result = ConversionResult()
			self._enter(result, Stage.SCANNING)
			error = errors.SizeLimitExceeded(
				f"{input_file} is {file_size} bytes, limit {self.config.max_file_size}",
				limit='max_file_size', size=file_size,
				maximum=self.config.max_file_size, path=input_file)
			return self._fail(result, error)
		with open(input_file, 'rb') as data_file:
			buffer = data_file.read()
		if name is None:
			name = os.path.splitext(os.path.basename(input_file))[0]
		return self.convert(buffer, merge_fields=merge_fields, name=name)

#============================================

def convert(buffer, config: ParseConfig = None, merge_fields: dict = None,
	name: str = None) -> ConversionResult:
	return ConversionPipeline(config).convert(buffer, merge_fields=merge_fields, name=name)
