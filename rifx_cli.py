#!/usr/bin/env python3

import argparse
import json
import os
import yaml
from rifxlib.core import errors
from rifxlib.core import utils
from rifxlib.core.config import load_config
from rifxlib.core.project import ConversionPipeline
from rifxlib.core.template import template_to_json
from rifxlib.exporters.mlt import MltExporter

#============================================

MAX_MERGE_FILE_SIZE = 10 ** 6

#============================================

def parse_args(argv: list = None):
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(
		description="Convert a RIFX motion graphics project into a render plan")
	source_group = parser.add_mutually_exclusive_group(required=True)
	source_group.add_argument('-i', '--input', dest='input_file',
		help='RIFX project container to convert')
	source_group.add_argument('-t', '--template', dest='template_file',
		help='JSON template to compile instead of a container')
	parser.add_argument('-c', '--config', dest='config_file',
		help='yaml file with limits, defaults, policies and type tables')
	parser.add_argument('-m', '--merge-fields', dest='merge_file',
		help='yaml or json mapping of merge field values')
	parser.add_argument('-s', '--strict', dest='strict', action='store_true',
		help='fail on unresolved merge fields')
	parser.add_argument('-o', '--output', dest='output_file',
		help='write the template (container input) or plan (template input) as json')
	parser.add_argument('-p', '--dump-plan', dest='dump_plan', action='store_true',
		help='print the compiled render plan as yaml')
	parser.add_argument('-x', '--mlt', dest='mlt_file',
		help='export the render plan as MLT XML')
	parser.add_argument('-q', '--quiet', dest='quiet', action='store_true',
		help='suppress progress messages')
	parser.set_defaults(strict=False, dump_plan=False, quiet=False)
	args = parser.parse_args(argv)
	return args

#============================================

def load_merge_fields(merge_file: str) -> dict:
	if merge_file is None:
		return {}
	if os.path.getsize(merge_file) > MAX_MERGE_FILE_SIZE:
		raise RuntimeError("merge field file is larger than 1MB")
	with open(merge_file, 'r') as data_file:
		data = yaml.safe_load(data_file)
	if data is None:
		return {}
	if not isinstance(data, dict):
		raise RuntimeError("merge field file must be a mapping at the top level")
	return data

#============================================

def load_template(template_file: str) -> dict:
	with open(template_file, 'r') as data_file:
		try:
			return json.load(data_file)
		except json.JSONDecodeError as error:
			raise errors.TemplateInvalid(f"template is not valid json: {error}",
				path=template_file) from None

#============================================

def write_json(output_file: str, data: dict) -> None:
	os.makedirs(os.path.dirname(output_file) or '.', exist_ok=True)
	with open(output_file, 'w', encoding='utf-8') as handle:
		handle.write(template_to_json(data))
	utils.log_info(f"wrote {output_file}")

#============================================

def run(args):
	"""
	Run one conversion from parsed arguments and return the ConversionResult.
	"""
	# stdout carries only the yaml plan when it is dumped
	utils.set_quiet_mode(args.quiet or args.dump_plan)
	config = load_config(args.config_file)
	if args.strict:
		config = config.with_overrides(merge_mode='strict')
	merge_fields = load_merge_fields(args.merge_file)
	pipeline = ConversionPipeline(config)
	if args.input_file is not None:
		result = pipeline.convert_file(args.input_file, merge_fields=merge_fields)
	else:
		template = load_template(args.template_file)
		result = pipeline.compile_template(template, merge_fields=merge_fields)
	result.raise_for_failure()
	for warning in result.warnings:
		utils.log_info(f"warning: {warning['type']}: {warning['message']}")
	if args.output_file is not None:
		if args.input_file is not None:
			write_json(args.output_file, result.template)
		else:
			write_json(args.output_file, result.plan)
	if args.mlt_file is not None:
		MltExporter(result.plan, args.mlt_file).export()
	if args.dump_plan:
		print(yaml.safe_dump(result.plan, sort_keys=False))
	return result

#============================================

def main(argv: list = None):
	args = parse_args(argv)
	run(args)


if __name__ == '__main__':
	main()
