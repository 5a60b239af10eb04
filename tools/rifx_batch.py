#!/usr/bin/env python3

"""
rifx_batch.py

Convert many RIFX containers in parallel, one template JSON per input.
"""

# Standard Library
import argparse
import concurrent.futures
import os

# PIP3 modules
from tqdm import tqdm

# local repo modules
from rifxlib.core import utils
from rifxlib.core.config import load_config
from rifxlib.core.project import ConversionPipeline
from rifxlib.core.template import template_to_json

#============================================

def parse_args():
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="Batch convert RIFX containers to templates")
	parser.add_argument('inputs', nargs='+',
		help='container files to convert')
	parser.add_argument('-d', '--output-dir', dest='output_dir', required=True,
		help='directory for the template json files')
	parser.add_argument('-c', '--config', dest='config_file',
		help='yaml config shared by every conversion')
	parser.add_argument('-j', '--jobs', dest='jobs', type=int, default=None,
		help='worker threads, default cpu count')
	parser.add_argument('-q', '--quiet', dest='quiet', action='store_true',
		help='no progress bar')
	args = parser.parse_args()
	return args

#============================================

def output_path_for(input_file: str, output_dir: str) -> str:
	"""
	Template path for one input.

	Args:
		input_file: Container path.
		output_dir: Destination directory.

	Returns:
		str: JSON file path.
	"""
	base = os.path.splitext(os.path.basename(input_file))[0]
	return os.path.join(output_dir, base + ".template.json")

#============================================

def convert_one(input_file: str, output_dir: str, config) -> dict:
	"""
	Convert a single container and write its template.

	Args:
		input_file: Container path.
		output_dir: Destination directory.
		config: Shared ParseConfig.

	Returns:
		dict: Summary with input, output, state, warnings and error.
	"""
	pipeline = ConversionPipeline(config)
	result = pipeline.convert_file(input_file)
	summary = {
		'input': input_file,
		'output': None,
		'state': result.state.value,
		'warnings': len(result.warnings),
		'error': None,
	}
	if not result.ok:
		summary['error'] = result.reason
		return summary
	output_file = output_path_for(input_file, output_dir)
	with open(output_file, 'w', encoding='utf-8') as handle:
		handle.write(template_to_json(result.template))
	summary['output'] = output_file
	return summary

#============================================

def convert_batch(input_files: list, output_dir: str, config, jobs: int = None,
	quiet: bool = False) -> list:
	"""
	Convert containers on a thread pool.

	Each conversion owns its buffer and config is immutable, so workers
	share nothing mutable.

	Returns:
		list: Summaries in input order.
	"""
	os.makedirs(output_dir, exist_ok=True)
	summaries = [None] * len(input_files)
	with concurrent.futures.ThreadPoolExecutor(max_workers=jobs) as executor:
		futures = {}
		for index, input_file in enumerate(input_files):
			future = executor.submit(convert_one, input_file, output_dir, config)
			futures[future] = index
		completed = concurrent.futures.as_completed(futures)
		if not (quiet or utils.is_quiet_mode()):
			completed = tqdm(completed, total=len(futures), desc='converting')
		for future in completed:
			summaries[futures[future]] = future.result()
	return summaries

#============================================

def main():
	args = parse_args()
	utils.set_quiet_mode(args.quiet)
	config = load_config(args.config_file)
	summaries = convert_batch(args.inputs, args.output_dir, config, jobs=args.jobs,
		quiet=args.quiet)
	failed = [summary for summary in summaries if summary['error'] is not None]
	for summary in failed:
		print(f"failed: {summary['input']}: {summary['error']['message']}")
	print(f"converted {len(summaries) - len(failed)} of {len(summaries)} files")


if __name__ == '__main__':
	main()
