#!/usr/bin/env python3

import argparse
import os
import sys
import yaml
from tqdm import tqdm
from clipforgelib.core import utils
from clipforgelib.core.config import load_settings
from clipforgelib.core.errors import ClipForgeError
from clipforgelib.core.errors import PipelineError
from clipforgelib.core.exporter import TimelineExporter
from clipforgelib.media.events import CompletedEvent
from clipforgelib.media.events import FailedEvent
from clipforgelib.media.events import ProgressEvent
from clipforgelib.recording import compose_picture_in_picture
from clipforgelib.recording import finalize_capture

#============================================

def parse_args(argv=None):
	"""
	Parse command-line arguments.
	"""
	parser = argparse.ArgumentParser(description="ClipForge timeline exporter")
	parser.add_argument('-c', '--config', dest='config_file',
		help='yaml file with ffmpeg/ffprobe paths and defaults')
	parser.add_argument('-q', '--quiet', dest='quiet', action='store_true',
		help='suppress command echo and warnings')
	subparsers = parser.add_subparsers(dest='command', required=True)

	export_parser = subparsers.add_parser('export', help='export a project timeline')
	export_parser.add_argument('-p', '--project', dest='project_file', required=True,
		help='project document (json or yaml)')
	export_parser.add_argument('-o', '--output', dest='output_file',
		help='output media file (required unless --dump-plan)')
	export_parser.add_argument('-d', '--dump-plan', dest='dump_plan', action='store_true',
		help='print the compiled plan and filter graph, do not render')

	probe_parser = subparsers.add_parser('probe', help='print duration and size of a file')
	probe_parser.add_argument('media_file')

	compose_parser = subparsers.add_parser('compose',
		help='overlay a webcam capture on a screen capture')
	compose_parser.add_argument('-s', '--screen', dest='screen_file', required=True)
	compose_parser.add_argument('-w', '--webcam', dest='webcam_file', required=True)
	compose_parser.add_argument('-o', '--output', dest='output_file', required=True)
	compose_parser.add_argument('--screen-duration', dest='screen_duration', type=float,
		help='measured screen capture length in seconds')
	compose_parser.add_argument('--webcam-duration', dest='webcam_duration', type=float,
		help='measured webcam capture length in seconds')
	args = parser.parse_args(argv)
	if args.command == 'export' and not args.dump_plan and args.output_file is None:
		parser.error("export requires --output unless --dump-plan is given")
	return args

#============================================

def load_document(project_file: str) -> dict:
	file_size = os.path.getsize(project_file)
	if file_size > 10 ** 7:
		raise ClipForgeError("project file is larger than 10MB")
	# yaml is a superset of json
	with open(project_file, 'r') as data_file:
		document = yaml.safe_load(data_file)
	if not isinstance(document, dict):
		raise ClipForgeError("project file must be a mapping at the top level")
	return document

#============================================

class ProgressBar():
	def __init__(self, quiet: bool = False):
		self.bar = tqdm(total=100, unit='%', disable=quiet,
			bar_format='{l_bar}{bar}| {n:.0f}/{total:.0f}% [{elapsed}<{remaining}] {postfix}')

	#============================
	def __call__(self, event) -> None:
		if isinstance(event, ProgressEvent):
			self.bar.update(event.percent - self.bar.n)
			self.bar.set_postfix_str(event.timemark)
		if isinstance(event, (CompletedEvent, FailedEvent)):
			self.bar.close()

#============================================

def _wait_for(job) -> None:
	result = job.wait()
	if isinstance(result, FailedEvent):
		if result.detail:
			print(result.detail, file=sys.stderr)
		raise PipelineError(result.error, returncode=result.returncode,
			detail=result.detail)
	print(f"complete: {result.output_path}")

#============================================

def run_export(args, exporter: TimelineExporter) -> None:
	document = load_document(args.project_file)
	if args.dump_plan:
		compiled = exporter.compile(document)
		print(yaml.safe_dump(compiled.summary(), sort_keys=False))
		return
	job = exporter.export(document, args.output_file, listener=ProgressBar(args.quiet))
	_wait_for(job)
	if len(job.warnings) > 0:
		utils.message(f"{len(job.warnings)} track item(s) skipped")

#============================================

def run_probe(args, exporter: TimelineExporter) -> None:
	result = exporter.prober(args.media_file)
	data = result.to_dict()
	if result.estimated:
		data['estimated'] = True
	print(yaml.safe_dump(data, sort_keys=False))

#============================================

def run_compose(args, exporter: TimelineExporter) -> None:
	screen = finalize_capture(args.screen_file, args.screen_duration, 'screen',
		prober=exporter.prober)
	camera = finalize_capture(args.webcam_file, args.webcam_duration, 'webcam',
		prober=exporter.prober)
	job = compose_picture_in_picture(screen, camera, args.output_file,
		listener=ProgressBar(args.quiet), exporter=exporter)
	_wait_for(job)

#============================================

def main(argv=None) -> int:
	args = parse_args(argv)
	utils.set_quiet_mode(args.quiet)
	try:
		settings = load_settings(args.config_file)
		exporter = TimelineExporter(settings)
		if args.command == 'export':
			run_export(args, exporter)
		elif args.command == 'probe':
			run_probe(args, exporter)
		elif args.command == 'compose':
			run_compose(args, exporter)
	except (RuntimeError, OSError) as exc:
		print(f"error: {exc}", file=sys.stderr)
		return 1
	return 0


if __name__ == '__main__':
	sys.exit(main())
