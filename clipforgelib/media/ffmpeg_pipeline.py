#!/usr/bin/env python3

import collections
import os
import shlex
import subprocess
import threading
import time
from clipforgelib.core import utils
from clipforgelib.core.config import CONCAT_PROFILE
from clipforgelib.core.config import EncodingProfile
from clipforgelib.core.config import ToolPaths
from clipforgelib.core.errors import NoValidSegmentsError
from clipforgelib.core.graph import FilterGraph
from clipforgelib.core.graph import serialize_graph
from clipforgelib.media.events import CompletedEvent
from clipforgelib.media.events import FailedEvent
from clipforgelib.media.events import ProgressEvent
from clipforgelib.media.events import StartedEvent
from clipforgelib.media.events import TERMINAL_EVENTS

#============================================

STDERR_TAIL_LINES = 40

#============================================

def parse_progress_seconds(key: str, value: str):
	"""
	Read a position in seconds from one `-progress` key/value pair.
	out_time_ms is in microseconds despite its name.
	"""
	if key in ('out_time_us', 'out_time_ms'):
		try:
			micros = int(value)
		except ValueError:
			return None
		if micros < 0:
			return None
		return micros / 1_000_000.0
	if key == 'out_time':
		try:
			seconds = float(utils.parse_timecode(value))
		except RuntimeError:
			return None
		if seconds < 0:
			return None
		return seconds
	return None

#============================================

class ExportJob():
	def __init__(self, command: list, output_path: str, expected_duration: float = None,
		listener=None):
		self.command = command
		self.output_path = output_path
		self.expected_duration = expected_duration
		self.listener = listener
		self.percent = 0.0
		self.timemark = utils.format_timemark(0)
		self.result = None
		self.returncode = None
		# per-item problems dropped while planning
		self.warnings = []
		self.stderr_tail = collections.deque(maxlen=STDERR_TAIL_LINES)
		self._done = threading.Event()
		self._lock = threading.Lock()
		self._thread = None

	#============================
	@property
	def command_text(self) -> str:
		return shlex.join(self.command)

	#============================
	@property
	def done(self) -> bool:
		return self._done.is_set()

	#============================
	@property
	def succeeded(self) -> bool:
		return isinstance(self.result, CompletedEvent)

	#============================
	def wait(self, timeout: float = None):
		"""
		Block until the job ends and return its terminal event, or None on timeout.
		"""
		if not self._done.wait(timeout):
			return None
		return self.result

	#============================
	def emit(self, event) -> None:
		with self._lock:
			if self.result is not None:
				return
			if isinstance(event, TERMINAL_EVENTS):
				self.result = event
		try:
			if self.listener is not None:
				self.listener(event)
		finally:
			if isinstance(event, TERMINAL_EVENTS):
				self._done.set()

	#============================
	def update_progress(self, seconds: float = None, timemark: str = None) -> None:
		if seconds is not None:
			self.timemark = utils.format_timemark(seconds)
			if self.expected_duration:
				percent = 100.0 * seconds / self.expected_duration
				self.percent = max(self.percent, min(100.0, max(0.0, percent)))
		if timemark:
			self.timemark = timemark
		self.emit(ProgressEvent(percent=self.percent, timemark=self.timemark))

#============================================

class PipelineExecutor():
	def __init__(self, tools: ToolPaths = None):
		self.tools = tools or ToolPaths()

	#============================
	def build_command(self, inputs: list, graph: FilterGraph,
		profile: EncodingProfile, destination: str) -> list:
		cmd = [self.tools.ffmpeg, '-hide_banner', '-nostats', '-y',
			'-progress', 'pipe:1']
		for source in inputs:
			cmd.extend(['-i', source])
		cmd.extend(['-filter_complex', serialize_graph(graph)])
		cmd.extend(graph.map_args())
		cmd.extend(profile.output_args())
		cmd.append(destination)
		return cmd

	#============================
	def execute(self, inputs: list, graph: FilterGraph, destination: str,
		profile: EncodingProfile = CONCAT_PROFILE, listener=None,
		expected_duration: float = None) -> ExportJob:
		"""
		Launch ffmpeg in the background and return the job handle at once.
		All results reach `listener` as export events.
		"""
		if len(inputs) == 0 or len(graph.nodes) == 0:
			raise NoValidSegmentsError()
		graph.validate()
		cmd = self.build_command(inputs, graph, profile, destination)
		job = ExportJob(cmd, destination, expected_duration, listener)
		failure = self._check_destination(destination)
		if failure is not None:
			utils.warn(failure)
			job.emit(FailedEvent(error=failure))
			return job
		job._thread = threading.Thread(target=self._run, args=(job,), daemon=True)
		job._thread.start()
		return job

	#============================
	def run(self, inputs: list, graph: FilterGraph, destination: str,
		profile: EncodingProfile = CONCAT_PROFILE, listener=None,
		expected_duration: float = None):
		job = self.execute(inputs, graph, destination, profile=profile,
			listener=listener, expected_duration=expected_duration)
		return job.wait()

	#============================
	def _check_destination(self, destination: str):
		try:
			parent = utils.ensure_parent_dir(destination)
		except OSError as exc:
			return f"cannot create output directory for {destination}: {exc}"
		if not os.access(parent, os.W_OK):
			return f"output directory is not writable: {parent}"
		if os.path.isdir(destination):
			return f"output path is a directory: {destination}"
		if os.path.exists(destination) and not os.access(destination, os.W_OK):
			return f"output file is not writable: {destination}"
		return None

	#============================
	def _run(self, job: ExportJob) -> None:
		command_text = job.command_text
		utils.show_command(command_text)
		utils.report_command({'event': 'start', 'command': command_text})
		t0 = time.time()
		try:
			proc = subprocess.Popen(job.command, stdout=subprocess.PIPE,
				stderr=subprocess.PIPE, text=True, errors='replace')
		except OSError as exc:
			utils.report_command({'event': 'end', 'command': command_text,
				'returncode': -1, 'seconds': time.time() - t0})
			job.emit(FailedEvent(error=f"failed to launch ffmpeg: {exc}"))
			return
		stderr_thread = threading.Thread(target=self._drain_stderr,
			args=(proc, job), daemon=True)
		stderr_thread.start()
		try:
			job.emit(StartedEvent(command=command_text))
			self._read_progress(proc, job)
		except Exception as exc:
			self._abort(proc, job, stderr_thread, exc, time.time() - t0)
			return
		returncode = proc.wait()
		stderr_thread.join()
		job.returncode = returncode
		utils.report_command({'event': 'end', 'command': command_text,
			'returncode': returncode, 'seconds': time.time() - t0})
		detail = '\n'.join(job.stderr_tail)
		if returncode != 0:
			job.emit(FailedEvent(error=f"ffmpeg exited with code {returncode}",
				detail=detail, returncode=returncode))
			return
		if not os.path.exists(job.output_path):
			job.emit(FailedEvent(error=f"ffmpeg did not write {job.output_path}",
				detail=detail, returncode=returncode))
			return
		if job.percent < 100.0:
			job.percent = 100.0
			try:
				job.emit(ProgressEvent(percent=job.percent, timemark=job.timemark))
			except Exception as exc:
				# ffmpeg already finished; the output still completes
				utils.warn(f"export listener failed on final progress: {exc}")
		job.emit(CompletedEvent(output_path=job.output_path))

	#============================
	def _abort(self, proc, job: ExportJob, stderr_thread, exc: Exception,
		seconds: float) -> None:
		"""
		Stop ffmpeg after the supervisor itself failed (usually a listener
		raising) and still end the job with one FailedEvent.
		"""
		proc.kill()
		returncode = proc.wait()
		stderr_thread.join()
		job.returncode = returncode
		utils.report_command({'event': 'end', 'command': job.command_text,
			'returncode': returncode, 'seconds': seconds})
		failure = FailedEvent(error=f"export supervision failed: {exc}",
			detail='\n'.join(job.stderr_tail), returncode=returncode)
		try:
			job.emit(failure)
		except Exception as listener_exc:
			# the job is already marked done with `failure`
			utils.warn(f"export listener failed on {failure.error}: {listener_exc}")

	#============================
	def _read_progress(self, proc, job: ExportJob) -> None:
		seconds = None
		timemark = None
		for raw_line in proc.stdout:
			line = raw_line.strip()
			if '=' not in line:
				continue
			(key, value) = line.split('=', 1)
			key = key.strip()
			value = value.strip()
			parsed = parse_progress_seconds(key, value)
			if parsed is not None:
				seconds = parsed
				if key == 'out_time':
					timemark = value
			if key == 'progress':
				# final 100 is reported once the exit code is known
				if value != 'end':
					job.update_progress(seconds, timemark)
				elif timemark:
					job.timemark = timemark
				seconds = None
				timemark = None

	#============================
	def _drain_stderr(self, proc, job: ExportJob) -> None:
		for raw_line in proc.stderr:
			line = raw_line.rstrip()
			if line:
				job.stderr_tail.append(line)
