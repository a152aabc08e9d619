#!/usr/bin/env python3

"""
Pytest coverage for the background ffmpeg supervisor, using a shell script
in place of ffmpeg.
"""

# Standard Library
import os
import stat
import sys

# PIP3 modules
import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# local repo modules
from clipforgelib.core import utils
from clipforgelib.core.compiler import GraphCompiler
from clipforgelib.core.config import CONCAT_PROFILE
from clipforgelib.core.config import ToolPaths
from clipforgelib.core.errors import NoValidSegmentsError
from clipforgelib.core.planner import PlannedSegment
from clipforgelib.media.events import CompletedEvent
from clipforgelib.media.events import FailedEvent
from clipforgelib.media.events import ProgressEvent
from clipforgelib.media.events import StartedEvent
from clipforgelib.media.ffmpeg_pipeline import PipelineExecutor
from clipforgelib.media.ffmpeg_pipeline import parse_progress_seconds

pytestmark = pytest.mark.skipif(sys.platform.startswith('win'),
	reason="fake ffmpeg is a posix shell script")

PROGRESS_SCRIPT = """#!/bin/sh
for last; do :; done
echo "frame=10"
echo "out_time_us=1000000"
echo "progress=continue"
echo "out_time_us=3000000"
echo "progress=continue"
echo "out_time_us=2000000"
echo "progress=continue"
echo "out_time=00:00:04.000000"
echo "progress=end"
: > "$last"
exit 0
"""

FAILING_SCRIPT = """#!/bin/sh
echo "out_time_us=500000"
echo "progress=continue"
echo "Unknown encoder 'libnothing'" >&2
exit 1
"""

SLOW_SCRIPT = """#!/bin/sh
exec sleep 30
"""

SILENT_SCRIPT = """#!/bin/sh
echo "progress=end"
exit 0
"""

#============================================

@pytest.fixture(autouse=True)
def quiet_output():
	utils.set_quiet_mode(True)
	yield
	utils.set_quiet_mode(False)

#============================================

def _fake_ffmpeg(tmp_path, body: str) -> ToolPaths:
	script = tmp_path / 'fake_ffmpeg'
	script.write_text(body)
	script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
	return ToolPaths(ffmpeg=str(script), ffprobe='ffprobe')

#============================================

def _graph():
	segment = PlannedSegment(stream_index=0, input_index=0, source_path='/media/a.mp4',
		clip_id='c1', item_id='i1', track_id='main', layer=0, in_sec=0.0, out_sec=4.0,
		position=0.0)
	return GraphCompiler().compile([segment])

#============================================

def _run(tools: ToolPaths, destination: str, expected_duration: float = 4.0):
	events = []
	job = PipelineExecutor(tools).execute(['/media/a.mp4'], _graph(), destination,
		listener=events.append, expected_duration=expected_duration)
	result = job.wait(timeout=30)
	assert result is not None
	return (job, events)

#============================================

def test_progress_is_monotonic_and_completes(tmp_path) -> None:
	"""
	Ensure percent never decreases and the job ends with one Completed event.
	"""
	destination = str(tmp_path / 'out' / 'movie.mp4')
	(job, events) = _run(_fake_ffmpeg(tmp_path, PROGRESS_SCRIPT), destination)
	assert isinstance(events[0], StartedEvent)
	percents = [event.percent for event in events if isinstance(event, ProgressEvent)]
	assert percents == [25.0, 75.0, 75.0, 100.0]
	assert percents == sorted(percents)
	assert isinstance(events[-1], CompletedEvent)
	assert events[-1].output_path == destination
	terminal = [event for event in events if isinstance(event, (CompletedEvent, FailedEvent))]
	assert len(terminal) == 1
	assert job.succeeded
	assert job.returncode == 0
	assert job.timemark == '00:00:04.000000'
	assert os.path.exists(destination)

#============================================

def test_run_blocks_until_done(tmp_path) -> None:
	destination = str(tmp_path / 'movie.mp4')
	executor = PipelineExecutor(_fake_ffmpeg(tmp_path, PROGRESS_SCRIPT))
	result = executor.run(['/media/a.mp4'], _graph(), destination, expected_duration=4.0)
	assert result == CompletedEvent(output_path=destination)

#============================================

def test_listener_error_on_start_still_ends_job(tmp_path) -> None:
	"""
	A listener that raises on StartedEvent gets ffmpeg killed and a FailedEvent.
	"""
	events = []

	def _closed_surface(event) -> None:
		events.append(event)
		if isinstance(event, StartedEvent):
			raise ValueError("ui surface closed")

	tools = _fake_ffmpeg(tmp_path, SLOW_SCRIPT)
	job = PipelineExecutor(tools).execute(['/media/a.mp4'], _graph(),
		str(tmp_path / 'movie.mp4'), listener=_closed_surface, expected_duration=4.0)
	result = job.wait(timeout=10)
	assert isinstance(result, FailedEvent)
	assert 'ui surface closed' in result.error
	assert job.done
	assert job.returncode is not None and job.returncode != 0
	assert isinstance(events[-1], FailedEvent)
	assert not os.path.exists(tmp_path / 'movie.mp4')

#============================================

def test_nonzero_exit_reports_stderr(tmp_path) -> None:
	destination = str(tmp_path / 'movie.mp4')
	(job, events) = _run(_fake_ffmpeg(tmp_path, FAILING_SCRIPT), destination)
	assert isinstance(events[0], StartedEvent)
	failure = events[-1]
	assert isinstance(failure, FailedEvent)
	assert failure.returncode == 1
	assert 'libnothing' in failure.detail
	assert not any(isinstance(event, CompletedEvent) for event in events)
	assert not job.succeeded

#============================================

def test_missing_output_is_a_failure(tmp_path) -> None:
	destination = str(tmp_path / 'movie.mp4')
	(job, events) = _run(_fake_ffmpeg(tmp_path, SILENT_SCRIPT), destination)
	assert isinstance(events[-1], FailedEvent)
	assert 'did not write' in events[-1].error
	assert job.returncode == 0

#============================================

def test_unwritable_destination_fails_before_launch(tmp_path) -> None:
	"""
	A destination below a regular file cannot be created.
	"""
	blocker = tmp_path / 'blocker'
	blocker.write_text('not a directory')
	destination = str(blocker / 'movie.mp4')
	(job, events) = _run(_fake_ffmpeg(tmp_path, PROGRESS_SCRIPT), destination)
	assert len(events) == 1
	assert isinstance(events[0], FailedEvent)
	assert job.returncode is None

#============================================

def test_missing_binary_fails_to_launch(tmp_path) -> None:
	tools = ToolPaths(ffmpeg=str(tmp_path / 'no-such-ffmpeg'), ffprobe='ffprobe')
	(job, events) = _run(tools, str(tmp_path / 'movie.mp4'))
	assert len(events) == 1
	assert isinstance(events[0], FailedEvent)
	assert 'failed to launch ffmpeg' in events[0].error

#============================================

def test_build_command_layout() -> None:
	executor = PipelineExecutor(ToolPaths(ffmpeg='/opt/ffmpeg', ffprobe='/opt/ffprobe'))
	cmd = executor.build_command(['/media/a.mp4', '/media/b.mp4'], _graph(),
		CONCAT_PROFILE, '/tmp/out.mp4')
	assert cmd[0] == '/opt/ffmpeg'
	assert cmd[cmd.index('-progress') + 1] == 'pipe:1'
	assert cmd.count('-i') == 2
	assert cmd.index('-filter_complex') > cmd.index('/media/b.mp4')
	assert cmd[cmd.index('-c:v') + 1] == 'libx264'
	assert cmd[cmd.index('-preset') + 1] == 'veryfast'
	assert cmd[cmd.index('-c:a') + 1] == 'aac'
	assert '[outv]' in cmd
	assert '[outa]' in cmd
	assert cmd[-1] == '/tmp/out.mp4'

#============================================

def test_execute_requires_inputs(tmp_path) -> None:
	with pytest.raises(NoValidSegmentsError):
		PipelineExecutor().execute([], _graph(), str(tmp_path / 'out.mp4'))

#============================================

def test_parse_progress_seconds() -> None:
	assert parse_progress_seconds('out_time_us', '2500000') == 2.5
	# out_time_ms carries microseconds as well
	assert parse_progress_seconds('out_time_ms', '2500000') == 2.5
	assert parse_progress_seconds('out_time', '00:01:02.500000') == 62.5
	assert parse_progress_seconds('out_time_us', 'N/A') is None
	assert parse_progress_seconds('out_time', 'N/A') is None
	assert parse_progress_seconds('frame', '12') is None
