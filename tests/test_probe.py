#!/usr/bin/env python3

"""
Pytest coverage for the ffprobe wrapper and its duration fallback.
"""

# Standard Library
import json
import os
import subprocess
import sys

# PIP3 modules
import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
	sys.path.insert(0, REPO_ROOT)

# local repo modules
from clipforgelib.core import utils
from clipforgelib.core.config import ToolPaths
from clipforgelib.core.errors import ProbeError
from clipforgelib.media import ffprobe

#============================================

VIDEO_STREAM = {'codec_type': 'video', 'width': 1280, 'height': 720}
AUDIO_STREAM = {'codec_type': 'audio'}

#============================================

@pytest.fixture
def media_file(tmp_path):
	path = tmp_path / 'capture.webm'
	path.write_bytes(b'\0' * 1000)
	return str(path)

#============================================

def _patch_ffprobe(monkeypatch, payload=None, returncode: int = 0, error_text: bytes = b''):
	calls = []

	def _fake_run(cmd, **kwargs):
		calls.append(cmd)
		body = b''
		if payload is not None:
			body = json.dumps(payload).encode('utf-8')
		return subprocess.CompletedProcess(cmd, returncode, body, error_text)

	monkeypatch.setattr(ffprobe.subprocess, 'run', _fake_run)
	return calls

#============================================

def test_container_duration_is_used(monkeypatch, media_file) -> None:
	calls = _patch_ffprobe(monkeypatch, {
		'streams': [AUDIO_STREAM, VIDEO_STREAM],
		'format': {'duration': '12.480000', 'size': '1000'},
	})
	result = ffprobe.probe_media(media_file, ToolPaths(ffprobe='/opt/ffprobe'))
	assert result.duration == 12.48
	assert (result.width, result.height) == (1280, 720)
	assert result.estimated is False
	assert calls[0][0] == '/opt/ffprobe'
	assert calls[0][-1] == media_file

#============================================

def test_missing_duration_falls_back_to_estimate(monkeypatch, media_file) -> None:
	"""
	1000 bytes at an assumed 8000 bit/s is one second.
	"""
	_patch_ffprobe(monkeypatch, {
		'streams': [VIDEO_STREAM],
		'format': {'duration': 'N/A'},
	})
	utils.set_quiet_mode(True)
	try:
		result = ffprobe.probe_media(media_file, ToolPaths(assumed_bitrate=8000))
	finally:
		utils.set_quiet_mode(False)
	assert result.duration == 1.0
	assert result.estimated is True
	assert result.width == 1280

#============================================

def test_estimate_has_a_floor(tmp_path) -> None:
	path = tmp_path / 'tiny.webm'
	path.write_bytes(b'\0')
	assert ffprobe.estimateDuration(str(path), 2_500_000) == ffprobe.MIN_ESTIMATED_DURATION

#============================================

def test_no_video_stream_is_an_error(monkeypatch, media_file) -> None:
	_patch_ffprobe(monkeypatch, {'streams': [AUDIO_STREAM], 'format': {'duration': '3.0'}})
	with pytest.raises(ProbeError):
		ffprobe.probe_media(media_file)

#============================================

def test_ffprobe_failure_is_an_error(monkeypatch, media_file) -> None:
	_patch_ffprobe(monkeypatch, returncode=1, error_text=b'Invalid data found when processing input')
	with pytest.raises(ProbeError) as excinfo:
		ffprobe.probe_media(media_file)
	assert 'Invalid data' in str(excinfo.value)

#============================================

def test_unparseable_output_is_an_error(monkeypatch, media_file) -> None:
	_patch_ffprobe(monkeypatch)
	with pytest.raises(ProbeError):
		ffprobe.probe_media(media_file)

#============================================

def test_missing_file_and_traversal_are_rejected(tmp_path) -> None:
	with pytest.raises(ProbeError):
		ffprobe.probe_media(str(tmp_path / 'absent.webm'))
	with pytest.raises(ProbeError):
		ffprobe.probe_media(str(tmp_path / '..' / 'capture.webm'))
