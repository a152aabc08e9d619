#!/usr/bin/env python3

# python wrapper for ffprobe

import json
import os
import subprocess
from dataclasses import dataclass
from clipforgelib.core import utils
from clipforgelib.core.config import ToolPaths
from clipforgelib.core.errors import ProbeError

#============================================

MIN_ESTIMATED_DURATION = 0.1

#============================================

@dataclass(frozen=True)
class ProbeResult():
	duration: float
	width: int
	height: int
	# True when the duration came from the size/bitrate fallback
	estimated: bool = False

	#============================
	def to_dict(self) -> dict:
		return {'duration': self.duration, 'width': self.width, 'height': self.height}

#============================================

def getProbeData(mediafile: str, tools: ToolPaths = None) -> dict:
	tools = tools or ToolPaths()
	cmd = [
		tools.ffprobe, '-v', 'error',
		'-show_entries', 'format=duration,size:stream=codec_type,width,height',
		'-of', 'json',
		mediafile,
	]
	try:
		proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
	except OSError as exc:
		raise ProbeError(f"failed to run ffprobe: {exc}") from exc
	if proc.returncode != 0:
		detail = proc.stderr.decode('utf-8', errors='replace').strip()
		raise ProbeError(f"failed to probe video: {detail or 'ffprobe exit ' + str(proc.returncode)}")
	try:
		data = json.loads(proc.stdout.decode('utf-8', errors='replace'))
	except ValueError as exc:
		raise ProbeError(f"unparseable ffprobe output for {mediafile}") from exc
	if not isinstance(data, dict):
		raise ProbeError(f"unexpected ffprobe output for {mediafile}")
	return data

#============================================

def _parse_duration(raw):
	if raw is None:
		return None
	try:
		duration = float(raw)
	except (TypeError, ValueError):
		return None
	if duration != duration or duration <= 0 or duration == float('inf'):
		return None
	return duration

#============================================

def estimateDuration(mediafile: str, assumed_bitrate: int, file_size: int = None) -> float:
	if file_size is None:
		file_size = os.path.getsize(mediafile)
	estimate = (file_size * 8.0) / float(assumed_bitrate)
	return max(estimate, MIN_ESTIMATED_DURATION)

#============================================

def probe_media(mediafile: str, tools: ToolPaths = None) -> ProbeResult:
	"""
	Return duration/width/height for a media file.

	When the container carries no usable duration (common for webm files
	written by a live recorder) the duration is estimated from file size and
	an assumed bitrate, and the result is flagged as estimated. Callers that
	measured the real elapsed time should prefer their own number.
	"""
	tools = tools or ToolPaths()
	if utils.has_parent_traversal(mediafile):
		raise ProbeError(f"invalid file path: {mediafile}")
	if not os.path.isfile(mediafile):
		raise ProbeError(f"file not found: {mediafile}")
	data = getProbeData(mediafile, tools)
	videostream = None
	for stream in data.get('streams') or []:
		if stream.get('codec_type') == 'video':
			videostream = stream
			break
	if videostream is None:
		raise ProbeError(f"no video stream found in {mediafile}")
	width = int(videostream.get('width') or 0)
	height = int(videostream.get('height') or 0)
	media_format = data.get('format') or {}
	duration = _parse_duration(media_format.get('duration'))
	if duration is not None:
		return ProbeResult(duration=duration, width=width, height=height)
	file_size = None
	try:
		file_size = int(media_format.get('size'))
	except (TypeError, ValueError):
		file_size = None
	estimate = estimateDuration(mediafile, tools.assumed_bitrate, file_size)
	utils.warn(f"no container duration for {mediafile}, estimated {estimate:.2f}s")
	return ProbeResult(duration=estimate, width=width, height=height, estimated=True)

