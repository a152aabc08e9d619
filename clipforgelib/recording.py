#!/usr/bin/env python3

"""
Glue between the capture recorder and the export engine.

The recorder itself (screen or webcam capture) lives outside this package;
it only has to provide start(output_path) and stop(). This module measures
the real capture length, probes finished files, composes a screen capture
with a webcam capture into one picture-in-picture file, and force-stops
sessions that run past the recording ceiling.
"""

import functools
import os
import threading
import time
from dataclasses import dataclass
from clipforgelib.core import model
from clipforgelib.core import utils
from clipforgelib.core.config import ToolPaths
from clipforgelib.core.errors import ProbeError
from clipforgelib.core.errors import RecordingError
from clipforgelib.core.exporter import TimelineExporter
from clipforgelib.media.events import CompletedEvent
from clipforgelib.media.events import FailedEvent
from clipforgelib.media.ffprobe import probe_media

#============================================

MAX_RECORDING_SECONDS = 30 * 60
DEFAULT_CAPTURE_SIZE = (1920, 1080)
CAPTURE_KINDS = ('screen', 'webcam')

#============================================

@dataclass(frozen=True)
class CaptureMetadata():
	path: str
	duration: float
	width: int
	height: int
	kind: str = 'screen'

#============================================

def finalize_capture(path: str, measured_duration: float, kind: str = 'screen',
	prober=None) -> CaptureMetadata:
	"""
	Build metadata for a finished capture file. The measured wall-clock
	duration always wins over the probed one, since live recorders often
	write containers without a usable duration.
	"""
	prober = prober or probe_media
	try:
		result = prober(path)
	except ProbeError as exc:
		utils.warn(f"failed to probe recording {path}: {exc}")
		(width, height) = DEFAULT_CAPTURE_SIZE
		return CaptureMetadata(path=path, duration=float(measured_duration or 0.0),
			width=width, height=height, kind=kind)
	duration = measured_duration
	if not duration or duration <= 0:
		duration = result.duration
	return CaptureMetadata(path=path, duration=float(duration), width=result.width,
		height=result.height, kind=kind)

#============================================

def build_pip_project(screen: CaptureMetadata, camera: CaptureMetadata) -> model.PersistedProject:
	"""
	A two-track, two-clip timeline: the screen capture on the base video
	track and the webcam capture on an overlay track above it.
	"""
	clips = {}
	tracks = []
	layout = (
		(screen, model.Track(id='screen', kind='video', order=0, name='Screen')),
		(camera, model.Track(id='camera', kind='overlay', order=1, name='Camera')),
	)
	for (capture, track) in layout:
		clips[track.id] = model.Clip(id=track.id, name=os.path.basename(capture.path),
			path=capture.path, duration=capture.duration, width=capture.width,
			height=capture.height)
		item = model.TrackItem(id=f"{track.id}-item", clip_id=track.id,
			track_id=track.id, track_position=0.0)
		tracks.append((track, (item,)))
	return model.PersistedProject(id='pip', name='Picture in picture', version='1.0.0',
		clips=clips, tracks=tuple(tracks))

#============================================

class PictureInPictureComposer():
	def __init__(self, exporter: TimelineExporter = None, prober=None):
		self.exporter = exporter or TimelineExporter()
		self.prober = prober or self.exporter.prober
		self.output_metadata = None

	#============================
	def compose(self, screen: CaptureMetadata, camera: CaptureMetadata,
		destination: str, listener=None):
		"""
		Compose both captures into `destination`. The two capture files are
		removed once the composition succeeds and kept when it fails.
		"""
		project = build_pip_project(screen, camera)
		expected = max(screen.duration, camera.duration)
		self.output_metadata = None
		finish = functools.partial(self._on_event, screen, camera, listener)
		return self.exporter.compose(project, destination, listener=finish,
			expected_duration=expected)

	#============================
	def _on_event(self, screen: CaptureMetadata, camera: CaptureMetadata,
		listener, event) -> None:
		if isinstance(event, CompletedEvent):
			self.output_metadata = finalize_capture(event.output_path,
				max(screen.duration, camera.duration), kind='screen',
				prober=self.prober)
			for capture in (screen, camera):
				if os.path.exists(capture.path):
					os.remove(capture.path)
		elif isinstance(event, FailedEvent):
			utils.warn(
				f"picture-in-picture composition failed, keeping {screen.path} "
				f"and {camera.path}: {event.error}"
			)
		if listener is not None:
			listener(event)

#============================================

def compose_picture_in_picture(screen: CaptureMetadata, camera: CaptureMetadata,
	destination: str, listener=None, exporter: TimelineExporter = None):
	return PictureInPictureComposer(exporter).compose(screen, camera, destination,
		listener=listener)

#============================================

class RecordingSession():
	def __init__(self, recorder, tools: ToolPaths = None, prober=None,
		max_seconds: float = MAX_RECORDING_SECONDS, on_stopped=None):
		self.recorder = recorder
		self.tools = tools or ToolPaths()
		self.prober = prober or functools.partial(probe_media, tools=self.tools)
		self.max_seconds = max_seconds
		self.on_stopped = on_stopped
		self.kind = None
		self.output_path = None
		self._started_at = None
		self._timer = None
		self._session_id = 0
		self._lock = threading.Lock()

	#============================
	@property
	def is_recording(self) -> bool:
		return self._started_at is not None

	#============================
	def _make_output_path(self, kind: str) -> str:
		recordings_dir = self.tools.recordings_dir
		os.makedirs(recordings_dir, exist_ok=True)
		base = f"recording-{kind}-{utils.make_timestamp()}"
		path = os.path.join(recordings_dir, f"{base}.webm")
		counter = 1
		while os.path.exists(path):
			counter += 1
			path = os.path.join(recordings_dir, f"{base}-{counter}.webm")
		return path

	#============================
	def start(self, kind: str = 'screen') -> str:
		if kind not in CAPTURE_KINDS:
			raise RecordingError(f"unsupported recording kind: {kind}")
		with self._lock:
			if self._started_at is not None:
				raise RecordingError("recording already in progress")
			output_path = self._make_output_path(kind)
			self.recorder.start(output_path)
			self.kind = kind
			self.output_path = output_path
			self._started_at = time.monotonic()
			self._session_id += 1
			# the timer only ever stops the session it was armed for
			self._timer = threading.Timer(self.max_seconds, self._on_timeout,
				args=(self._session_id,))
			self._timer.daemon = True
			self._timer.start()
		utils.message(f"recording {kind} to {output_path}")
		return output_path

	#============================
	def _on_timeout(self, session_id: int) -> None:
		try:
			self.stop(session_id=session_id)
		except RecordingError:
			# stopped by the caller in the meantime
			return
		utils.warn(f"recording reached the {self.max_seconds / 60:.0f} minute limit, stopped")

	#============================
	def stop(self, session_id: int = None) -> CaptureMetadata:
		"""
		Stop the current capture. With `session_id`, only that session is
		stopped; a later session raises RecordingError instead.
		"""
		with self._lock:
			if self._started_at is None:
				raise RecordingError("no recording in progress")
			if session_id is not None and session_id != self._session_id:
				raise RecordingError(f"recording session {session_id} already stopped")
			if self._timer is not None:
				self._timer.cancel()
				self._timer = None
			measured = time.monotonic() - self._started_at
			path = self.output_path
			kind = self.kind
			try:
				self.recorder.stop()
			finally:
				self._started_at = None
				self.output_path = None
				self.kind = None
		metadata = finalize_capture(path, measured, kind=kind, prober=self.prober)
		if self.on_stopped is not None:
			self.on_stopped(metadata)
		return metadata
