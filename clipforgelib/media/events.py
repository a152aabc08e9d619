#!/usr/bin/env python3

"""
Export events.

An export emits StartedEvent once, ProgressEvent zero or more times with a
non-decreasing percent, then exactly one of CompletedEvent or FailedEvent.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Union

#============================================

@dataclass(frozen=True)
class StartedEvent():
	command: str

#============================================

@dataclass(frozen=True)
class ProgressEvent():
	percent: float
	timemark: str

#============================================

@dataclass(frozen=True)
class CompletedEvent():
	output_path: str

#============================================

@dataclass(frozen=True)
class FailedEvent():
	error: str
	detail: str = ''
	returncode: int = None

ExportEvent = Union[StartedEvent, ProgressEvent, CompletedEvent, FailedEvent]
ExportListener = Callable[[ExportEvent], None]
TERMINAL_EVENTS = (CompletedEvent, FailedEvent)

#============================================

def to_channel_message(event: ExportEvent) -> tuple:
	"""
	Map an event to the (channel, payload) pair presentation surfaces consume.
	Started events have no channel and map to None.
	"""
	if isinstance(event, ProgressEvent):
		return ('export:progress', {'progress': event.percent, 'timemark': event.timemark})
	if isinstance(event, CompletedEvent):
		return ('export:end', {'outputPath': event.output_path})
	if isinstance(event, FailedEvent):
		return ('export:error', {'error': event.error, 'detail': event.detail})
	return None

#============================================

class ExportBroadcaster():
	"""
	Fan export events out to every subscribed surface as channel messages.
	"""
	def __init__(self):
		self._sinks = []
		self._lock = threading.Lock()

	#============================
	def subscribe(self, sink) -> None:
		"""sink: callable(channel: str, payload: dict)"""
		with self._lock:
			self._sinks.append(sink)

	#============================
	def unsubscribe(self, sink) -> None:
		with self._lock:
			if sink in self._sinks:
				self._sinks.remove(sink)

	#============================
	def __call__(self, event: ExportEvent) -> None:
		message = to_channel_message(event)
		if message is None:
			return
		(channel, payload) = message
		with self._lock:
			sinks = list(self._sinks)
		for sink in sinks:
			sink(channel, dict(payload))
