#!/usr/bin/env python3

#============================================

class ClipForgeError(RuntimeError):
	pass

#============================================

class InvalidProjectError(ClipForgeError):
	pass

#============================================

class InvalidDestinationError(ClipForgeError):
	pass

#============================================

class EmptyTimelineError(ClipForgeError):
	def __init__(self, message: str = "no track items to export"):
		super().__init__(message)

#============================================

class MissingClipError(ClipForgeError):
	def __init__(self, clip_id: str, item_id: str = None):
		self.clip_id = clip_id
		self.item_id = item_id
		message = f"clip not found: {clip_id}"
		if item_id is not None:
			message += f" (track item {item_id})"
		super().__init__(message)

#============================================

class InvalidTrimError(ClipForgeError):
	def __init__(self, item_id: str, in_sec, out_sec, reason: str = None):
		self.item_id = item_id
		self.in_sec = in_sec
		self.out_sec = out_sec
		message = f"invalid trim on track item {item_id}: in={in_sec} out={out_sec}"
		if reason:
			message += f" ({reason})"
		super().__init__(message)

#============================================

class GraphConstructionError(ClipForgeError):
	pass

#============================================

class UnsupportedSegmentCountError(ClipForgeError):
	def __init__(self, count: int, expected: int = 2):
		self.count = count
		self.expected = expected
		super().__init__(
			f"overlay composition needs exactly {expected} segments, got {count}"
		)

#============================================

class NoValidSegmentsError(ClipForgeError):
	def __init__(self, message: str = "no valid track items found"):
		super().__init__(message)

#============================================

class ProbeError(ClipForgeError):
	pass

#============================================

class PipelineError(ClipForgeError):
	def __init__(self, message: str, returncode: int = None, detail: str = ''):
		self.returncode = returncode
		self.detail = detail
		super().__init__(message)

#============================================

class RecordingError(ClipForgeError):
	pass
