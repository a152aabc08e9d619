#!/usr/bin/env python3

from dataclasses import dataclass, field
from clipforgelib.core import utils
from clipforgelib.core.errors import InvalidTrimError
from clipforgelib.core.errors import MissingClipError
from clipforgelib.core.errors import ProbeError

#============================================

# trims may overshoot a probed duration by container rounding
DURATION_TOLERANCE = 0.001

#============================================

@dataclass(frozen=True)
class PlannedSegment():
	stream_index: int
	input_index: int
	source_path: str
	clip_id: str
	item_id: str
	track_id: str
	layer: int
	in_sec: float
	out_sec: float
	position: float

	#============================
	@property
	def duration(self) -> float:
		return self.out_sec - self.in_sec

	#============================
	@property
	def video_label(self) -> str:
		return f"v{self.stream_index}"

	#============================
	@property
	def audio_label(self) -> str:
		return f"a{self.stream_index}"

	#============================
	@property
	def input_video(self) -> str:
		return f"{self.input_index}:v"

	#============================
	@property
	def input_audio(self) -> str:
		return f"{self.input_index}:a"

#============================================

@dataclass
class SegmentPlan():
	segments: list = field(default_factory=list)
	# source paths, position in the list is the input index
	inputs: list = field(default_factory=list)
	warnings: list = field(default_factory=list)

	#============================
	@property
	def total_duration(self) -> float:
		return sum(segment.duration for segment in self.segments)

	#============================
	def summary(self) -> dict:
		return {
			'inputs': list(self.inputs),
			'segments': [
				{
					'stream': segment.stream_index,
					'input': segment.input_index,
					'item': segment.item_id,
					'clip': segment.clip_id,
					'in': segment.in_sec,
					'out': segment.out_sec,
					'position': segment.position,
				}
				for segment in self.segments
			],
			'warnings': [str(warning) for warning in self.warnings],
		}

#============================================

class SegmentPlanner():
	def __init__(self, prober=None):
		"""
		prober: optional callable(path) -> object with a `duration` attribute,
		used when a clip has no known duration and the item has no out point.
		"""
		self.prober = prober
		self._probed = {}

	#============================
	def plan(self, placed_items) -> SegmentPlan:
		plan = SegmentPlan()
		input_indexes = {}
		for placed in placed_items:
			try:
				(in_sec, out_sec, position) = self._resolve_trim(placed)
			except (MissingClipError, InvalidTrimError) as exc:
				plan.warnings.append(exc)
				utils.warn(f"skipping track item {placed.item.id}: {exc}")
				continue
			clip = placed.clip
			if clip.id not in input_indexes:
				input_indexes[clip.id] = len(plan.inputs)
				plan.inputs.append(clip.path)
			segment = PlannedSegment(
				stream_index=len(plan.segments),
				input_index=input_indexes[clip.id],
				source_path=clip.path,
				clip_id=clip.id,
				item_id=placed.item.id,
				track_id=placed.item.track_id,
				layer=placed.track.order,
				in_sec=in_sec,
				out_sec=out_sec,
				position=position,
			)
			plan.segments.append(segment)
		return plan

	#============================
	def _resolve_trim(self, placed) -> tuple:
		item = placed.item
		clip = placed.clip
		if clip is None:
			raise MissingClipError(item.clip_id, item.id)
		clip_duration = self._clip_duration(placed)
		in_sec = item.in_sec if item.in_sec is not None else 0.0
		out_sec = item.out_sec if item.out_sec is not None else clip_duration
		position = item.track_position if item.track_position is not None else 0.0
		if out_sec is None or out_sec <= 0:
			raise InvalidTrimError(item.id, in_sec, out_sec, "clip duration unknown")
		if in_sec < 0:
			raise InvalidTrimError(item.id, in_sec, out_sec, "in point is negative")
		if out_sec <= in_sec:
			raise InvalidTrimError(item.id, in_sec, out_sec, "out point must follow in point")
		if clip_duration is not None and out_sec > clip_duration + DURATION_TOLERANCE:
			raise InvalidTrimError(item.id, in_sec, out_sec,
				f"out point past clip duration {clip_duration}")
		if position < 0:
			raise InvalidTrimError(item.id, in_sec, out_sec, "track position is negative")
		return (float(in_sec), float(out_sec), float(position))

	#============================
	def _clip_duration(self, placed):
		clip = placed.clip
		if clip.duration is not None and clip.duration > 0:
			return float(clip.duration)
		if placed.item.out_sec is not None or self.prober is None:
			return None
		if clip.path not in self._probed:
			try:
				self._probed[clip.path] = float(self.prober(clip.path).duration)
			except ProbeError as exc:
				utils.warn(f"probe failed for {clip.path}: {exc}")
				self._probed[clip.path] = None
		return self._probed[clip.path]
