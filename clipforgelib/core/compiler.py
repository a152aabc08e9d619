#!/usr/bin/env python3

from clipforgelib.core import utils
from clipforgelib.core.errors import GraphConstructionError
from clipforgelib.core.errors import NoValidSegmentsError
from clipforgelib.core.errors import UnsupportedSegmentCountError
from clipforgelib.core.graph import FilterGraph
from clipforgelib.core.graph import FilterNode
from clipforgelib.core.graph import FilterOp

#============================================

MODE_CONCAT = 'concat'
MODE_OVERLAY = 'overlay'

PIP_WIDTH = 320
PIP_HEIGHT = 240
PIP_MARGIN = 10

#============================================

def retime_expr(position: float) -> str:
	"""
	Shift a trimmed stream so it starts at its own zero, then at `position`.
	"""
	return f"PTS-STARTPTS+{utils.format_number(float(position))}/TB"

#============================================

class GraphCompiler():
	def __init__(self, pip_size: tuple = (PIP_WIDTH, PIP_HEIGHT),
		pip_margin: int = PIP_MARGIN):
		self.pip_size = pip_size
		self.pip_margin = pip_margin

	#============================
	def compile(self, segments, mode: str = MODE_CONCAT) -> FilterGraph:
		if mode == MODE_CONCAT:
			graph = self.compile_concat(segments)
		elif mode == MODE_OVERLAY:
			graph = self.compile_overlay(segments)
		else:
			raise GraphConstructionError(f"unknown compilation mode: {mode}")
		graph.validate()
		return graph

	#============================
	def compile_concat(self, segments) -> FilterGraph:
		segments = sorted(segments, key=lambda segment: segment.stream_index)
		if len(segments) == 0:
			raise NoValidSegmentsError()
		video_nodes = [self._video_segment_node(segment) for segment in segments]
		audio_nodes = [self._audio_segment_node(segment) for segment in segments]
		video_labels = [label for node in video_nodes for label in node.outputs]
		audio_labels = [label for node in audio_nodes for label in node.outputs]
		# every segment contributes exactly one video and one audio stream
		if len(video_labels) != len(segments) or len(audio_labels) != len(segments):
			raise GraphConstructionError(
				f"video/audio segment count mismatch: {len(video_labels)} video, "
				f"{len(audio_labels)} audio for {len(segments)} segments"
			)
		nodes = []
		for (video_node, audio_node) in zip(video_nodes, audio_nodes):
			nodes.append(video_node)
			nodes.append(audio_node)
		nodes.append(FilterNode(
			inputs=tuple(video_labels),
			ops=(FilterOp('concat', (('n', len(video_labels)), ('v', 1), ('a', 0))),),
			outputs=('outv',),
		))
		nodes.append(FilterNode(
			inputs=tuple(audio_labels),
			ops=(FilterOp('concat', (('n', len(audio_labels)), ('v', 0), ('a', 1))),),
			outputs=('outa',),
		))
		return FilterGraph(nodes=tuple(nodes), outputs={'video': 'outv', 'audio': 'outa'})

	#============================
	def _video_segment_node(self, segment) -> FilterNode:
		return FilterNode(
			inputs=(segment.input_video,),
			ops=(
				FilterOp('trim', (('start', segment.in_sec), ('end', segment.out_sec))),
				FilterOp('setpts', (('expr', retime_expr(segment.position)),)),
			),
			outputs=(segment.video_label,),
		)

	#============================
	def _audio_segment_node(self, segment) -> FilterNode:
		return FilterNode(
			inputs=(segment.input_audio,),
			ops=(
				FilterOp('atrim', (('start', segment.in_sec), ('end', segment.out_sec))),
				FilterOp('asetpts', (('expr', retime_expr(segment.position)),)),
			),
			outputs=(segment.audio_label,),
		)

	#============================
	def compile_overlay(self, segments) -> FilterGraph:
		segments = list(segments)
		if len(segments) != 2:
			raise UnsupportedSegmentCountError(len(segments))
		(primary, secondary) = sorted(segments,
			key=lambda segment: (segment.layer, segment.stream_index))
		(width, height) = self.pip_size
		margin = self.pip_margin
		scale_node = FilterNode(
			inputs=(secondary.input_video,),
			ops=(FilterOp('scale', (('w', width), ('h', height))),),
			outputs=('pip',),
		)
		overlay_node = FilterNode(
			inputs=(primary.input_video, 'pip'),
			ops=(FilterOp('overlay', (
				('x', f"main_w-overlay_w-{margin}"),
				('y', f"main_h-overlay_h-{margin}"),
			)),),
			outputs=('output',),
		)
		return FilterGraph(nodes=(scale_node, overlay_node), outputs={'video': 'output'})
