#!/usr/bin/env python3

import functools
from dataclasses import dataclass
from clipforgelib.core import utils
from clipforgelib.core.compiler import GraphCompiler
from clipforgelib.core.compiler import MODE_CONCAT
from clipforgelib.core.compiler import MODE_OVERLAY
from clipforgelib.core.config import Settings
from clipforgelib.core.errors import NoValidSegmentsError
from clipforgelib.core.graph import FilterGraph
from clipforgelib.core.graph import serialize_graph
from clipforgelib.core.planner import SegmentPlan
from clipforgelib.core.planner import SegmentPlanner
from clipforgelib.core.timeline import normalize
from clipforgelib.media.ffmpeg_pipeline import ExportJob
from clipforgelib.media.ffmpeg_pipeline import PipelineExecutor
from clipforgelib.media.ffprobe import probe_media

#============================================

@dataclass(frozen=True)
class CompiledExport():
	mode: str
	plan: SegmentPlan
	graph: FilterGraph

	#============================
	def summary(self) -> dict:
		data = self.plan.summary()
		data['mode'] = self.mode
		data['filter_complex'] = serialize_graph(self.graph)
		data['outputs'] = dict(self.graph.outputs)
		return data

#============================================

class TimelineExporter():
	def __init__(self, settings: Settings = None, prober=None,
		executor: PipelineExecutor = None, compiler: GraphCompiler = None):
		self.settings = settings or Settings()
		if prober is None:
			prober = functools.partial(probe_media, tools=self.settings.tools)
		self.prober = prober
		self.executor = executor or PipelineExecutor(self.settings.tools)
		self.compiler = compiler or GraphCompiler()

	#============================
	def compile(self, project, mode: str = MODE_CONCAT) -> CompiledExport:
		"""
		Normalize, plan and compile without touching any process.
		Every call starts from the current project state.
		"""
		placed = normalize(project)
		plan = SegmentPlanner(self.prober).plan(placed)
		if len(plan.segments) == 0:
			raise NoValidSegmentsError(
				f"no valid track items found ({len(plan.warnings)} skipped)"
			)
		graph = self.compiler.compile(plan.segments, mode)
		return CompiledExport(mode=mode, plan=plan, graph=graph)

	#============================
	def export(self, project, destination: str, listener=None) -> ExportJob:
		destination = utils.resolve_destination(destination)
		compiled = self.compile(project, MODE_CONCAT)
		return self._launch(compiled, destination, listener)

	#============================
	def compose(self, project, destination: str, listener=None,
		expected_duration: float = None) -> ExportJob:
		destination = utils.resolve_destination(destination)
		compiled = self.compile(project, MODE_OVERLAY)
		return self._launch(compiled, destination, listener, expected_duration)

	#============================
	def _launch(self, compiled: CompiledExport, destination: str, listener=None,
		expected_duration: float = None) -> ExportJob:
		profile = self.settings.concat_profile
		if compiled.mode == MODE_OVERLAY:
			profile = self.settings.overlay_profile
		if expected_duration is None:
			expected_duration = compiled.plan.total_duration
		job = self.executor.execute(compiled.plan.inputs, compiled.graph, destination,
			profile=profile, listener=listener, expected_duration=expected_duration)
		job.warnings = list(compiled.plan.warnings)
		return job

#============================================

def export_timeline(project, destination: str, listener=None,
	settings: Settings = None) -> ExportJob:
	return TimelineExporter(settings).export(project, destination, listener)
