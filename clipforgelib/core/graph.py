#!/usr/bin/env python3

"""
Structured ffmpeg filter graph.

A graph is an ordered list of nodes. Each node reads labeled streams, runs a
chain of filter operations and writes labeled streams. Input streams of the
process itself are addressed as '<input index>:v' or '<input index>:a'.
"""

import re
from dataclasses import dataclass
from clipforgelib.core import utils
from clipforgelib.core.errors import GraphConstructionError

#============================================

INPUT_STREAM_RE = re.compile(r"^\d+:[va]$")
LABEL_RE = re.compile(r"^[A-Za-z0-9_]+$")

#============================================

@dataclass(frozen=True)
class FilterOp():
	name: str
	# ordered (key, value) pairs
	params: tuple = ()

	#============================
	def param(self, key: str):
		for (param_key, value) in self.params:
			if param_key == key:
				return value
		raise KeyError(key)

#============================================

@dataclass(frozen=True)
class FilterNode():
	inputs: tuple
	ops: tuple
	outputs: tuple

	#============================
	@property
	def operation(self) -> str:
		return ','.join(op.name for op in self.ops)

#============================================

@dataclass(frozen=True)
class FilterGraph():
	nodes: tuple
	# stream kind ('video'/'audio') -> final label
	outputs: dict

	#============================
	def validate(self) -> None:
		produced = set()
		consumed = set()
		for node in self.nodes:
			if len(node.ops) == 0:
				raise GraphConstructionError("filter node has no operations")
			for label in node.inputs:
				if INPUT_STREAM_RE.match(label):
					continue
				if label not in produced:
					raise GraphConstructionError(f"label [{label}] used before it is produced")
				if label in consumed:
					raise GraphConstructionError(f"label [{label}] consumed more than once")
				consumed.add(label)
			for label in node.outputs:
				if not LABEL_RE.match(label) or INPUT_STREAM_RE.match(label):
					raise GraphConstructionError(f"invalid output label [{label}]")
				if label in produced:
					raise GraphConstructionError(f"duplicate output label [{label}]")
				produced.add(label)
		for label in self.outputs.values():
			if label not in produced:
				raise GraphConstructionError(f"final output [{label}] is never produced")
			if label in consumed:
				raise GraphConstructionError(f"final output [{label}] is consumed inside the graph")

	#============================
	def labels(self) -> list:
		return [label for node in self.nodes for label in node.outputs]

	#============================
	def map_args(self) -> list:
		args = []
		for kind in ('video', 'audio'):
			label = self.outputs.get(kind)
			if label is not None:
				args.extend(['-map', f"[{label}]"])
		return args

#============================================

def _escape_chars(text: str, chars: tuple) -> str:
	for char in chars:
		text = text.replace(char, '\\' + char)
	return text

#============================================

def _escape_value(text: str) -> str:
	"""
	Escape an option value for use inside -filter_complex. The graph parser
	strips one level of backslashes before the filter option parser strips
	the second, so option separators are escaped first and the result is
	escaped again for the graph level.
	"""
	option_level = _escape_chars(text, ('\\', "'", ':'))
	return _escape_chars(option_level, ('\\', "'", '[', ']', ',', ';'))

#============================================

def serialize_op(op: FilterOp) -> str:
	if len(op.params) == 0:
		return op.name
	parts = []
	for (key, value) in op.params:
		text = utils.format_number(value)
		if isinstance(value, str):
			text = _escape_value(value)
		parts.append(f"{key}={text}")
	return f"{op.name}=" + ':'.join(parts)

#============================================

def serialize_node(node: FilterNode) -> str:
	inputs = ''.join(f"[{label}]" for label in node.inputs)
	outputs = ''.join(f"[{label}]" for label in node.outputs)
	chain = ','.join(serialize_op(op) for op in node.ops)
	return f"{inputs}{chain}{outputs}"

#============================================

def serialize_graph(graph: FilterGraph) -> str:
	return ';'.join(serialize_node(node) for node in graph.nodes)
