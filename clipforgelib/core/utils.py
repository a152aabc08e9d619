#!/usr/bin/env python3

import os
import re
import sys
import time
from decimal import Decimal, InvalidOperation
from clipforgelib.core.errors import InvalidDestinationError

#============================================

_QUIET_MODE = False
_COMMAND_REPORTER = None

#============================================

def set_quiet_mode(quiet: bool) -> None:
	global _QUIET_MODE
	_QUIET_MODE = bool(quiet)

#============================================

def is_quiet_mode() -> bool:
	return _QUIET_MODE

#============================================

def set_command_reporter(reporter) -> None:
	"""
	Install a callable that receives a dict for every external command:
	{'event': 'start', 'command': str} before launch and
	{'event': 'end', 'command': str, 'returncode': int, 'seconds': float} after.
	"""
	global _COMMAND_REPORTER
	_COMMAND_REPORTER = reporter

#============================================

def clear_command_reporter() -> None:
	global _COMMAND_REPORTER
	_COMMAND_REPORTER = None

#============================================

def report_command(event: dict) -> None:
	if _COMMAND_REPORTER is not None:
		_COMMAND_REPORTER(event)

#============================================

def show_command(cmd: str) -> None:
	showcmd = re.sub("  *", " ", cmd.strip())
	if not is_quiet_mode():
		print(f"CMD: '{showcmd}'")

#============================================

def message(text: str) -> None:
	if not is_quiet_mode():
		print(text)

#============================================

def warn(text: str) -> None:
	if not is_quiet_mode():
		print(f"warning: {text}", file=sys.stderr)

#============================================

def parse_timecode(raw_time) -> Decimal:
	if raw_time is None:
		raise RuntimeError("time value is required")
	if isinstance(raw_time, int):
		return Decimal(raw_time)
	if isinstance(raw_time, float):
		return Decimal(str(raw_time))
	if isinstance(raw_time, str):
		value = raw_time.strip()
		try:
			if ':' not in value:
				return Decimal(value)
			parts = value.split(':')
			seconds = Decimal(parts.pop())
			minutes = Decimal(parts.pop())
			hours = Decimal(0)
			if len(parts) > 0:
				hours = Decimal(parts.pop())
		except InvalidOperation as exc:
			raise RuntimeError(f"invalid timecode: {raw_time}") from exc
		return hours * Decimal(3600) + minutes * Decimal(60) + seconds
	raise RuntimeError("time values must be int, float, or timecode string")

#============================================

def format_timemark(seconds: float) -> str:
	"""
	Format seconds as H:MM:SS.ss, the shape ffmpeg uses for its time mark.
	"""
	seconds = max(0.0, float(seconds))
	hours = int(seconds // 3600)
	minutes = int((seconds % 3600) // 60)
	secs = seconds - hours * 3600 - minutes * 60
	return f"{hours}:{minutes:02d}:{secs:05.2f}"

#============================================

def format_number(value) -> str:
	"""
	Compact decimal text for filter arguments: 7.0 -> '7', 2.5 -> '2.5'.
	"""
	if isinstance(value, bool):
		return str(int(value))
	if isinstance(value, int):
		return str(value)
	if isinstance(value, float):
		text = f"{value:.6f}".rstrip('0').rstrip('.')
		if text in ('', '-0'):
			return '0'
		return text
	return str(value)

#============================================

def has_parent_traversal(path: str) -> bool:
	parts = re.split(r"[\\/]+", path)
	return '..' in parts

#============================================

def resolve_destination(path: str) -> str:
	if not isinstance(path, str) or path.strip() == '':
		raise InvalidDestinationError("output path must be a non-empty string")
	if has_parent_traversal(path):
		raise InvalidDestinationError(f"output path may not contain '..': {path}")
	return os.path.abspath(os.path.expanduser(path))

#============================================

def ensure_parent_dir(path: str) -> str:
	parent = os.path.dirname(os.path.abspath(path))
	os.makedirs(parent, exist_ok=True)
	return parent

#============================================

def make_timestamp() -> str:
	datestamp = time.strftime("%y%b%d").lower()
	uppercase = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
	hourstamp = uppercase[(time.localtime()[3]) % 26]
	minstamp = f"{time.localtime()[4]:02d}"
	secstamp = uppercase[(time.localtime()[5]) % 26]
	timestamp = datestamp + hourstamp + minstamp + secstamp
	return timestamp
