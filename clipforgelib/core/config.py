#!/usr/bin/env python3

import os
import shutil
import sys
from dataclasses import dataclass, field
import yaml

#============================================

ASSUMED_BITRATE_BPS = 2_500_000
RECORDINGS_DIR = os.path.join(os.path.expanduser('~'), 'Movies', 'ClipForge', 'recordings')
CONFIG_KEYS = ('ffmpeg', 'ffprobe', 'recordings_dir', 'assumed_bitrate')

#============================================

@dataclass(frozen=True)
class ToolPaths():
	ffmpeg: str = 'ffmpeg'
	ffprobe: str = 'ffprobe'
	recordings_dir: str = RECORDINGS_DIR
	assumed_bitrate: int = ASSUMED_BITRATE_BPS

#============================================

@dataclass(frozen=True)
class EncodingProfile():
	video_codec: str
	video_args: tuple = ()
	audio_codec: str = None
	audio_args: tuple = ()
	extra_args: tuple = ()

	#============================
	def output_args(self) -> list:
		args = ['-c:v', self.video_codec]
		args.extend(self.video_args)
		if self.audio_codec is None:
			args.append('-an')
		else:
			args.extend(['-c:a', self.audio_codec])
			args.extend(self.audio_args)
		args.extend(self.extra_args)
		return args

#============================================

CONCAT_PROFILE = EncodingProfile(
	video_codec='libx264',
	video_args=('-preset', 'veryfast', '-crf', '20', '-pix_fmt', 'yuv420p'),
	audio_codec='aac',
	audio_args=('-b:a', '192k'),
	extra_args=('-movflags', '+faststart'),
)

OVERLAY_PROFILE = EncodingProfile(
	video_codec='libvpx-vp9',
	video_args=('-b:v', '2M'),
)

#============================================

@dataclass(frozen=True)
class Settings():
	tools: ToolPaths = field(default_factory=ToolPaths)
	concat_profile: EncodingProfile = CONCAT_PROFILE
	overlay_profile: EncodingProfile = OVERLAY_PROFILE

#============================================

def _platform_dir() -> str:
	if sys.platform == 'darwin':
		return 'mac'
	if sys.platform.startswith('win'):
		return 'win'
	return 'linux'

#============================================

def _find_binary(name: str, configured: str = None, env_var: str = None,
	search_root: str = None) -> str:
	if configured:
		return configured
	if env_var and os.environ.get(env_var):
		return os.environ[env_var]
	root = search_root or os.getcwd()
	bundled = os.path.join(root, 'bin', _platform_dir(), name)
	if os.path.isfile(bundled):
		return bundled
	found = shutil.which(name)
	if found is not None:
		return found
	# leave the bare name; the executor reports a launch failure if it is missing
	return name

#============================================

def load_config_file(config_file: str) -> dict:
	if config_file is None:
		return {}
	if not os.path.exists(config_file):
		raise RuntimeError(f"config file not found: {config_file}")
	with open(config_file, 'r') as data_file:
		data = yaml.safe_load(data_file)
	if data is None:
		return {}
	if not isinstance(data, dict):
		raise RuntimeError("config file must be a mapping at the top level")
	unknown = sorted(set(data) - set(CONFIG_KEYS))
	if len(unknown) > 0:
		raise RuntimeError(f"unknown config keys: {', '.join(unknown)}")
	return data

#============================================

def resolve_tool_paths(config_file: str = None, ffmpeg: str = None,
	ffprobe: str = None, search_root: str = None) -> ToolPaths:
	"""
	Resolve ffmpeg/ffprobe once. Explicit arguments win, then the config
	file, then CLIPFORGE_FFMPEG/CLIPFORGE_FFPROBE, then bin/<platform>/,
	then PATH.
	"""
	data = load_config_file(config_file)
	ffmpeg_path = _find_binary('ffmpeg', ffmpeg or data.get('ffmpeg'),
		'CLIPFORGE_FFMPEG', search_root)
	ffprobe_path = _find_binary('ffprobe', ffprobe or data.get('ffprobe'),
		'CLIPFORGE_FFPROBE', search_root)
	recordings_dir = data.get('recordings_dir') or RECORDINGS_DIR
	assumed_bitrate = data.get('assumed_bitrate', ASSUMED_BITRATE_BPS)
	if not isinstance(assumed_bitrate, int) or assumed_bitrate <= 0:
		raise RuntimeError("assumed_bitrate must be a positive integer")
	return ToolPaths(
		ffmpeg=ffmpeg_path,
		ffprobe=ffprobe_path,
		recordings_dir=os.path.expanduser(recordings_dir),
		assumed_bitrate=assumed_bitrate,
	)

#============================================

def load_settings(config_file: str = None) -> Settings:
	return Settings(tools=resolve_tool_paths(config_file))
