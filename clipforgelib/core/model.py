#!/usr/bin/env python3

"""
Project model: clips, tracks and track items, and the two project shapes.

The persisted shape nests items inside each track, the runtime shape keeps a
flat item map beside a track map. Both are plain frozen values; conversion
between them is total and keeps ids, trims and positions untouched.
"""

import math
from dataclasses import dataclass, field
from typing import Union
from clipforgelib.core.errors import InvalidProjectError

#============================================

PRIMARY_TRACK_ID = 'main'
TRACK_KINDS = ('video', 'audio', 'overlay')

#============================================

@dataclass(frozen=True)
class Clip():
	id: str
	name: str
	path: str
	duration: float = 0.0
	width: int = 0
	height: int = 0
	file_size: int = None

#============================================

@dataclass(frozen=True)
class TrackItem():
	id: str
	clip_id: str
	track_id: str = PRIMARY_TRACK_ID
	in_sec: float = None
	out_sec: float = None
	track_position: float = None

#============================================

@dataclass(frozen=True)
class Track():
	id: str
	kind: str = 'video'
	order: int = 0
	visible: bool = True
	name: str = ''

#============================================

def primary_track() -> Track:
	return Track(id=PRIMARY_TRACK_ID, kind='video', order=0, visible=True, name='Main')

#============================================

@dataclass(frozen=True)
class PersistedProject():
	id: str
	name: str
	version: str
	clips: dict
	# tuple of (Track, tuple of TrackItem)
	tracks: tuple = ()
	created_at: str = None
	updated_at: str = None
	kind: str = field(default='persisted', init=False)

#============================================

@dataclass(frozen=True)
class RuntimeProject():
	id: str
	name: str
	version: str
	clips: dict
	tracks: dict
	track_items: dict
	created_at: str = None
	updated_at: str = None
	kind: str = field(default='runtime', init=False)

Project = Union[PersistedProject, RuntimeProject]

#============================================

def _optional_seconds(raw, key: str, item_id: str):
	if raw is None:
		return None
	if isinstance(raw, bool) or not isinstance(raw, (int, float)):
		raise InvalidProjectError(f"track item {item_id}: {key} must be a number")
	value = float(raw)
	if math.isnan(value) or math.isinf(value):
		raise InvalidProjectError(f"track item {item_id}: {key} must be finite")
	return value

#============================================

def _int_field(raw, default: int, label: str) -> int:
	if raw is None:
		return default
	if isinstance(raw, bool):
		raise InvalidProjectError(f"{label} must be an integer")
	if isinstance(raw, float) and raw.is_integer():
		return int(raw)
	if not isinstance(raw, int):
		raise InvalidProjectError(f"{label} must be an integer")
	return raw

#============================================

def _parse_clip(clip_key: str, data: dict) -> Clip:
	if not isinstance(data, dict):
		raise InvalidProjectError(f"clip {clip_key} must be a mapping")
	path = data.get('path')
	if not isinstance(path, str) or path == '':
		raise InvalidProjectError(f"clip {clip_key} missing path")
	duration = data.get('duration') or 0.0
	if isinstance(duration, bool) or not isinstance(duration, (int, float)):
		raise InvalidProjectError(f"clip {clip_key}: duration must be a number")
	return Clip(
		id=str(data.get('id', clip_key)),
		name=str(data.get('name', clip_key)),
		path=path,
		duration=float(duration),
		width=_int_field(data.get('width'), 0, f"clip {clip_key}: width"),
		height=_int_field(data.get('height'), 0, f"clip {clip_key}: height"),
		file_size=_int_field(data.get('fileSize'), None, f"clip {clip_key}: fileSize"),
	)

#============================================

def _parse_track(data: dict, index: int) -> Track:
	if not isinstance(data, dict) or data.get('id') is None:
		raise InvalidProjectError(f"track {index} must be a mapping with an id")
	kind = data.get('kind', 'video')
	if kind not in TRACK_KINDS:
		raise InvalidProjectError(f"track {data['id']}: unsupported kind {kind}")
	return Track(
		id=str(data['id']),
		kind=kind,
		order=_int_field(data.get('order'), index, f"track {data['id']}: order"),
		visible=bool(data.get('visible', True)),
		name=str(data.get('name', '')),
	)

#============================================

def _parse_item(data: dict, default_track_id: str = PRIMARY_TRACK_ID) -> TrackItem:
	if not isinstance(data, dict) or data.get('id') is None:
		raise InvalidProjectError("track item must be a mapping with an id")
	item_id = str(data['id'])
	if data.get('clipId') is None:
		raise InvalidProjectError(f"track item {item_id} missing clipId")
	track_id = data.get('trackId') or default_track_id
	return TrackItem(
		id=item_id,
		clip_id=str(data['clipId']),
		track_id=str(track_id),
		in_sec=_optional_seconds(data.get('inSec'), 'inSec', item_id),
		out_sec=_optional_seconds(data.get('outSec'), 'outSec', item_id),
		track_position=_optional_seconds(data.get('trackPosition'),
			'trackPosition', item_id),
	)

#============================================

def _parse_clips(raw_clips) -> dict:
	if raw_clips is None:
		return {}
	if not isinstance(raw_clips, dict):
		raise InvalidProjectError("clips must be a mapping of id to clip")
	clips = {}
	for clip_key, clip_data in raw_clips.items():
		clip = _parse_clip(str(clip_key), clip_data)
		clips[clip.id] = clip
	return clips

#============================================

def load_project(document) -> Project:
	"""
	Parse an editor document into one of the two project variants.

	A document with `trackItems` is the runtime shape; otherwise a `tracks`
	list is the persisted shape.
	"""
	if isinstance(document, (PersistedProject, RuntimeProject)):
		return document
	if not isinstance(document, dict):
		raise InvalidProjectError("project must be a mapping")
	common = {
		'id': str(document.get('id', '')),
		'name': str(document.get('name', 'Untitled')),
		'version': str(document.get('version', '1.0.0')),
		'clips': _parse_clips(document.get('clips')),
		'created_at': document.get('createdAt'),
		'updated_at': document.get('updatedAt'),
	}
	raw_items = document.get('trackItems')
	raw_tracks = document.get('tracks')
	if raw_items is not None:
		if not isinstance(raw_items, dict):
			raise InvalidProjectError("trackItems must be a mapping of id to item")
		tracks = {}
		if isinstance(raw_tracks, dict):
			raw_tracks = list(raw_tracks.values())
		elif raw_tracks is None:
			raw_tracks = []
		elif not isinstance(raw_tracks, list):
			raise InvalidProjectError("runtime tracks must be a list or a mapping of id to track")
		# trackItems wins; a tracks list only contributes track metadata
		for index, track_data in enumerate(raw_tracks):
			track = _parse_track(track_data, index)
			tracks[track.id] = track
		items = {}
		for item_data in raw_items.values():
			item = _parse_item(item_data)
			items[item.id] = item
		return RuntimeProject(tracks=tracks, track_items=items, **common)
	if isinstance(raw_tracks, list):
		tracks = []
		for index, track_data in enumerate(raw_tracks):
			track = _parse_track(track_data, index)
			raw_track_items = track_data.get('items') or []
			if not isinstance(raw_track_items, list):
				raise InvalidProjectError(f"track {track.id}: items must be a list")
			items = tuple(_parse_item(item_data, track.id) for item_data in raw_track_items)
			# nested membership decides the track
			items = tuple(_with_track(item, track.id) for item in items)
			tracks.append((track, items))
		return PersistedProject(tracks=tuple(tracks), **common)
	raise InvalidProjectError("invalid project: missing tracks or trackItems")

#============================================

def _with_track(item: TrackItem, track_id: str) -> TrackItem:
	if item.track_id == track_id:
		return item
	return TrackItem(id=item.id, clip_id=item.clip_id, track_id=track_id,
		in_sec=item.in_sec, out_sec=item.out_sec, track_position=item.track_position)

#============================================

def to_runtime(project: Project) -> RuntimeProject:
	project = load_project(project)
	if isinstance(project, RuntimeProject):
		return project
	tracks = {}
	items = {}
	for track, track_items in project.tracks:
		tracks[track.id] = track
		for item in track_items:
			if item.id in items:
				raise InvalidProjectError(f"track item {item.id} appears in more than one track")
			items[item.id] = item
	return RuntimeProject(id=project.id, name=project.name, version=project.version,
		clips=dict(project.clips), tracks=tracks, track_items=items,
		created_at=project.created_at, updated_at=project.updated_at)

#============================================

def to_persisted(project: Project) -> PersistedProject:
	project = load_project(project)
	if isinstance(project, PersistedProject):
		return project
	tracks = dict(project.tracks)
	grouped = {track_id: [] for track_id in tracks}
	for item in project.track_items.values():
		if item.track_id not in tracks:
			if item.track_id == PRIMARY_TRACK_ID:
				tracks[item.track_id] = primary_track()
			else:
				tracks[item.track_id] = Track(id=item.track_id, order=len(tracks))
			grouped[item.track_id] = []
		grouped[item.track_id].append(item)
	ordered = sorted(tracks.values(), key=lambda track: (track.order, track.id))
	nested = tuple((track, tuple(grouped[track.id])) for track in ordered)
	return PersistedProject(id=project.id, name=project.name, version=project.version,
		clips=dict(project.clips), tracks=nested,
		created_at=project.created_at, updated_at=project.updated_at)

#============================================

def _item_document(item: TrackItem) -> dict:
	data = {'id': item.id, 'clipId': item.clip_id, 'trackId': item.track_id}
	if item.in_sec is not None:
		data['inSec'] = item.in_sec
	if item.out_sec is not None:
		data['outSec'] = item.out_sec
	if item.track_position is not None:
		data['trackPosition'] = item.track_position
	return data

#============================================

def _track_document(track: Track) -> dict:
	return {'id': track.id, 'kind': track.kind, 'order': track.order,
		'visible': track.visible, 'name': track.name}

#============================================

def _clip_document(clip: Clip) -> dict:
	data = {'id': clip.id, 'name': clip.name, 'path': clip.path,
		'duration': clip.duration, 'width': clip.width, 'height': clip.height}
	if clip.file_size is not None:
		data['fileSize'] = clip.file_size
	return data

#============================================

def project_to_document(project: Project) -> dict:
	document = {
		'id': project.id,
		'name': project.name,
		'version': project.version,
		'clips': {clip_id: _clip_document(clip) for clip_id, clip in project.clips.items()},
	}
	if isinstance(project, RuntimeProject):
		document['tracks'] = {track_id: _track_document(track)
			for track_id, track in project.tracks.items()}
		document['trackItems'] = {item_id: _item_document(item)
			for item_id, item in project.track_items.items()}
	else:
		tracks = []
		for track, items in project.tracks:
			track_data = _track_document(track)
			track_data['items'] = [_item_document(item) for item in items]
			tracks.append(track_data)
		document['tracks'] = tracks
	if project.created_at is not None:
		document['createdAt'] = project.created_at
	if project.updated_at is not None:
		document['updatedAt'] = project.updated_at
	return document
