#!/usr/bin/env python3

from dataclasses import dataclass
from clipforgelib.core.errors import EmptyTimelineError
from clipforgelib.core import model

#============================================

@dataclass(frozen=True)
class PlacedItem():
	item: model.TrackItem
	# None when the item references a clip id the project does not hold
	clip: model.Clip
	track: model.Track

	#============================
	@property
	def position(self) -> float:
		if self.item.track_position is None:
			return 0.0
		return self.item.track_position

#============================================

def _resolve_track(tracks: dict, track_id: str) -> model.Track:
	track = tracks.get(track_id)
	if track is not None:
		return track
	if track_id == model.PRIMARY_TRACK_ID:
		return model.primary_track()
	return model.Track(id=track_id, order=len(tracks))

#============================================

def placement_key(placed: PlacedItem) -> tuple:
	return (placed.position, placed.item.id)

#============================================

def normalize(project, allow_empty: bool = False) -> tuple:
	"""
	Flatten a project (either shape, or a raw document) into the canonical
	sequence of PlacedItem, ordered by track position then item id.
	"""
	runtime = model.to_runtime(model.load_project(project))
	placed = []
	for item in runtime.track_items.values():
		placed.append(PlacedItem(
			item=item,
			clip=runtime.clips.get(item.clip_id),
			track=_resolve_track(runtime.tracks, item.track_id),
		))
	placed.sort(key=placement_key)
	if len(placed) == 0 and not allow_empty:
		raise EmptyTimelineError()
	return tuple(placed)

#============================================

def denormalize(placed_items, project_id: str = '', name: str = 'Untitled',
	version: str = '1.0.0') -> model.PersistedProject:
	tracks = {}
	grouped = {}
	clips = {}
	for placed in placed_items:
		track_id = placed.item.track_id
		if track_id not in tracks:
			tracks[track_id] = placed.track
			grouped[track_id] = []
		grouped[track_id].append(placed.item)
		if placed.clip is not None:
			clips[placed.clip.id] = placed.clip
	ordered = sorted(tracks.values(), key=lambda track: (track.order, track.id))
	nested = tuple((track, tuple(grouped[track.id])) for track in ordered)
	return model.PersistedProject(id=project_id, name=name, version=version,
		clips=clips, tracks=nested)
