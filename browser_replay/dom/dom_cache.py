"""Per-page snapshot cache with a dirty flag. Any action that may change the page marks it dirty."""

import weakref
from dataclasses import dataclass
from typing import Any

from browser_replay.dom.views import A11yDOMState


@dataclass
class _SnapshotEntry:
	state: A11yDOMState | None = None
	dirty: bool = True


_snapshots: 'weakref.WeakKeyDictionary[Any, _SnapshotEntry]' = weakref.WeakKeyDictionary()


def mark_dom_snapshot_dirty(page: Any) -> None:
	entry = _snapshots.get(page)
	if entry is None:
		_snapshots[page] = _SnapshotEntry()
	else:
		entry.dirty = True


def is_dom_snapshot_dirty(page: Any) -> bool:
	entry = _snapshots.get(page)
	return entry is None or entry.dirty or entry.state is None


def get_cached_dom_state(page: Any) -> A11yDOMState | None:
	entry = _snapshots.get(page)
	if entry is None or entry.dirty:
		return None
	return entry.state


def store_dom_snapshot(page: Any, state: A11yDOMState) -> None:
	_snapshots[page] = _SnapshotEntry(state=state, dirty=False)
