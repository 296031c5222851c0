from typing import Any

from browser_replay.cdp.views import FrameRecord


class FrameGraph:
	"""Arena of frame records addressed by frame id, plus the frameIndex <-> frameId mapping."""

	def __init__(self) -> None:
		self._frames: dict[str, FrameRecord] = {}
		self._children: dict[str, list[str]] = {}
		self._index_to_frame: dict[int, str] = {}
		self._frame_to_index: dict[str, int] = {}

	def upsert_frame(self, frame_id: str, parent_frame_id: str | None = None, **fields: Any) -> FrameRecord:
		existing = self._frames.get(frame_id)
		if existing is not None:
			updates = {key: value for key, value in fields.items() if value is not None}
			record = existing.model_copy(update={'parent_frame_id': parent_frame_id, **updates})
			if existing.parent_frame_id != parent_frame_id:
				self._unlink_child(existing.parent_frame_id, frame_id)
		else:
			record = FrameRecord(frame_id=frame_id, parent_frame_id=parent_frame_id, **fields)

		self._frames[frame_id] = record
		if parent_frame_id is not None:
			siblings = self._children.setdefault(parent_frame_id, [])
			if frame_id not in siblings:
				siblings.append(frame_id)
		return record

	def update_frame(self, frame_id: str, **fields: Any) -> FrameRecord | None:
		record = self._frames.get(frame_id)
		if record is None:
			return None
		updated = record.model_copy(update=fields)
		self._frames[frame_id] = updated
		return updated

	def remove_frame(self, frame_id: str) -> None:
		"""Remove a frame and its whole subtree."""
		record = self._frames.pop(frame_id, None)
		if record is None:
			return
		self._unlink_child(record.parent_frame_id, frame_id)
		for child_id in list(self._children.pop(frame_id, [])):
			self.remove_frame(child_id)
		index = self._frame_to_index.pop(frame_id, None)
		if index is not None and self._index_to_frame.get(index) == frame_id:
			del self._index_to_frame[index]

	def _unlink_child(self, parent_frame_id: str | None, frame_id: str) -> None:
		if parent_frame_id is None:
			return
		siblings = self._children.get(parent_frame_id)
		if siblings and frame_id in siblings:
			siblings.remove(frame_id)

	def assign_frame_index(self, frame_id: str, index: int) -> None:
		previous = self._frame_to_index.get(frame_id)
		if previous is not None and self._index_to_frame.get(previous) == frame_id:
			del self._index_to_frame[previous]
		stale = self._index_to_frame.get(index)
		if stale is not None and stale != frame_id:
			self._frame_to_index.pop(stale, None)
		self._index_to_frame[index] = frame_id
		self._frame_to_index[frame_id] = index

	def get_frame(self, frame_id: str) -> FrameRecord | None:
		return self._frames.get(frame_id)

	def get_frame_id_by_index(self, index: int) -> str | None:
		return self._index_to_frame.get(index)

	def get_frame_index(self, frame_id: str) -> int | None:
		return self._frame_to_index.get(frame_id)

	def get_children(self, frame_id: str) -> list[str]:
		return list(self._children.get(frame_id, []))

	def get_all_frames(self) -> list[FrameRecord]:
		return list(self._frames.values())

	def clear(self) -> None:
		self._frames.clear()
		self._children.clear()
		self._index_to_frame.clear()
		self._frame_to_index.clear()

	def to_dict(self) -> dict[str, Any]:
		return {
			'frames': [record.model_dump() for record in self._frames.values()],
			'indices': {str(index): frame_id for index, frame_id in sorted(self._index_to_frame.items())},
		}
