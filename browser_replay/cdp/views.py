from collections.abc import Callable
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

CDPEventHandler = Callable[[dict[str, Any]], Any]

SessionKind = Literal['dom', 'lifecycle', 'input', 'runtime']


@runtime_checkable
class CDPSession(Protocol):
	"""Minimal surface every CDP session adapter exposes."""

	id: str | None

	async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]: ...

	def on(self, event: str, handler: CDPEventHandler) -> None: ...

	def off(self, event: str, handler: CDPEventHandler) -> None: ...

	async def detach(self) -> None: ...


class CDPTargetDescriptor(BaseModel):
	"""What a new session should be attached to.

	`page` and `frame` carry driver objects, `raw` carries an already attached CDP session id.
	"""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	type: Literal['page', 'frame', 'raw']
	page: Any = None
	frame: Any = None
	session_id: str | None = None
	target_id: str | None = None


@runtime_checkable
class CDPClient(Protocol):
	@property
	def root_session(self) -> CDPSession: ...

	async def create_session(self, descriptor: CDPTargetDescriptor | None = None) -> CDPSession: ...

	async def acquire_session(self, kind: SessionKind) -> CDPSession: ...

	async def dispose(self) -> None: ...


class FrameRecord(BaseModel):
	"""One frame in the frame graph arena. Never held across snapshots, always looked up by id."""

	model_config = ConfigDict(revalidate_instances='never')

	frame_id: str
	parent_frame_id: str | None = None
	loader_id: str | None = None
	name: str | None = None
	url: str | None = None
	session_id: str | None = None
	execution_context_id: int | None = None
	backend_node_id: int | None = None
	last_updated: float = Field(default=0.0)
