"""Shared fakes for the CI tests.

The fakes mirror the small surfaces browser_replay talks to: a CDP session (send/on/off/detach), a CDP client
handing out sessions, and a Playwright page with awaitable navigation methods.
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from browser_replay.cdp.views import CDPTargetDescriptor


class FakeCDPSession:
	"""Records every command and answers from `responses`.

	A response may be a dict, an exception instance (raised), or a callable taking the params.
	"""

	def __init__(self, session_id: str | None = 'session-1', responses: dict[str, Any] | None = None):
		self.id = session_id
		self.responses: dict[str, Any] = dict(responses or {})
		self.calls: list[tuple[str, dict[str, Any]]] = []
		self.listeners: dict[str, list] = {}
		self.detached = False

	async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		self.calls.append((method, params or {}))
		response = self.responses.get(method, {})
		if callable(response) and not isinstance(response, BaseException):
			response = response(params or {})
		if isinstance(response, BaseException):
			raise response
		return response

	def on(self, event: str, handler) -> None:
		self.listeners.setdefault(event, []).append(handler)

	def off(self, event: str, handler) -> None:
		handlers = self.listeners.get(event, [])
		if handler in handlers:
			handlers.remove(handler)

	def emit(self, event: str, payload: dict[str, Any]) -> None:
		for handler in list(self.listeners.get(event, [])):
			handler(payload)

	async def detach(self) -> None:
		self.detached = True

	def methods(self) -> list[str]:
		return [method for method, _ in self.calls]

	def params_for(self, method: str) -> list[dict[str, Any]]:
		return [params for called, params in self.calls if called == method]

	def listener_count(self) -> int:
		return sum(len(handlers) for handlers in self.listeners.values())


class FakeCDPClient:
	"""CDP client whose page sessions all share `page_session`, and whose pooled sessions live in `sessions`."""

	def __init__(self, root: FakeCDPSession | None = None, page_session: FakeCDPSession | None = None):
		self.root = root or FakeCDPSession('root')
		self.page_session = page_session or FakeCDPSession('page')
		self.sessions: dict[str, FakeCDPSession] = {}
		self.raw_sessions: list[FakeCDPSession] = []
		self.disposed = False

	@property
	def root_session(self) -> FakeCDPSession:
		return self.root

	async def create_session(self, descriptor: CDPTargetDescriptor | None = None) -> FakeCDPSession:
		if descriptor is not None and descriptor.type == 'raw':
			session = FakeCDPSession(descriptor.session_id)
			self.raw_sessions.append(session)
			return session
		return self.page_session

	async def acquire_session(self, kind: str) -> FakeCDPSession:
		if kind not in self.sessions:
			self.sessions[kind] = FakeCDPSession(kind)
		return self.sessions[kind]

	async def dispose(self) -> None:
		self.disposed = True


class FakePage:
	"""Just enough of a Playwright Page for replay and locator code."""

	def __init__(self, url: str = 'https://example.com/'):
		self.url = url
		self.goto = AsyncMock()
		self.reload = AsyncMock()
		self.wait_for_timeout = AsyncMock()
		self.wait_for_load_state = AsyncMock()
		self.locator = MagicMock(side_effect=lambda selector: f'locator({selector})')
		self.main_frame = MagicMock(name='main_frame')
		self.frames: list[Any] = [self.main_frame]
		self.context = MagicMock(name='context')
		self.context.new_cdp_session = AsyncMock()
		self.once = MagicMock()


@pytest.fixture
def cdp_session():
	return FakeCDPSession()


@pytest.fixture
def cdp_client():
	return FakeCDPClient()


@pytest.fixture
def page():
	return FakePage()
