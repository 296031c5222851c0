"""CDP client adapter over Playwright's per-page CDP sessions."""

import asyncio
import logging
import weakref
from typing import TYPE_CHECKING, Any

from browser_replay.cdp.views import CDPEventHandler, CDPTargetDescriptor, SessionKind
from browser_replay.exceptions import ProtocolError
from browser_replay.utils import format_diagnostic

if TYPE_CHECKING:
	from playwright.async_api import CDPSession as PlaywrightSession
	from playwright.async_api import Page

logger = logging.getLogger(__name__)


class PlaywrightSessionAdapter:
	def __init__(self, session: 'PlaywrightSession', release):
		self.raw = session
		self.id: str | None = None
		self._release = release

	async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		result = await self.raw.send(method, params or {})
		return result or {}

	def on(self, event: str, handler: CDPEventHandler) -> None:
		self.raw.on(event, handler)

	def off(self, event: str, handler: CDPEventHandler) -> None:
		remove = getattr(self.raw, 'remove_listener', None)
		if remove is not None:
			remove(event, handler)

	async def detach(self) -> None:
		try:
			await self.raw.detach()
		finally:
			self._release(self)


class PlaywrightCDPClient:
	"""CDPClient backed by `page.context.new_cdp_session(...)`.

	Playwright cannot wrap foreign flattened session ids, so `raw` descriptors raise ProtocolError and
	callers keep the session that owns the frame.
	"""

	def __init__(self, page: 'Page'):
		self.page = page
		self._root_session: PlaywrightSessionAdapter | None = None
		self._root_task: asyncio.Task | None = None
		self._pooled_sessions: dict[str, PlaywrightSessionAdapter] = {}
		self._tracked_sessions: set[PlaywrightSessionAdapter] = set()

	@property
	def root_session(self) -> PlaywrightSessionAdapter:
		if self._root_session is None:
			raise ProtocolError('CDP root session not initialized yet. Call init() first.')
		return self._root_session

	async def init(self) -> PlaywrightSessionAdapter:
		if self._root_task is None:
			self._root_task = asyncio.ensure_future(self.create_session(CDPTargetDescriptor(type='page', page=self.page)))
		try:
			self._root_session = await self._root_task
		except Exception:
			self._root_task = None
			raise
		return self._root_session

	async def create_session(self, descriptor: CDPTargetDescriptor | None = None) -> PlaywrightSessionAdapter:
		target = self._resolve_target(descriptor)
		session = await self.page.context.new_cdp_session(target)
		wrapped = PlaywrightSessionAdapter(session, self._tracked_sessions.discard)
		self._tracked_sessions.add(wrapped)
		return wrapped

	async def acquire_session(self, kind: SessionKind) -> PlaywrightSessionAdapter:
		session = self._pooled_sessions.get(kind)
		if session is None or session not in self._tracked_sessions:
			session = await self.create_session(CDPTargetDescriptor(type='page', page=self.page))
			self._pooled_sessions[kind] = session
		return session

	async def dispose(self) -> None:
		for session in list(self._tracked_sessions):
			try:
				await session.detach()
			except Exception as e:
				logger.warning(f'[CDP] Failed to detach session: {format_diagnostic(e)}')
		self._tracked_sessions.clear()
		self._pooled_sessions.clear()
		self._root_session = None
		self._root_task = None

	def _resolve_target(self, descriptor: CDPTargetDescriptor | None) -> Any:
		if descriptor is None:
			return self.page
		if descriptor.type == 'raw':
			raise ProtocolError(
				f'Playwright cannot attach to session {descriptor.session_id} (target {descriptor.target_id})'
			)
		if descriptor.type == 'frame' and descriptor.frame is not None:
			return descriptor.frame
		if descriptor.type == 'page' and descriptor.page is not None:
			return descriptor.page
		return self.page


_client_cache: 'weakref.WeakKeyDictionary[Any, PlaywrightCDPClient]' = weakref.WeakKeyDictionary()


async def get_cdp_client_for_page(page: 'Page') -> PlaywrightCDPClient:
	"""Return the one CDP client for a page, creating and initialising it on first use."""
	client = _client_cache.get(page)
	if client is None:
		client = PlaywrightCDPClient(page)
		_client_cache[page] = client
		try:
			page.once('close', lambda *_: asyncio.ensure_future(dispose_cdp_client_for_page(page)))
		except Exception as e:
			logger.debug(f'[CDP] Could not subscribe to page close: {format_diagnostic(e)}')
	await client.init()
	return client


async def dispose_cdp_client_for_page(page: 'Page') -> None:
	client = _client_cache.pop(page, None)
	if client is not None:
		await client.dispose()
