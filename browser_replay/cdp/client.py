"""CDP client adapter over a raw cdp_use websocket connection.

Every session shares the one websocket; sessions are flattened target sessions addressed by session id.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx
from cdp_use import CDPClient as CdpUseConnection

from browser_replay.cdp.views import CDPEventHandler, CDPTargetDescriptor, SessionKind
from browser_replay.config import CONFIG
from browser_replay.exceptions import ProtocolError
from browser_replay.utils import format_diagnostic

logger = logging.getLogger(__name__)


async def resolve_websocket_url(cdp_url: str, headers: dict[str, str] | None = None) -> str:
	"""Turn an http(s) DevTools endpoint into its browser websocket URL via /json/version."""
	if cdp_url.startswith('ws'):
		return cdp_url

	parsed_url = urlparse(cdp_url)
	path = parsed_url.path.rstrip('/')
	if not path.endswith('/json/version'):
		path = path + '/json/version'
	url = urlunparse((parsed_url.scheme, parsed_url.netloc, path, parsed_url.params, parsed_url.query, parsed_url.fragment))

	async with httpx.AsyncClient() as client:
		version_info = await client.get(url, headers=headers or {})
		logger.debug(f'Raw version info: {str(version_info)}')
		version_info.raise_for_status()
		return version_info.json()['webSocketDebuggerUrl']


class CdpUseSession:
	"""A flattened target session on a shared cdp_use connection."""

	def __init__(self, client: 'CdpUseClient', session_id: str | None, target_id: str | None = None):
		self._client = client
		self.id = session_id
		self.target_id = target_id
		self._detached = False

	async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		if self._detached:
			raise ProtocolError(f'Session {self.id} is detached, cannot send {method}')
		return await self._client.send_command(method, params, session_id=self.id)

	def on(self, event: str, handler: CDPEventHandler) -> None:
		self._client.add_listener(event, self.id, handler)

	def off(self, event: str, handler: CDPEventHandler) -> None:
		self._client.remove_listener(event, self.id, handler)

	async def detach(self) -> None:
		if self._detached:
			return
		self._detached = True
		await self._client.release_session(self)

	def __repr__(self) -> str:
		return f'CdpUseSession(id={self.id!r}, target_id={self.target_id!r})'


class CdpUseClient:
	"""CDPClient implementation over cdp_use, attached to one page target."""

	def __init__(self, connection: CdpUseConnection, target_id: str):
		self._connection = connection
		self.target_id = target_id
		self._root_session: CdpUseSession | None = None
		self._pooled_sessions: dict[str, CdpUseSession] = {}
		self._owned_sessions: set[CdpUseSession] = set()
		self._listeners: dict[str, list[tuple[str | None, CDPEventHandler]]] = {}
		self._registered_events: set[str] = set()
		self._pool_lock = asyncio.Lock()

	@classmethod
	async def connect(
		cls,
		cdp_url: str | None = None,
		target_id: str | None = None,
		headers: dict[str, str] | None = None,
	) -> 'CdpUseClient':
		"""Connect to a browser and attach a root session to a page target.

		Args:
			cdp_url: ws:// browser endpoint, or an http(s) DevTools endpoint to discover it from
				(default: CONFIG.BROWSER_REPLAY_CDP_URL)
			target_id: Page target to attach to (default: first page target)
			headers: Extra headers for the websocket handshake and discovery request

		Returns:
			A started client whose root session is attached to the page target.
		"""
		cdp_url = cdp_url or CONFIG.BROWSER_REPLAY_CDP_URL
		if not cdp_url:
			raise ProtocolError('No CDP URL given and BROWSER_REPLAY_CDP_URL is not set')
		ws_url = await resolve_websocket_url(cdp_url, headers)
		connection = CdpUseConnection(ws_url, additional_headers=headers, max_ws_frame_size=200 * 1024 * 1024)
		await connection.start()

		if target_id is None:
			targets = await connection.send.Target.getTargets()
			page_targets = [t for t in targets.get('targetInfos', []) if t.get('type') == 'page']
			if not page_targets:
				created = await connection.send.Target.createTarget(params={'url': 'about:blank'})
				target_id = created['targetId']
			else:
				target_id = page_targets[0]['targetId']

		client = cls(connection, target_id)
		client._root_session = await client.create_session(CDPTargetDescriptor(type='page', target_id=target_id))
		logger.debug(f'🔌 Connected to {ws_url} with root session {client._root_session.id} on target {target_id}')
		return client

	@property
	def root_session(self) -> CdpUseSession:
		if self._root_session is None:
			raise ProtocolError('CDP root session not initialized yet. Call connect() first.')
		return self._root_session

	async def send_command(self, method: str, params: dict[str, Any] | None = None, session_id: str | None = None) -> dict:
		domain, _, command = method.partition('.')
		try:
			sender = getattr(getattr(self._connection.send, domain), command)
		except AttributeError as e:
			raise ProtocolError(f'Unknown CDP method {method}') from e
		result = await sender(params=params, session_id=session_id)
		return result or {}

	async def create_session(self, descriptor: CDPTargetDescriptor | None = None) -> CdpUseSession:
		if descriptor is not None and descriptor.type == 'raw':
			if not descriptor.session_id:
				raise ProtocolError('Raw session descriptor requires a session_id')
			# Raw sessions were attached elsewhere (auto-attach), we only wrap them
			return CdpUseSession(self, descriptor.session_id, descriptor.target_id)

		target_id = (descriptor.target_id if descriptor else None) or self.target_id
		result = await self._connection.send.Target.attachToTarget(params={'targetId': target_id, 'flatten': True})
		session = CdpUseSession(self, result['sessionId'], target_id)
		self._owned_sessions.add(session)
		return session

	async def acquire_session(self, kind: SessionKind) -> CdpUseSession:
		"""Return a dedicated session for one kind of work, distinct from the root session."""
		async with self._pool_lock:
			session = self._pooled_sessions.get(kind)
			if session is None:
				session = await self.create_session(CDPTargetDescriptor(type='page', target_id=self.target_id))
				self._pooled_sessions[kind] = session
			return session

	async def release_session(self, session: CdpUseSession) -> None:
		for kind, pooled in list(self._pooled_sessions.items()):
			if pooled is session:
				del self._pooled_sessions[kind]
		for event, listeners in self._listeners.items():
			self._listeners[event] = [(sid, handler) for sid, handler in listeners if sid != session.id]
		if session in self._owned_sessions:
			self._owned_sessions.discard(session)
			try:
				await self._connection.send.Target.detachFromTarget(params={'sessionId': session.id})
			except Exception as e:
				logger.debug(f'Failed to detach session {session.id}: {format_diagnostic(e)}')

	def add_listener(self, event: str, session_id: str | None, handler: CDPEventHandler) -> None:
		self._listeners.setdefault(event, []).append((session_id, handler))
		if event in self._registered_events:
			return

		domain, _, event_name = event.partition('.')
		try:
			register = getattr(getattr(self._connection.register, domain), event_name)
		except AttributeError as e:
			raise ProtocolError(f'Unknown CDP event {event}') from e

		def dispatch(payload: Any, session_id: str | None = None) -> None:
			self._dispatch(event, payload, session_id)

		# cdp_use keeps a single handler per event, so we fan out ourselves
		register(dispatch)
		self._registered_events.add(event)

	def remove_listener(self, event: str, session_id: str | None, handler: CDPEventHandler) -> None:
		listeners = self._listeners.get(event)
		if not listeners:
			return
		self._listeners[event] = [(sid, h) for sid, h in listeners if not (sid == session_id and h is handler)]

	def _dispatch(self, event: str, payload: Any, session_id: str | None) -> None:
		for listener_session_id, handler in list(self._listeners.get(event, [])):
			# Root-level browser events (no session) go to every listener of that event
			if session_id is not None and listener_session_id is not None and listener_session_id != session_id:
				continue
			try:
				result = handler(payload)
				if asyncio.iscoroutine(result):
					asyncio.ensure_future(result)
			except Exception as e:
				logger.warning(f'CDP handler for {event} failed: {format_diagnostic(e)}')

	async def dispose(self) -> None:
		for session in list(self._owned_sessions):
			await session.detach()
		self._pooled_sessions.clear()
		self._listeners.clear()
		self._root_session = None
		try:
			await self._connection.stop()
		except Exception as e:
			logger.debug(f'Error stopping CDP connection: {format_diagnostic(e)}')
