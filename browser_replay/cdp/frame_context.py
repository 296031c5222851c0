"""Frame graph and execution-context tracking for one CDP client.

Frame indices are logical handles assigned in frame-tree order. Frame ids, sessions and execution
context ids are live state that navigations invalidate, so consumers re-resolve them here on every use.
"""

import asyncio
import logging
import time
import weakref
from typing import Any

from browser_replay.cdp.frame_filters import is_ad_or_tracking_frame
from browser_replay.cdp.frame_graph import FrameGraph
from browser_replay.cdp.views import CDPClient, CDPEventHandler, CDPSession, CDPTargetDescriptor, FrameRecord
from browser_replay.config import CONFIG
from browser_replay.exceptions import FrameResolutionError
from browser_replay.utils import format_diagnostic, format_identifier, sanitize_diagnostic_text

logger = logging.getLogger(__name__)

ROOT_FRAME_SENTINEL = 'root'


def _clean_metadata(value: Any) -> str | None:
	if not isinstance(value, str):
		return None
	return sanitize_diagnostic_text(value)


class FrameContextManager:
	def __init__(self, client: CDPClient):
		self.client = client
		self._graph = FrameGraph()
		self._sessions: dict[str, CDPSession] = {}
		self._frame_execution_contexts: dict[str, int] = {}
		self._execution_context_to_frame: dict[int, str] = {}
		self._execution_context_waiters: dict[str, set[asyncio.Future]] = {}
		self._runtime_tracked_sessions: list[CDPSession] = []
		self._page_tracked_sessions: list[CDPSession] = []
		self._session_listeners: list[tuple[CDPSession, str, CDPEventHandler]] = []
		self._auto_attached_sessions: dict[str, tuple[CDPSession, str]] = {}
		self._auto_attach_enabled = False
		self._auto_attach_task: asyncio.Future | None = None
		self._auto_attach_root_session: CDPSession | None = None
		self._background_tasks: set[asyncio.Future] = set()
		self._next_frame_index = 0
		self._initialized = False
		self._init_task: asyncio.Future | None = None
		self.debug = False

	def set_debug(self, debug: bool | None) -> None:
		self.debug = bool(debug)

	def _log(self, message: str) -> None:
		if self.debug:
			logger.info(message)
		else:
			logger.debug(message)

	@property
	def frame_graph(self) -> FrameGraph:
		return self._graph

	@property
	def initialized(self) -> bool:
		return self._initialized

	# --- graph mutations -------------------------------------------------

	def upsert_frame(self, frame_id: str, parent_frame_id: str | None, **fields: Any) -> FrameRecord:
		return self._graph.upsert_frame(frame_id, parent_frame_id, last_updated=time.time(), **fields)

	def remove_frame(self, frame_id: str) -> None:
		self._graph.remove_frame(frame_id)
		self._sessions.pop(frame_id, None)
		context_id = self._frame_execution_contexts.pop(frame_id, None)
		if context_id is not None:
			self._execution_context_to_frame.pop(context_id, None)

	def assign_frame_index(self, frame_id: str, index: int) -> None:
		self._graph.assign_frame_index(frame_id, index)
		if index >= self._next_frame_index:
			self._next_frame_index = index + 1

	def set_frame_session(self, frame_id: str, session: CDPSession) -> None:
		self._sessions[frame_id] = session
		session_id = getattr(session, 'id', None)
		if session_id:
			self._graph.update_frame(frame_id, session_id=session_id)
		self._track_runtime_for_session(session)

	# --- lookups ---------------------------------------------------------

	def get_frame_session(self, frame_id: str) -> CDPSession | None:
		return self._sessions.get(frame_id)

	def get_frame(self, frame_id: str) -> FrameRecord | None:
		return self._graph.get_frame(frame_id)

	def get_frame_id_by_index(self, index: int) -> str | None:
		return self._graph.get_frame_id_by_index(index)

	def get_frame_by_index(self, index: int) -> FrameRecord | None:
		frame_id = self._graph.get_frame_id_by_index(index)
		if frame_id is None:
			return None
		return self._graph.get_frame(frame_id)

	def get_frame_index(self, frame_id: str) -> int | None:
		return self._graph.get_frame_index(frame_id)

	def get_all_frames(self) -> list[FrameRecord]:
		return self._graph.get_all_frames()

	def get_execution_context_id(self, frame_id: str) -> int | None:
		return self._frame_execution_contexts.get(frame_id)

	async def wait_for_execution_context(self, frame_id: str, timeout_ms: int | None = None) -> int | None:
		"""Wait until a default execution context exists for the frame.

		Args:
			frame_id: CDP frame id
			timeout_ms: Upper bound on the wait (default: CONFIG.CONTEXT_TIMEOUT_MS, 750ms)

		Returns:
			The execution context id, or None when the wait timed out or the manager was cleared.
		"""
		existing = self._frame_execution_contexts.get(frame_id)
		if existing is not None:
			return existing

		timeout = (timeout_ms if timeout_ms is not None else CONFIG.CONTEXT_TIMEOUT_MS) / 1000
		waiter: asyncio.Future = asyncio.get_running_loop().create_future()
		self._execution_context_waiters.setdefault(frame_id, set()).add(waiter)
		try:
			return await asyncio.wait_for(waiter, timeout=timeout)
		except TimeoutError:
			return None
		finally:
			waiters = self._execution_context_waiters.get(frame_id)
			if waiters is not None:
				waiters.discard(waiter)
				if not waiters:
					self._execution_context_waiters.pop(frame_id, None)

	def _resolve_waiters(self, frame_id: str, context_id: int | None) -> None:
		for waiter in self._execution_context_waiters.pop(frame_id, set()):
			if not waiter.done():
				waiter.set_result(context_id)

	def to_dict(self) -> dict[str, Any]:
		return {'graph': self._graph.to_dict()}

	def clear(self) -> None:
		"""Drop all tracked state, release every waiter with None and remove every listener."""
		self._graph.clear()
		self._sessions.clear()
		self._frame_execution_contexts.clear()
		self._execution_context_to_frame.clear()

		for frame_id in list(self._execution_context_waiters):
			self._resolve_waiters(frame_id, None)

		for session, event, handler in self._session_listeners:
			try:
				session.off(event, handler)
			except Exception as e:
				logger.debug(f'[FrameContext] Failed to remove {event} listener: {format_diagnostic(e)}')
		self._session_listeners.clear()
		self._runtime_tracked_sessions.clear()
		self._page_tracked_sessions.clear()

		for task in self._background_tasks:
			task.cancel()
		self._background_tasks.clear()

		self._auto_attached_sessions.clear()
		self._auto_attach_enabled = False
		self._auto_attach_root_session = None
		self._next_frame_index = 0
		self._initialized = False

	# --- initialisation --------------------------------------------------

	async def ensure_initialized(self) -> None:
		"""Initialise once. Concurrent callers share one in-flight initialisation."""
		if self._initialized:
			return
		if self._init_task is None:
			self._init_task = asyncio.ensure_future(self._initialize())
		task = self._init_task
		try:
			await asyncio.shield(task)
		finally:
			if task.done() and self._init_task is task:
				self._init_task = None

	async def _initialize(self) -> None:
		root_session = self.client.root_session
		await self.enable_auto_attach(root_session)
		await self._capture_frame_tree(root_session)
		self._initialized = True

	async def _capture_frame_tree(self, session: CDPSession) -> None:
		frame_tree_response, targets_response = await asyncio.gather(
			session.send('Page.getFrameTree'),
			session.send('Target.getTargets'),
		)
		frame_tree = (frame_tree_response or {}).get('frameTree')
		if not frame_tree:
			return

		targets = (targets_response or {}).get('targetInfos') or []
		index_counter = 0

		async def traverse(node: dict[str, Any], parent_frame_id: str | None) -> None:
			nonlocal index_counter
			frame = node.get('frame') or {}
			frame_id = frame.get('id')
			if not frame_id:
				return
			record = self.upsert_frame(
				frame_id,
				parent_frame_id,
				loader_id=frame.get('loaderId'),
				name=_clean_metadata(frame.get('name')),
				url=_clean_metadata(frame.get('url')),
			)
			if self._graph.get_frame_index(frame_id) is None:
				self.assign_frame_index(frame_id, index_counter)
				index_counter += 1

			self.set_frame_session(frame_id, session)
			if record.parent_frame_id is not None:
				await self._populate_frame_owner(session, frame_id)

			target = next((t for t in targets if t.get('targetId') and t.get('frameId') == frame_id), None)
			if target is not None and not self._auto_attach_enabled:
				await self._attach_to_target(session, target['targetId'], frame_id)

			for child in node.get('childFrames') or []:
				await traverse(child, frame_id)

		await traverse(frame_tree, (frame_tree.get('frame') or {}).get('parentId'))

	async def _attach_to_target(self, session: CDPSession, target_id: str, frame_id: str) -> None:
		try:
			result = await session.send('Target.attachToTarget', {'targetId': target_id, 'flatten': True})
			child_session = await self.client.create_session(
				CDPTargetDescriptor(type='raw', session_id=result.get('sessionId'), target_id=target_id)
			)
			self.set_frame_session(frame_id, child_session)
		except Exception as e:
			logger.warning(
				f'[FrameContext] Failed to attach to target {format_identifier(target_id)} '
				f'for frame {format_identifier(frame_id)}: {format_diagnostic(e)}'
			)

	async def _populate_frame_owner(self, session: CDPSession, frame_id: str) -> None:
		try:
			owner = await session.send('DOM.getFrameOwner', {'frameId': frame_id})
		except Exception as e:
			logger.debug(f'[FrameContext] DOM.getFrameOwner failed for {format_identifier(frame_id)}: {format_diagnostic(e)}')
			return
		backend_node_id = (owner or {}).get('backendNodeId')
		if backend_node_id is not None:
			self._graph.update_frame(frame_id, backend_node_id=backend_node_id)

	async def enable_auto_attach(self, session: CDPSession) -> None:
		if self._auto_attach_enabled:
			return
		if self._auto_attach_task is None:
			self._auto_attach_task = asyncio.ensure_future(self._enable_auto_attach(session))
		task = self._auto_attach_task
		try:
			await asyncio.shield(task)
		finally:
			if task.done() and self._auto_attach_task is task:
				self._auto_attach_task = None

	async def _enable_auto_attach(self, session: CDPSession) -> None:
		self._auto_attach_root_session = session
		self._listen(session, 'Target.attachedToTarget', self._on_target_attached)
		self._listen(session, 'Target.detachedFromTarget', self._on_target_detached)
		await session.send(
			'Target.setAutoAttach',
			{'autoAttach': True, 'waitForDebuggerOnStart': False, 'flatten': True},
		)
		await self._track_page_events(session)
		self._auto_attach_enabled = True
		self._log('[FrameContext] Target auto-attach enabled')

	def _listen(self, session: CDPSession, event: str, handler: CDPEventHandler) -> None:
		session.on(event, handler)
		self._session_listeners.append((session, event, handler))

	def _spawn(self, coro, description: str) -> None:
		task = asyncio.ensure_future(coro)
		self._background_tasks.add(task)

		def _done(finished: asyncio.Future) -> None:
			self._background_tasks.discard(finished)
			if finished.cancelled():
				return
			error = finished.exception()
			if error is not None:
				logger.warning(f'[FrameContext] Error handling {description}: {format_diagnostic(error)}')

		task.add_done_callback(_done)

	# --- target events ---------------------------------------------------

	def _on_target_attached(self, event: dict[str, Any]) -> None:
		self._spawn(self._handle_target_attached(event), 'Target.attachedToTarget')

	async def _handle_target_attached(self, event: dict[str, Any]) -> None:
		target_info = event.get('targetInfo') or {}
		frame_id = target_info.get('frameId') or (target_info.get('targetId') if target_info.get('type') == 'iframe' else None)
		session_id = event.get('sessionId')
		if not frame_id or not session_id:
			return
		url = _clean_metadata(target_info.get('url'))
		if is_ad_or_tracking_frame(url, _clean_metadata(target_info.get('title'))):
			self._log(f'[FrameContext] Ignoring ad/tracking frame {format_identifier(frame_id)} ({format_identifier(url)})')
			return

		try:
			session = await self.client.create_session(
				CDPTargetDescriptor(type='raw', session_id=session_id, target_id=target_info.get('targetId'))
			)
		except Exception as e:
			# The frame keeps whatever session already owns it
			logger.warning(
				f'[FrameContext] Cannot use auto-attached session {format_identifier(session_id)} '
				f'for frame {format_identifier(frame_id)}: {format_diagnostic(e)}'
			)
			session = None
		existing = self._graph.get_frame(frame_id)
		self.upsert_frame(
			frame_id,
			existing.parent_frame_id if existing else target_info.get('openerFrameId'),
			name=_clean_metadata(target_info.get('title')),
			url=url,
		)
		if self._graph.get_frame_index(frame_id) is None:
			self.assign_frame_index(frame_id, self._next_frame_index)
		if session is None:
			return
		self._auto_attached_sessions[session_id] = (session, frame_id)
		self.set_frame_session(frame_id, session)
		self._log(f'[FrameContext] Auto-attached session {session_id} for frame {frame_id} ({url or "n/a"})')

	def _on_target_detached(self, event: dict[str, Any]) -> None:
		session_id = event.get('sessionId')
		record = self._auto_attached_sessions.pop(session_id, None) if session_id else None
		if record is None:
			return
		session, frame_id = record
		if self._sessions.get(frame_id) is session:
			self._sessions.pop(frame_id, None)
			self.remove_frame(frame_id)
		self._spawn(session.detach(), 'session detach')
		self._log(f'[FrameContext] Auto-detached session {session_id} for frame {frame_id}')

	# --- page events -----------------------------------------------------

	async def _track_page_events(self, session: CDPSession) -> None:
		if any(tracked is session for tracked in self._page_tracked_sessions):
			return
		self._page_tracked_sessions.append(session)

		try:
			await session.send('Page.enable')
		except Exception as e:
			logger.warning(f'[FrameContext] Failed to enable Page domain: {format_diagnostic(e)}')

		self._listen(session, 'Page.frameAttached', self._on_frame_attached)
		self._listen(session, 'Page.frameDetached', self._on_frame_detached)
		self._listen(session, 'Page.frameNavigated', self._on_frame_navigated)

	def _on_frame_attached(self, event: dict[str, Any]) -> None:
		self._spawn(self._handle_frame_attached(event), 'frameAttached')

	async def _handle_frame_attached(self, event: dict[str, Any]) -> None:
		frame_id = event.get('frameId')
		if not frame_id or self._graph.get_frame(frame_id) is not None:
			return
		parent_frame_id = event.get('parentFrameId')
		self.upsert_frame(frame_id, parent_frame_id)
		if self._graph.get_frame_index(frame_id) is None:
			self.assign_frame_index(frame_id, self._next_frame_index)
		root_session = self._auto_attach_root_session or self.client.root_session
		self.set_frame_session(frame_id, root_session)
		await self._populate_frame_owner(root_session, frame_id)
		self._log(f'[FrameContext] Page.frameAttached: frameId={frame_id}, parent={parent_frame_id or "root"}')

	def _on_frame_detached(self, event: dict[str, Any]) -> None:
		frame_id = event.get('frameId')
		if not frame_id or self._graph.get_frame(frame_id) is None:
			return
		# Swapped frames are re-attached as OOPIFs and keep their index
		if event.get('reason') == 'swap':
			return
		self.remove_frame(frame_id)
		self._log(f'[FrameContext] Page.frameDetached: frameId={frame_id}')

	def _on_frame_navigated(self, event: dict[str, Any]) -> None:
		frame = event.get('frame') or {}
		frame_id = frame.get('id')
		if not frame_id:
			return
		self.upsert_frame(
			frame_id,
			frame.get('parentId'),
			loader_id=frame.get('loaderId'),
			url=_clean_metadata(frame.get('url')),
			name=_clean_metadata(frame.get('name')),
		)
		self._log(f'[FrameContext] Page.frameNavigated: frameId={frame_id}, url={_clean_metadata(frame.get("url"))}')

	# --- runtime events --------------------------------------------------

	def _track_runtime_for_session(self, session: CDPSession) -> None:
		if any(tracked is session for tracked in self._runtime_tracked_sessions):
			return
		self._runtime_tracked_sessions.append(session)

		def on_created(event: dict[str, Any]) -> None:
			context = event.get('context') or {}
			aux_data = context.get('auxData') or {}
			frame_id = aux_data.get('frameId')
			context_id = context.get('id')
			if not frame_id or context_id is None:
				return
			context_type = aux_data.get('type')
			if context_type and context_type != 'default':
				return

			self._frame_execution_contexts[frame_id] = context_id
			self._execution_context_to_frame[context_id] = frame_id
			record = self._graph.get_frame(frame_id)
			if record is not None and record.execution_context_id != context_id:
				self._graph.update_frame(frame_id, execution_context_id=context_id)
			self._resolve_waiters(frame_id, context_id)

		def on_destroyed(event: dict[str, Any]) -> None:
			context_id = event.get('executionContextId')
			frame_id = self._execution_context_to_frame.pop(context_id, None)
			if frame_id is None:
				return
			if self._frame_execution_contexts.get(frame_id) == context_id:
				del self._frame_execution_contexts[frame_id]

		def on_cleared(event: dict[str, Any] | None = None) -> None:
			for frame_id, frame_session in list(self._sessions.items()):
				if frame_session is not session:
					continue
				context_id = self._frame_execution_contexts.pop(frame_id, None)
				if context_id is not None:
					self._execution_context_to_frame.pop(context_id, None)

		self._listen(session, 'Runtime.executionContextCreated', on_created)
		self._listen(session, 'Runtime.executionContextDestroyed', on_destroyed)
		self._listen(session, 'Runtime.executionContextsCleared', on_cleared)

		async def enable_runtime() -> None:
			try:
				await session.send('Runtime.enable')
			except Exception as e:
				logger.warning(f'[FrameContext] Failed to enable Runtime domain: {format_diagnostic(e)}')

		self._spawn(enable_runtime(), 'Runtime.enable')


def build_frame_diagnostics(manager: FrameContextManager | None) -> str:
	if manager is None:
		return 'FrameContextManager unavailable.'
	pairs: list[tuple[int, str]] = []
	for record in manager.get_all_frames():
		index = manager.get_frame_index(record.frame_id)
		if index is not None:
			pairs.append((index, record.frame_id))
	if not pairs:
		return 'No frame indices currently tracked.'
	pairs.sort()
	return 'Available frames => ' + ', '.join(f'{index}:{format_identifier(frame_id)}' for index, frame_id in pairs)


def find_frame_id_for_index(manager: FrameContextManager | None, frame_index: int) -> str | None:
	"""Direct mapping first; index 0 falls back to the parentless frame, then to the root sentinel."""
	if manager is None:
		return ROOT_FRAME_SENTINEL if frame_index == 0 else None
	record = manager.get_frame_by_index(frame_index)
	if record is not None:
		return record.frame_id
	if frame_index == 0:
		root = next((frame for frame in manager.get_all_frames() if frame.parent_frame_id is None), None)
		return root.frame_id if root is not None else ROOT_FRAME_SENTINEL
	return None


def resolve_frame_id_for_index(manager: FrameContextManager | None, frame_index: int) -> str:
	frame_id = find_frame_id_for_index(manager, frame_index)
	if frame_id is None:
		raise FrameResolutionError(
			f'Unable to resolve frameId for frameIndex {frame_index}. {build_frame_diagnostics(manager)}'
		)
	return frame_id


_manager_cache: 'weakref.WeakKeyDictionary[Any, FrameContextManager]' = weakref.WeakKeyDictionary()


def get_or_create_frame_context_manager(client: CDPClient) -> FrameContextManager:
	manager = _manager_cache.get(client)
	if manager is None:
		manager = FrameContextManager(client)
		_manager_cache[client] = manager
	return manager
