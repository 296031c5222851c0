"""Wait for network quiet before capturing or acting."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from browser_replay.cdp.playwright_adapter import get_cdp_client_for_page
from browser_replay.cdp.views import CDPClient
from browser_replay.config import CONFIG
from browser_replay.utils import format_diagnostic

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)

QUIET_WINDOW_MS = 500
STALLED_REQUEST_MS = 2000
MAX_SETTLE_TIMEOUT_MS = 120_000
POLL_INTERVAL_MS = 50

# Long-lived connections never finish and must not block settling
IGNORED_RESOURCE_TYPES = frozenset({'WebSocket', 'EventSource'})


async def wait_for_settled_dom(
	page: 'Page',
	timeout_ms: int | None = None,
	cdp_client: CDPClient | None = None,
) -> None:
	"""Return once no network request has been in flight for QUIET_WINDOW_MS.

	Requests running longer than STALLED_REQUEST_MS are treated as finished. Never raises.

	Args:
		page: Page whose network activity is observed
		timeout_ms: Upper bound on the wait (default: CONFIG.SETTLE_TIMEOUT_MS, clamped to 120s)
		cdp_client: CDP client to use (default: the page's shared Playwright CDP client)
	"""
	timeout = CONFIG.SETTLE_TIMEOUT_MS if timeout_ms is None else timeout_ms
	timeout = min(max(timeout, 0), MAX_SETTLE_TIMEOUT_MS) / 1000
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout

	try:
		client = cdp_client or await get_cdp_client_for_page(page)
		session = await client.acquire_session('lifecycle')
	except Exception as e:
		logger.warning(f'[Settle] Could not open lifecycle session: {format_diagnostic(e)}')
		return

	inflight: dict[str, float] = {}
	last_activity = loop.time()

	def on_request(event: dict[str, Any]) -> None:
		nonlocal last_activity
		request_id = event.get('requestId')
		if not request_id or event.get('type') in IGNORED_RESOURCE_TYPES:
			return
		inflight[request_id] = loop.time()
		last_activity = loop.time()

	def on_finished(event: dict[str, Any]) -> None:
		nonlocal last_activity
		if inflight.pop(event.get('requestId'), None) is not None:
			last_activity = loop.time()

	handlers = [
		('Network.requestWillBeSent', on_request),
		('Network.loadingFinished', on_finished),
		('Network.loadingFailed', on_finished),
		('Network.requestServedFromCache', on_finished),
	]
	for event, handler in handlers:
		session.on(event, handler)

	try:
		try:
			await session.send('Network.enable')
		except Exception as e:
			logger.debug(f'[Settle] Network.enable failed: {format_diagnostic(e)}')

		while True:
			now = loop.time()
			for request_id, started in list(inflight.items()):
				if (now - started) * 1000 > STALLED_REQUEST_MS:
					logger.debug(f'[Settle] Forcing stalled request {request_id} to complete')
					del inflight[request_id]
					last_activity = now
			if not inflight and (now - last_activity) * 1000 >= QUIET_WINDOW_MS:
				return
			if now >= deadline:
				logger.debug(f'[Settle] Timed out with {len(inflight)} request(s) in flight')
				return
			await asyncio.sleep(min(POLL_INTERVAL_MS / 1000, max(deadline - now, 0)))
	except Exception as e:
		logger.warning(f'[Settle] Failed while waiting for network quiet: {format_diagnostic(e)}')
	finally:
		for event, handler in handlers:
			try:
				session.off(event, handler)
			except Exception as e:
				logger.debug(f'[Settle] Failed to remove {event} listener: {format_diagnostic(e)}')
