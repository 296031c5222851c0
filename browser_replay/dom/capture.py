import logging
from typing import TYPE_CHECKING

from browser_replay.cdp.views import CDPClient
from browser_replay.config import CONFIG
from browser_replay.dom.dom_cache import get_cached_dom_state, is_dom_snapshot_dirty, store_dom_snapshot
from browser_replay.dom.service import collect_a11y_dom
from browser_replay.dom.settle import wait_for_settled_dom
from browser_replay.dom.views import A11yDOMState
from browser_replay.utils import format_diagnostic

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)

MAX_DOM_CAPTURE_ATTEMPTS = 10

RECOVERABLE_CAPTURE_ERRORS = (
	'Execution context was destroyed',
	'Cannot find context',
	'Target closed',
)


def is_recoverable_capture_error(error: BaseException | str) -> bool:
	text = str(error)
	return any(marker in text for marker in RECOVERABLE_CAPTURE_ERRORS)


async def capture_dom_state(
	page: 'Page',
	use_cache: bool = True,
	debug: bool = False,
	enable_visual_mode: bool = False,
	max_attempts: int | None = None,
	cdp_client: CDPClient | None = None,
) -> A11yDOMState:
	"""Return a fresh accessibility snapshot, or the cached one when the page is not dirty.

	Navigation races (destroyed contexts, closed targets) are retried after settling the DOM.
	Any other failure, or running out of attempts, yields the degraded state.
	"""
	if use_cache and not is_dom_snapshot_dirty(page):
		cached = get_cached_dom_state(page)
		if cached is not None:
			return cached

	attempts = CONFIG.DOM_CAPTURE_MAX_ATTEMPTS
	if max_attempts is not None and max_attempts > 0:
		attempts = min(MAX_DOM_CAPTURE_ATTEMPTS, max_attempts)
	for attempt in range(1, attempts + 1):
		try:
			state = await collect_a11y_dom(page, debug=debug, enable_visual_mode=enable_visual_mode, cdp_client=cdp_client)
		except Exception as e:
			if not is_recoverable_capture_error(e):
				logger.error(f'Error extracting accessibility tree: {format_diagnostic(e)}')
				return A11yDOMState.degraded()
			logger.debug(f'[A11y] Capture attempt {attempt}/{attempts} hit a navigation race: {format_diagnostic(e)}')
			if attempt < attempts:
				await wait_for_settled_dom(page, cdp_client=cdp_client)
			continue

		if state.is_degraded:
			if attempt < attempts:
				await wait_for_settled_dom(page, cdp_client=cdp_client)
			continue

		store_dom_snapshot(page, state)
		return state

	logger.warning(f'[A11y] Accessibility capture failed after {attempts} attempt(s)')
	return A11yDOMState.degraded()
