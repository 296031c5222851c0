import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from browser_replay.cdp.frame_context import FrameContextManager, get_or_create_frame_context_manager
from browser_replay.cdp.playwright_adapter import get_cdp_client_for_page
from browser_replay.cdp.views import CDPClient
from browser_replay.exceptions import ProtocolError
from browser_replay.utils import format_diagnostic

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)


@dataclass
class RuntimeContext:
	cdp_client: CDPClient
	frame_context_manager: FrameContextManager


async def initialize_runtime_context(
	page: 'Page',
	debug: bool = False,
	cdp_client: CDPClient | None = None,
) -> RuntimeContext:
	"""Acquire the page's CDP client and make sure its frame context manager is initialised.

	Raises:
		ProtocolError: with a `[FrameContext]` prefixed, sanitised message on any failure
	"""
	if page is None:
		raise ProtocolError('[FrameContext] Invalid page instance for runtime initialization')

	if cdp_client is None:
		try:
			cdp_client = await get_cdp_client_for_page(page)
		except Exception as e:
			raise ProtocolError(f'[FrameContext] Failed to acquire CDP client: {format_diagnostic(e)}') from e

	try:
		manager = get_or_create_frame_context_manager(cdp_client)
	except Exception as e:
		raise ProtocolError(f'[FrameContext] Failed to create frame context manager: {format_diagnostic(e)}') from e

	manager.set_debug(debug)
	try:
		await manager.ensure_initialized()
	except Exception as e:
		diagnostic = format_diagnostic(e)
		if debug:
			logger.warning(f'[FrameContext] Failed to initialize frame context manager: {diagnostic}')
		raise ProtocolError(f'[FrameContext] Failed to initialize frame context manager: {diagnostic}') from e

	return RuntimeContext(cdp_client=cdp_client, frame_context_manager=manager)
