"""Playwright locators for elements captured in an accessibility snapshot."""

import logging
import re
from typing import TYPE_CHECKING

from browser_replay.config import CONFIG
from browser_replay.dom.utils import resolve_frame_by_xpath
from browser_replay.dom.views import IframeInfo, parse_frame_index, to_encoded_id
from browser_replay.exceptions import BrowserReplayError, ElementNotFoundError, FrameResolutionError
from browser_replay.utils import format_diagnostic, format_identifier

if TYPE_CHECKING:
	from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

TRAILING_TEXT_NODE_RE = re.compile(r'/text\(\)(\[\d+\])?$', re.IGNORECASE)


def strip_text_node_selector(xpath: str) -> str:
	"""Remove a trailing `/text()` or `/text()[n]` step so the xpath addresses the owning element."""
	return TRAILING_TEXT_NODE_RE.sub('', xpath.strip()).strip()


async def get_element_locator(
	element_id: str,
	xpath_map: dict[str, str],
	page: 'Page',
	frame_map: dict[int, IframeInfo] | None = None,
	debug: bool = False,
) -> tuple['Locator', str]:
	"""Get a Playwright locator for an element by its encoded id.

	Main-frame elements use `page.locator`. Iframe elements resolve the live frame from the
	captured frame metadata first and wait (bounded, non-fatal) for its DOM to load.

	Args:
		element_id: Encoded id `"<frameIndex>-<backendNodeId>"`, or a bare main-frame backend node id
		xpath_map: Encoded id to xpath map of the snapshot the id came from
		page: Playwright page
		frame_map: Frame index to IframeInfo map of the same snapshot
		debug: Log resolution details

	Returns:
		(locator, xpath) where xpath has any trailing text-node selector removed

	Raises:
		ElementNotFoundError: blank id, unknown id, or missing frame metadata
		FrameResolutionError: the iframe could not be found in the live page
	"""
	normalized_id = element_id.strip() if isinstance(element_id, str) else ''
	if not normalized_id:
		raise ElementNotFoundError('Element ID must be a non-empty string', 400)
	safe_id = format_identifier(normalized_id, fallback='unknown-element')

	try:
		encoded_id = to_encoded_id(normalized_id)
	except ValueError as e:
		raise ElementNotFoundError(f'Failed to normalize element ID "{safe_id}": {format_diagnostic(e)}', 400) from e

	raw_xpath = xpath_map.get(encoded_id)
	if not isinstance(raw_xpath, str) or not raw_xpath.strip():
		message = f'Element {safe_id} not found in xpath map'
		if debug:
			logger.error(f'[ElementLocator] {message}')
		raise ElementNotFoundError(message)

	xpath = strip_text_node_selector(raw_xpath)
	frame_index = parse_frame_index(encoded_id)
	if frame_index is None:
		raise ElementNotFoundError(f'Invalid frame index in encoded element ID "{format_identifier(encoded_id)}"', 400)

	if frame_index == 0:
		return page.locator(f'xpath={xpath}'), xpath

	iframe_info = (frame_map or {}).get(frame_index)
	if iframe_info is None:
		message = f'Frame metadata not found for frame {frame_index}'
		if debug:
			logger.error(f'[ElementLocator] {message}')
		raise ElementNotFoundError(message)

	if debug:
		logger.info(f'[ElementLocator] Resolving frame {frame_index} via XPath/URL metadata')
	try:
		target_frame = await resolve_frame_by_xpath(page, frame_map or {}, frame_index)
	except BrowserReplayError:
		raise
	except Exception as e:
		raise FrameResolutionError(
			f'Could not resolve frame for element {safe_id} (frameIndex: {frame_index}): {format_diagnostic(e)}', 500
		) from e

	if target_frame is None:
		message = f'Could not resolve frame for element {safe_id} (frameIndex: {frame_index})'
		if debug:
			logger.error(
				f'[ElementLocator] {message}; src={format_identifier(iframe_info.src)} '
				f'name={format_identifier(iframe_info.name)} xpath={iframe_info.xpath}'
			)
		raise FrameResolutionError(message)

	try:
		await target_frame.wait_for_load_state('domcontentloaded', timeout=CONFIG.FRAME_READY_TIMEOUT_MS)
	except Exception as e:
		# The frame may already be loaded; acting is still worth a try
		if debug:
			logger.warning(
				f'[ElementLocator] Timeout waiting for iframe to load (frame {frame_index}), proceeding anyway: '
				f'{format_diagnostic(e)}'
			)

	return target_frame.locator(f'xpath={xpath}'), xpath
