"""`perform_*` helpers: replay a single element action from its recorded XPath.

These are what exported action cache scripts call. Each helper builds an `actElement` cached action and runs it
through `run_cached_step`, so the XPath is re-resolved through CDP on every call.
"""

from typing import TYPE_CHECKING, Any

from browser_replay.cache.views import TaskOutput
from browser_replay.cdp.views import CDPClient
from browser_replay.replay.cached_step import DEFAULT_MAX_STEPS, run_cached_step
from browser_replay.replay.views import CachedActionInput, PerformInstructionFallback, normalize_page_action_method

if TYPE_CHECKING:
	from playwright.async_api import Page


async def _run_cached_action(
	page: 'Page',
	method: str,
	xpath: str,
	arguments: list[str | int | float],
	default_instruction: str,
	frame_index: int = 0,
	instruction: str | None = None,
	max_steps: int = DEFAULT_MAX_STEPS,
	debug: bool = False,
	perform_fallback: PerformInstructionFallback | None = None,
	cdp_client: CDPClient | None = None,
) -> TaskOutput:
	run_instruction = instruction.strip() if isinstance(instruction, str) and instruction.strip() else default_instruction
	cached_action = CachedActionInput(
		action_type='actElement',
		method=method,
		arguments=arguments,
		frame_index=frame_index or 0,
		xpath=xpath,
	)
	return await run_cached_step(
		page,
		run_instruction,
		cached_action,
		max_steps=max_steps,
		debug=debug,
		perform_fallback=perform_fallback,
		cdp_client=cdp_client,
	)


async def perform_click(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'click', xpath, [], 'Click element', **options)


async def perform_hover(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'hover', xpath, [], 'Hover element', **options)


async def perform_type(page: 'Page', xpath: str, text: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'type', xpath, [text], 'Type text', **options)


async def perform_fill(page: 'Page', xpath: str, text: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'fill', xpath, [text], 'Fill input', **options)


async def perform_press(page: 'Page', xpath: str, key: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'press', xpath, [key], 'Press key', **options)


async def perform_select_option(page: 'Page', xpath: str, option: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'selectOptionFromDropdown', xpath, [option], 'Select option', **options)


async def perform_check(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'check', xpath, [], 'Check element', **options)


async def perform_uncheck(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'uncheck', xpath, [], 'Uncheck element', **options)


async def perform_scroll_to_element(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'scrollToElement', xpath, [], 'Scroll to element', **options)


async def perform_scroll_to_percentage(page: 'Page', xpath: str, position: str | int | float, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'scrollToPercentage', xpath, [position], 'Scroll to percentage', **options)


async def perform_next_chunk(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'nextChunk', xpath, [], 'Scroll next chunk', **options)


async def perform_prev_chunk(page: 'Page', xpath: str, **options: Any) -> TaskOutput:
	return await _run_cached_action(page, 'prevChunk', xpath, [], 'Scroll previous chunk', **options)


async def dispatch_perform_helper(
	page: 'Page',
	method: str,
	xpath: str,
	value: str | int | float | None = None,
	**options: Any,
) -> TaskOutput:
	"""Run the helper for a recorded method. `value` is only passed to helpers that take one.

	Raises:
		ValueError: if `method` is not a replayable element method, or scrollToPercentage has no position
	"""
	normalized = normalize_page_action_method(method)
	text = '' if value is None else value
	if normalized == 'click':
		return await perform_click(page, xpath, **options)
	if normalized == 'hover':
		return await perform_hover(page, xpath, **options)
	if normalized == 'type':
		return await perform_type(page, xpath, str(text), **options)
	if normalized == 'fill':
		return await perform_fill(page, xpath, str(text), **options)
	if normalized == 'press':
		return await perform_press(page, xpath, str(text), **options)
	if normalized == 'selectOptionFromDropdown':
		return await perform_select_option(page, xpath, str(text), **options)
	if normalized == 'check':
		return await perform_check(page, xpath, **options)
	if normalized == 'uncheck':
		return await perform_uncheck(page, xpath, **options)
	if normalized == 'scrollToElement':
		return await perform_scroll_to_element(page, xpath, **options)
	if normalized == 'scrollToPercentage':
		if value is None:
			raise ValueError('scrollToPercentage requires a position value')
		return await perform_scroll_to_percentage(page, xpath, value, **options)
	if normalized == 'nextChunk':
		return await perform_next_chunk(page, xpath, **options)
	if normalized == 'prevChunk':
		return await perform_prev_chunk(page, xpath, **options)
	raise ValueError(f'Unknown perform helper method: {method}')
