"""Element interactions dispatched straight through CDP on a resolved backend node."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from browser_replay.cdp.views import CDPSession
from browser_replay.exceptions import ElementNotFoundError, UnsupportedActionError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset(
	{
		'click',
		'doubleClick',
		'hover',
		'type',
		'fill',
		'press',
		'check',
		'uncheck',
		'selectOptionFromDropdown',
		'scrollTo',
		'scrollToElement',
		'scrollToPercentage',
		'nextChunk',
		'prevChunk',
	}
)

_SET_VALUE_JS = """function(nextValue) {
	if (this && 'value' in this) {
		this.value = nextValue ?? '';
		if (typeof this.dispatchEvent === 'function') {
			this.dispatchEvent(new Event('input', { bubbles: true }));
			this.dispatchEvent(new Event('change', { bubbles: true }));
		}
	}
}"""

_SET_CHECKED_JS = """function(shouldCheck) {
	if (!this || this.checked === shouldCheck) return;
	this.checked = shouldCheck;
	if (typeof this.dispatchEvent === 'function') {
		this.dispatchEvent(new Event('input', { bubbles: true }));
		this.dispatchEvent(new Event('change', { bubbles: true }));
	}
}"""

_SELECT_OPTION_JS = """function(targetValue) {
	if (!this || this.tagName?.toLowerCase() !== 'select') return;
	const options = Array.from(this.options || []);
	const normalized = targetValue?.toString().trim().toLowerCase();
	const next = options.find(opt => {
		if (!normalized) return false;
		return (opt.value || '').toLowerCase() === normalized || (opt.innerText || '').toLowerCase() === normalized;
	}) ?? options.find(Boolean);
	if (next) {
		this.value = next.value;
		this.dispatchEvent(new Event('input', { bubbles: true }));
		this.dispatchEvent(new Event('change', { bubbles: true }));
	}
}"""

_SCROLL_TO_PERCENT_JS = """function(percent) {
	const pct = Math.max(0, Math.min(100, Number(percent)));
	const isRoot = this === document.documentElement || this === document.body;
	const container = isRoot ? (document.scrollingElement || document.documentElement) : this;
	if (!container) return;
	const maxScroll = container.scrollHeight - container.clientHeight;
	container.scrollTo({ top: maxScroll * (pct / 100), behavior: 'instant' });
}"""

_SCROLL_BY_JS = """function(amount) {
	const isRoot = this === document.documentElement || this === document.body;
	const container = isRoot ? (document.scrollingElement || document.documentElement) : this;
	if (!container) return;
	container.scrollBy({ top: amount, left: 0, behavior: 'instant' });
}"""

_FOCUS_JS = "function(){ if (typeof this.focus === 'function') { this.focus(); } }"

_SCROLL_INTO_VIEW_JS = "function(){ this.scrollIntoView({block: 'center', inline: 'center', behavior: 'instant'}); }"

_CENTER_JS = (
	'function(){'
	'const r=this.getBoundingClientRect();'
	'return {x:r.left+r.width/2,y:r.top+r.height/2,width:r.width,height:r.height};}'
)


@dataclass
class ResolvedElement:
	session: CDPSession
	backend_node_id: int
	object_id: str | None = None
	xpath: str | None = None


async def _object_id(element: ResolvedElement) -> str:
	if element.object_id:
		return element.object_id
	response = await element.session.send('DOM.resolveNode', {'backendNodeId': element.backend_node_id})
	object_id = (response.get('object') or {}).get('objectId')
	if not object_id:
		raise ElementNotFoundError(f'Failed to resolve element handle for backendNodeId {element.backend_node_id}')
	element.object_id = object_id
	return object_id


async def _call_on(element: ResolvedElement, declaration: str, *args: Any, return_by_value: bool = False) -> dict:
	params: dict[str, Any] = {'objectId': await _object_id(element), 'functionDeclaration': declaration}
	if args:
		params['arguments'] = [{'value': arg} for arg in args]
	if return_by_value:
		params['returnByValue'] = True
	return await element.session.send('Runtime.callFunctionOn', params)


async def _scroll_into_view(element: ResolvedElement) -> None:
	try:
		await element.session.send('DOM.scrollIntoViewIfNeeded', {'backendNodeId': element.backend_node_id})
	except Exception:
		await _call_on(element, _SCROLL_INTO_VIEW_JS)


async def get_element_box(element: ResolvedElement) -> tuple[float, float, float, float] | None:
	"""Return (center_x, center_y, width, height) in viewport coordinates, or None without layout."""
	try:
		box_model = await element.session.send('DOM.getBoxModel', {'backendNodeId': element.backend_node_id})
		quads = box_model['model']['border']  # [x1,y1, x2,y2, x3,y3, x4,y4]
		xs, ys = quads[0::2], quads[1::2]
		width, height = max(xs) - min(xs), max(ys) - min(ys)
		if width > 0 and height > 0:
			return sum(xs) / 4, sum(ys) / 4, width, height
	except Exception as e:
		logger.debug(f'DOM.getBoxModel failed for backendNodeId {element.backend_node_id}: {type(e).__name__}')

	# getBoundingClientRect via JS as fallback
	response = await _call_on(element, _CENTER_JS, return_by_value=True)
	value = (response.get('result') or {}).get('value') or {}
	if not value or not value.get('width') or not value.get('height'):
		return None
	return float(value['x']), float(value['y']), float(value['width']), float(value['height'])


async def _mouse(session: CDPSession, event_type: str, x: float, y: float, button: str = 'left', click_count: int = 1) -> None:
	params: dict[str, Any] = {'type': event_type, 'x': x, 'y': y}
	if event_type == 'mouseMoved':
		params['button'] = 'none'
	else:
		params['button'] = button
		params['clickCount'] = click_count
	await session.send('Input.dispatchMouseEvent', params)


async def click_element(element: ResolvedElement, click_count: int = 1, button: str = 'left') -> None:
	await _scroll_into_view(element)
	box = await get_element_box(element)
	if box is None:
		raise ElementNotFoundError('Unable to determine element bounding box')
	x, y, _, _ = box
	await _mouse(element.session, 'mouseMoved', x, y)
	for _ in range(click_count):
		await _mouse(element.session, 'mousePressed', x, y, button, click_count)
		await _mouse(element.session, 'mouseReleased', x, y, button, click_count)
		await asyncio.sleep(0.05)


async def hover_element(element: ResolvedElement) -> None:
	await _scroll_into_view(element)
	box = await get_element_box(element)
	if box is None:
		raise ElementNotFoundError('Unable to determine element bounding box')
	await _mouse(element.session, 'mouseMoved', box[0], box[1])


def normalize_key(key: str) -> dict[str, str]:
	trimmed = (key or '').strip()
	lowered = trimmed.lower()
	if lowered == 'enter':
		return {'key': 'Enter', 'code': 'Enter', 'text': '\r'}
	if lowered == 'tab':
		return {'key': 'Tab', 'code': 'Tab'}
	if lowered in ('escape', 'esc'):
		return {'key': 'Escape', 'code': 'Escape'}
	if lowered == 'space':
		return {'key': ' ', 'code': 'Space', 'text': ' '}
	if len(trimmed) == 1:
		return {'key': trimmed, 'code': f'Key{trimmed.upper()}', 'text': trimmed}
	return {'key': trimmed, 'code': trimmed}


async def press_key(element: ResolvedElement, key: str) -> None:
	await _call_on(element, _FOCUS_JS)
	descriptor = normalize_key(key or 'Enter')
	await element.session.send('Input.dispatchKeyEvent', {'type': 'keyDown', **descriptor})
	await element.session.send('Input.dispatchKeyEvent', {'type': 'keyUp', **descriptor})


async def type_text(element: ResolvedElement, text: str) -> None:
	if not text:
		return
	await _call_on(element, _FOCUS_JS)
	await element.session.send('Input.insertText', {'text': text})


def normalize_scroll_percent(target: Any) -> float:
	if isinstance(target, (int, float)) and not isinstance(target, bool):
		return min(100.0, max(0.0, float(target)))
	text = str(target if target is not None else '50%').strip().rstrip('%')
	try:
		value = float(text)
	except ValueError:
		value = 50.0
	return min(100.0, max(0.0, value))


async def scroll_by_chunk(element: ResolvedElement, direction: str) -> None:
	box = await get_element_box(element)
	delta = box[3] if box is not None else 400
	sign = 1 if direction == 'nextChunk' else -1
	await _call_on(element, _SCROLL_BY_JS, delta * sign)


async def dispatch_cdp_action(method: str, args: list[Any], element: ResolvedElement) -> None:
	"""Perform one recorded method on a resolved element.

	Args:
		method: Action method name, as recorded in the action cache
		args: Positional arguments recorded with the method
		element: The element resolved from the cached XPath

	Raises:
		UnsupportedActionError: for an unknown method
		ElementNotFoundError: if the element has no handle or layout
	"""
	first = args[0] if args else None
	if method == 'click':
		await click_element(element)
	elif method == 'doubleClick':
		await click_element(element, click_count=2)
	elif method == 'hover':
		await hover_element(element)
	elif method == 'type':
		await type_text(element, '' if first is None else str(first))
	elif method == 'fill':
		await _call_on(element, _SET_VALUE_JS, '' if first is None else str(first))
	elif method == 'press':
		await press_key(element, 'Enter' if first is None else str(first))
	elif method in ('check', 'uncheck'):
		await _call_on(element, _SET_CHECKED_JS, method == 'check')
	elif method == 'selectOptionFromDropdown':
		await _call_on(element, _SELECT_OPTION_JS, '' if first is None else str(first))
	elif method == 'scrollToElement':
		await _scroll_into_view(element)
	elif method in ('scrollTo', 'scrollToPercentage'):
		await _call_on(element, _SCROLL_TO_PERCENT_JS, normalize_scroll_percent(first))
	elif method in ('nextChunk', 'prevChunk'):
		await scroll_by_chunk(element, method)
	else:
		raise UnsupportedActionError(f'Unsupported action method: {method}')
