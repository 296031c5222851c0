"""Walk the pierced DOM once and index every node by encoded id."""

import logging
from dataclasses import dataclass, field
from typing import Any

from browser_replay.cdp.views import CDPSession
from browser_replay.dom.views import BackendIdMaps, IframeInfo, create_encoded_id
from browser_replay.utils import format_unknown_error, sanitize_diagnostic_text

logger = logging.getLogger(__name__)

ELEMENT_NODE = 1
TEXT_NODE = 3
COMMENT_NODE = 8

FRAME_TAGS = frozenset({'iframe', 'frame'})

# Attributes that carry an accessible name when the AX tree does not
NAME_ATTRIBUTES = ('aria-label', 'alt', 'title', 'placeholder', 'value', 'name')


@dataclass
class _WalkItem:
	node: dict[str, Any]
	xpath: str
	frame_index: int
	document_url: str | None
	# Position among sibling iframes, set only on iframe elements
	iframe_position: int | None = None


@dataclass
class _MapBuilder:
	maps: BackendIdMaps = field(default_factory=BackendIdMaps)
	next_frame_index: int = 1


def _attributes(node: dict[str, Any]) -> dict[str, str]:
	raw = node.get('attributes') or []
	return {raw[i]: raw[i + 1] for i in range(0, len(raw) - 1, 2)}


def _tag_name(node: dict[str, Any]) -> str:
	return (node.get('localName') or node.get('nodeName') or '').lower()


def _step_selector(tag: str) -> str:
	# Namespaced elements (svg, math, custom prefixes) need name() matching under document.evaluate
	if tag in ('svg', 'math') or ':' in tag:
		return f'*[name()="{tag}"]'
	return tag


def child_xpath_steps(children: list[dict[str, Any]]) -> list[str | None]:
	"""Return the XPath step for each child, positional among same-named siblings. None for unaddressable nodes."""
	counts: dict[str, int] = {}
	steps: list[str | None] = []
	for child in children:
		node_type = child.get('nodeType')
		if node_type == ELEMENT_NODE:
			key = _step_selector(_tag_name(child))
		elif node_type == TEXT_NODE:
			key = 'text()'
		elif node_type == COMMENT_NODE:
			key = 'comment()'
		else:
			steps.append(None)
			continue
		counts[key] = counts.get(key, 0) + 1
		steps.append(f'{key}[{counts[key]}]')
	return steps


def _accessible_name(node: dict[str, Any]) -> str | None:
	if node.get('nodeType') == TEXT_NODE:
		text = sanitize_diagnostic_text(node.get('nodeValue') or '')
		return text or None
	attributes = _attributes(node)
	for attribute in NAME_ATTRIBUTES:
		value = sanitize_diagnostic_text(attributes.get(attribute) or '')
		if value:
			return value
	return None


def _register_node(builder: _MapBuilder, item: _WalkItem) -> None:
	node = item.node
	backend_node_id = node.get('backendNodeId')
	if backend_node_id is None:
		return
	encoded_id = create_encoded_id(item.frame_index, backend_node_id)
	maps = builder.maps
	maps.backend_node_map[encoded_id] = backend_node_id
	if node.get('nodeType') == TEXT_NODE:
		maps.tag_name_map[encoded_id] = '#text'
	else:
		maps.tag_name_map[encoded_id] = _tag_name(node)
	maps.xpath_map[encoded_id] = item.xpath or '/'
	name = _accessible_name(node)
	if name:
		maps.accessible_name_map[encoded_id] = name


def _register_iframe(builder: _MapBuilder, item: _WalkItem) -> _WalkItem | None:
	"""Record an iframe element and return the walk item for its content document, if any.

	Ad and tracking iframes are indexed too, so frame indices match the FrameContextManager numbering.
	"""
	node = item.node
	attributes = _attributes(node)
	src = attributes.get('src')
	name = attributes.get('name')

	frame_index = builder.next_frame_index
	builder.next_frame_index += 1
	content_document = node.get('contentDocument')
	builder.maps.frame_map[frame_index] = IframeInfo(
		frame_index=frame_index,
		sibling_position=item.iframe_position or 0,
		src=src,
		name=name,
		xpath=item.xpath,
		parent_frame_index=item.frame_index,
		parent_url=item.document_url,
		content_document_backend_node_id=(content_document or {}).get('backendNodeId'),
		iframe_backend_node_id=node.get('backendNodeId'),
		frame_id=node.get('frameId') or (content_document or {}).get('frameId'),
	)
	if content_document is None:
		return None
	return _WalkItem(
		node=content_document,
		xpath='',
		frame_index=frame_index,
		document_url=content_document.get('documentURL') or src,
	)


def _walk(builder: _MapBuilder, root: _WalkItem) -> None:
	stack = [root]
	while stack:
		item = stack.pop()
		node = item.node
		if node.get('nodeType') in (ELEMENT_NODE, TEXT_NODE, COMMENT_NODE):
			_register_node(builder, item)

		pending: list[_WalkItem] = []
		children = node.get('children') or []
		iframe_position = 0
		for child, step in zip(children, child_xpath_steps(children)):
			if step is None:
				continue
			child_item = _WalkItem(node=child, xpath=f'{item.xpath}/{step}', frame_index=item.frame_index, document_url=item.document_url)
			if child.get('nodeType') == ELEMENT_NODE and _tag_name(child) in FRAME_TAGS:
				child_item.iframe_position = iframe_position
				iframe_position += 1
			pending.append(child_item)

		# Shadow content continues the host's path; document.evaluate cannot cross it anyway
		for shadow_root in node.get('shadowRoots') or []:
			pending.append(_WalkItem(node=shadow_root, xpath=item.xpath, frame_index=item.frame_index, document_url=item.document_url))

		# Iframes are numbered when popped: document pre-order, the same order as Page.getFrameTree
		if item.iframe_position is not None:
			content_item = _register_iframe(builder, item)
			if content_item is not None:
				pending.append(content_item)

		# Reversed so the stack pops in document order
		stack.extend(reversed(pending))


async def build_backend_id_maps(session: CDPSession, frame_index: int = 0, debug: bool = False) -> BackendIdMaps:
	"""Build tag name, XPath, accessible name and backend id maps for the whole pierced document.

	Every iframe content document gets the next frame index in discovery order and its nodes get XPaths
	relative to that document. Failures are logged and produce empty maps.

	Args:
		session: CDP session attached to the page
		frame_index: Frame index of the document being walked
		debug: Log a summary of what was indexed

	Returns:
		BackendIdMaps keyed by encoded id, plus the frame map keyed by frame index
	"""
	try:
		response = await session.send('DOM.getDocument', {'depth': -1, 'pierce': True})
		document = response.get('root')
		if not document:
			raise ValueError('DOM.getDocument returned no root node')

		builder = _MapBuilder(next_frame_index=frame_index + 1)
		_walk(builder, _WalkItem(node=document, xpath='', frame_index=frame_index, document_url=document.get('documentURL')))
		if debug:
			logger.debug(
				f'[A11y] Indexed {len(builder.maps.xpath_map)} nodes across {len(builder.maps.frame_map) + 1} frame(s)'
			)
		return builder.maps
	except Exception as e:
		logger.error(f'Error building backend ID maps: {format_unknown_error(e)}')
		return BackendIdMaps()