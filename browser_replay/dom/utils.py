import logging
from typing import TYPE_CHECKING, Any

from browser_replay.dom.views import INTERACTIVE_ROLES, AccessibilityNode, EncodedId, IframeInfo, parse_frame_index
from browser_replay.utils import format_diagnostic, sanitize_diagnostic_text

if TYPE_CHECKING:
	from playwright.async_api import Frame, Page

logger = logging.getLogger(__name__)

STRUCTURAL_ROLES = frozenset({'generic', 'none', 'presentation'})

# DOM tags that still deserve a node when the accessibility tree of a frame is empty
FALLBACK_TAG_ROLES = {
	'a': 'link',
	'button': 'button',
	'input': 'textbox',
	'textarea': 'textbox',
	'select': 'combobox',
	'option': 'option',
	'label': 'label',
	'summary': 'button',
}


def is_interactive(node: AccessibilityNode) -> bool:
	return node.role in INTERACTIVE_ROLES


def has_interactive_elements(raw_nodes: list[dict[str, Any]]) -> bool:
	"""Check raw CDP AX nodes for at least one interactive role."""
	for node in raw_nodes:
		role = (node.get('role') or {}).get('value')
		if role in INTERACTIVE_ROLES:
			return True
	return False


def is_negative_node_id(node_id: Any) -> bool:
	try:
		return int(node_id) < 0
	except (TypeError, ValueError):
		return False


def _normalize_text(value: str | None) -> str:
	return sanitize_diagnostic_text(value or '').lower()


def remove_redundant_static_text(parent: AccessibilityNode, children: list[AccessibilityNode]) -> list[AccessibilityNode]:
	"""Drop StaticText children whose combined text only repeats the parent's name."""
	if not parent.name:
		return children
	static_texts = [child for child in children if child.role == 'StaticText']
	if not static_texts:
		return children
	combined = ''.join(child.name or '' for child in static_texts)
	if _normalize_text(combined) != _normalize_text(parent.name):
		return children
	return [child for child in children if child.role != 'StaticText']


def clean_structural_nodes(node: AccessibilityNode, tag_name_map: dict[EncodedId, str]) -> AccessibilityNode | None:
	"""Collapse structural wrappers so the tree only keeps nodes worth showing.

	- generic/none/presentation nodes with one child are replaced by that child
	- structural nodes without children or name are dropped
	- remaining generic/none roles are replaced by the DOM tag name
	"""
	if is_negative_node_id(node.node_id):
		return None

	if not node.children:
		if node.role in STRUCTURAL_ROLES and not (node.name or '').strip():
			return None
		_apply_tag_role(node, tag_name_map)
		return node

	cleaned_children: list[AccessibilityNode] = []
	for child in node.children:
		cleaned = clean_structural_nodes(child, tag_name_map)
		if cleaned is not None:
			cleaned_children.append(cleaned)
	cleaned_children = remove_redundant_static_text(node, cleaned_children)

	if node.role in STRUCTURAL_ROLES and not (node.name or '').strip():
		if len(cleaned_children) == 1:
			return cleaned_children[0]
		if not cleaned_children:
			return None

	_apply_tag_role(node, tag_name_map)
	node.children = cleaned_children
	return node


def _apply_tag_role(node: AccessibilityNode, tag_name_map: dict[EncodedId, str]) -> None:
	if node.role not in ('generic', 'none') or not node.encoded_id:
		return
	tag_name = tag_name_map.get(node.encoded_id)
	if tag_name and not tag_name.startswith('#'):
		node.role = tag_name


def format_simplified_tree(node: AccessibilityNode, level: int = 0) -> str:
	indent = '  ' * level
	identifier = node.encoded_id or node.node_id or 'unknown'
	line = f'{indent}[{identifier}] {node.role}'
	if node.name:
		line += f': {sanitize_diagnostic_text(node.name)}'
	lines = [line]
	for child in node.children:
		lines.append(format_simplified_tree(child, level + 1))
	return '\n'.join(lines)


def create_dom_fallback_nodes(
	frame_index: int,
	tag_name_map: dict[EncodedId, str],
	backend_node_map: dict[EncodedId, int],
	accessible_name_map: dict[EncodedId, str] | None = None,
) -> list[dict[str, Any]]:
	"""Synthesise raw AX-shaped nodes for the interactive DOM elements of one frame."""
	names = accessible_name_map or {}
	nodes: list[dict[str, Any]] = []
	for encoded_id, tag_name in tag_name_map.items():
		if parse_frame_index(encoded_id) != frame_index:
			continue
		role = FALLBACK_TAG_ROLES.get(tag_name)
		backend_node_id = backend_node_map.get(encoded_id)
		if role is None or backend_node_id is None:
			continue
		nodes.append(
			{
				'nodeId': f'dom-{encoded_id}',
				'backendDOMNodeId': backend_node_id,
				'role': {'value': role},
				'name': {'value': names.get(encoded_id, '')},
				'childIds': [],
			}
		)
	return nodes


def _frame_lineage(frame_map: dict[int, IframeInfo], frame_index: int) -> list[IframeInfo] | None:
	"""Iframe infos from the outermost frame down to `frame_index`, or None when the chain is broken."""
	lineage: list[IframeInfo] = []
	seen: set[int] = set()
	current: int | None = frame_index
	while current:
		if current in seen:
			return None
		seen.add(current)
		info = frame_map.get(current)
		if info is None:
			return None
		lineage.append(info)
		current = info.parent_frame_index
	lineage.reverse()
	return lineage


async def resolve_frame_by_xpath(page: 'Page', frame_map: dict[int, IframeInfo], frame_index: int) -> 'Frame | None':
	"""Find the live Playwright frame for a captured frame index.

	Tries an exact URL match against the iframe's recorded src first, then walks the iframe
	XPath lineage from the main frame.

	Returns:
		The frame, or None when it could not be found
	"""
	if frame_index == 0:
		return page.main_frame

	info = frame_map.get(frame_index)
	if info is None:
		return None

	target_src = sanitize_diagnostic_text(info.src or '')
	if target_src:
		try:
			frames = list(page.frames)
		except Exception as e:
			logger.warning(f'Failed to enumerate frames for URL matching: {format_diagnostic(e)}')
			frames = []
		main_frame = page.main_frame
		for frame in frames:
			if frame is main_frame:
				continue
			try:
				frame_url = frame.url
			except Exception:
				continue
			if frame_url == target_src:
				return frame

	lineage = _frame_lineage(frame_map, frame_index)
	if not lineage:
		return None
	try:
		current = page.main_frame
		for frame_info in lineage:
			handle = await current.locator(f'xpath={frame_info.xpath}').element_handle()
			if handle is None:
				return None
			next_frame = await handle.content_frame()
			if next_frame is None:
				return None
			current = next_frame
		return current
	except Exception as e:
		logger.warning(f'Error traversing frame {frame_index}: {format_diagnostic(e)}')
		return None
