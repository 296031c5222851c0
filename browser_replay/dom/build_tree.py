import logging
from typing import Any

from browser_replay.cdp.views import CDPSession
from browser_replay.dom.utils import clean_structural_nodes, format_simplified_tree, is_interactive, is_negative_node_id
from browser_replay.dom.views import AccessibilityNode, BackendIdMaps, DOMRect, EncodedId, TreeResult, create_encoded_id

logger = logging.getLogger(__name__)


def _ax_value(node: dict[str, Any], key: str) -> Any:
	value = node.get(key)
	if isinstance(value, dict):
		return value.get('value')
	return None


def convert_ax_node(node: dict[str, Any]) -> AccessibilityNode:
	"""Convert a raw CDP AXNode into an AccessibilityNode (without children)."""
	name = _ax_value(node, 'name')
	description = _ax_value(node, 'description')
	value = _ax_value(node, 'value')
	backend_node_id = node.get('backendDOMNodeId')
	return AccessibilityNode(
		role=str(_ax_value(node, 'role') or 'unknown'),
		name=str(name) if name not in (None, '') else None,
		description=str(description) if description not in (None, '') else None,
		value=str(value) if value not in (None, '') else None,
		node_id=str(node['nodeId']) if node.get('nodeId') is not None else None,
		backend_dom_node_id=backend_node_id if isinstance(backend_node_id, int) else None,
		parent_id=str(node['parentId']) if node.get('parentId') is not None else None,
		child_ids=[str(child_id) for child_id in node.get('childIds') or []],
	)


async def _get_bounding_box(session: CDPSession, backend_node_id: int) -> DOMRect | None:
	response = await session.send('DOM.getBoxModel', {'backendNodeId': backend_node_id})
	border = (response.get('model') or {}).get('border') or []
	if len(border) < 8:
		return None
	return DOMRect.from_quad(border[:8])


async def build_hierarchical_tree(
	nodes: list[dict[str, Any]],
	maps: BackendIdMaps,
	frame_index: int = 0,
	debug: bool = False,
	enable_visual_mode: bool = False,
	session: CDPSession | None = None,
) -> TreeResult:
	"""Build the cleaned accessibility tree of one frame from flat CDP nodes.

	Args:
		nodes: Flat AX nodes of a single frame, as returned by CDP
		maps: Backend id maps of the capture, only `tag_name_map` and `xpath_map` are used
		frame_index: Frame index the nodes belong to, used to build encoded ids
		debug: Collect bounding boxes and log nodes without layout
		enable_visual_mode: Collect bounding boxes and return them in `bounding_box_map`
		session: CDP session used for `DOM.getBoxModel` when boxes are collected

	Returns:
		TreeResult with the cleaned roots, the text tree, and an encoded id index
	"""
	converted = [convert_ax_node(node) for node in nodes]
	node_map: dict[str, AccessibilityNode] = {}
	bounding_box_map: dict[EncodedId, DOMRect] = {}
	collect_boxes = (debug or enable_visual_mode) and session is not None

	# Pass 1: keep named, structural or interactive nodes and give them encoded ids
	for node in converted:
		if not node.node_id or is_negative_node_id(node.node_id):
			continue
		if not ((node.name or '').strip() or node.child_ids or is_interactive(node)):
			continue
		if node.backend_dom_node_id is not None:
			node.encoded_id = create_encoded_id(frame_index, node.backend_dom_node_id)
		node.frame_index = frame_index
		node_map[node.node_id] = node

		if collect_boxes and node.backend_dom_node_id and node.encoded_id:
			try:
				box = await _get_bounding_box(session, node.backend_dom_node_id)
			except Exception:
				# Hidden elements and pseudo-elements have no layout
				if debug:
					logger.debug(f'[A11y] Could not get bounding box for node {node.encoded_id}')
				box = None
			if box is not None:
				node.bounding_box = box
				bounding_box_map[node.encoded_id] = box

	# Pass 2: wire children
	for node in converted:
		if not node.parent_id or not node.node_id:
			continue
		parent = node_map.get(node.parent_id)
		current = node_map.get(node.node_id)
		if parent is not None and current is not None:
			parent.children.append(current)

	# Pass 3: roots
	roots = [node_map[node.node_id] for node in converted if not node.parent_id and node.node_id in node_map]

	# Pass 4: structural cleanup
	cleaned_roots: list[AccessibilityNode] = []
	for root in roots:
		cleaned = clean_structural_nodes(root, maps.tag_name_map)
		if cleaned is not None:
			cleaned_roots.append(cleaned)

	# Pass 5: text tree
	simplified = '\n'.join(format_simplified_tree(root) for root in cleaned_roots)

	# Pass 6: encoded id index
	id_to_element: dict[EncodedId, AccessibilityNode] = {}
	stack = list(reversed(cleaned_roots))
	while stack:
		current = stack.pop()
		if current.encoded_id:
			id_to_element[current.encoded_id] = current
		stack.extend(reversed(current.children))

	return TreeResult(
		tree=cleaned_roots,
		simplified=simplified,
		xpath_map=maps.xpath_map,
		id_to_element=id_to_element,
		bounding_box_map=bounding_box_map if enable_visual_mode else None,
	)
