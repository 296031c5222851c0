from browser_replay.dom.build_maps import build_backend_id_maps
from browser_replay.dom.build_tree import build_hierarchical_tree
from browser_replay.dom.capture import capture_dom_state
from browser_replay.dom.dom_cache import (
	get_cached_dom_state,
	is_dom_snapshot_dirty,
	mark_dom_snapshot_dirty,
	store_dom_snapshot,
)
from browser_replay.dom.service import get_a11y_dom
from browser_replay.dom.settle import wait_for_settled_dom
from browser_replay.dom.utils import resolve_frame_by_xpath
from browser_replay.dom.views import (
	A11yDOMState,
	AccessibilityNode,
	BackendIdMaps,
	EncodedId,
	IframeInfo,
	TreeResult,
	create_encoded_id,
	is_encoded_id,
	parse_frame_index,
)

__all__ = [
	'A11yDOMState',
	'AccessibilityNode',
	'BackendIdMaps',
	'EncodedId',
	'IframeInfo',
	'TreeResult',
	'build_backend_id_maps',
	'build_hierarchical_tree',
	'capture_dom_state',
	'create_encoded_id',
	'get_a11y_dom',
	'get_cached_dom_state',
	'is_dom_snapshot_dirty',
	'is_encoded_id',
	'mark_dom_snapshot_dirty',
	'parse_frame_index',
	'resolve_frame_by_xpath',
	'store_dom_snapshot',
	'wait_for_settled_dom',
]
