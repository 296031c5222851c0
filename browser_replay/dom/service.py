"""Multi-frame accessibility tree capture."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from browser_replay.cdp.frame_filters import is_ad_or_tracking_frame
from browser_replay.cdp.playwright_adapter import get_cdp_client_for_page
from browser_replay.cdp.views import CDPClient, CDPSession, CDPTargetDescriptor
from browser_replay.dom.build_maps import build_backend_id_maps
from browser_replay.dom.build_tree import build_hierarchical_tree
from browser_replay.dom.utils import create_dom_fallback_nodes, has_interactive_elements
from browser_replay.dom.views import (
	INTERACTIVE_ROLES,
	A11yDOMState,
	AccessibilityNode,
	BackendIdMaps,
	DOMRect,
	EncodedId,
	FrameDebugInfo,
	TreeResult,
)
from browser_replay.utils import format_diagnostic, sanitize_diagnostic_text, time_execution_async

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)

MAX_SAMPLE_NODES = 15


@dataclass
class _FrameNodes:
	frame_index: int
	frame_url: str
	nodes: list[dict[str, Any]]


def _page_url(page: 'Page') -> str:
	try:
		return page.url or 'unknown'
	except Exception:
		return 'unknown'


async def fetch_iframe_ax_trees(session: CDPSession, maps: BackendIdMaps) -> list[_FrameNodes]:
	"""Fetch the partial AX tree of every discovered iframe, rooted at its content document."""
	frames: list[_FrameNodes] = []
	for frame_index, frame_info in maps.frame_map.items():
		# Still indexed in frame_map so later frame indices stay aligned; just not captured
		if is_ad_or_tracking_frame(frame_info.src, frame_info.name, frame_info.parent_url):
			logger.debug(f'[A11y] Skipping ad/tracking frame {frame_index} ({sanitize_diagnostic_text(frame_info.src or "")})')
			continue
		content_document_id = frame_info.content_document_backend_node_id
		if not content_document_id:
			logger.warning(f'[A11y] Frame {frame_index} has no contentDocumentBackendNodeId, skipping')
			continue
		try:
			response = await session.send(
				'Accessibility.getPartialAXTree',
				{'backendNodeId': content_document_id, 'fetchRelatives': True},
			)
		except Exception as e:
			logger.warning(
				f'[A11y] Failed to fetch AX tree for frame {frame_index} '
				f'(contentDocBackendNodeId={content_document_id}): {format_diagnostic(e)}'
			)
			continue

		nodes = response.get('nodes') or []
		if not has_interactive_elements(nodes):
			logger.debug(f'[A11y] Frame {frame_index} has no interactive elements in AX tree, falling back to DOM')
			fallback_nodes = create_dom_fallback_nodes(
				frame_index, maps.tag_name_map, maps.backend_node_map, maps.accessible_name_map
			)
			if fallback_nodes:
				nodes = fallback_nodes
		frames.append(_FrameNodes(frame_index, frame_info.src or 'unknown', nodes))
	return frames


def merge_tree_results(results: list[TreeResult]) -> tuple[dict[EncodedId, AccessibilityNode], dict[EncodedId, str], str]:
	elements: dict[EncodedId, AccessibilityNode] = {}
	xpath_map: dict[EncodedId, str] = {}
	for result in results:
		elements.update(result.id_to_element)
		xpath_map.update(result.xpath_map)
	dom_state = '\n\n'.join(result.simplified for result in results)
	return elements, xpath_map, dom_state


def build_frame_debug_info(frame: _FrameNodes, result: TreeResult) -> FrameDebugInfo:
	interactive_count = sum(1 for element in result.id_to_element.values() if element.role in INTERACTIVE_ROLES)
	sample_nodes = None
	if len(frame.nodes) <= MAX_SAMPLE_NODES:
		sample_nodes = [
			{
				'role': (node.get('role') or {}).get('value'),
				'name': (node.get('name') or {}).get('value'),
				'nodeId': node.get('nodeId'),
				'ignored': node.get('ignored'),
				'childIds': len(node.get('childIds') or []),
			}
			for node in frame.nodes[:MAX_SAMPLE_NODES]
		]
	return FrameDebugInfo(
		frame_index=frame.frame_index,
		frame_url=frame.frame_url,
		total_nodes=len(frame.nodes),
		tree_element_count=len(result.id_to_element),
		interactive_count=interactive_count,
		sample_nodes=sample_nodes,
	)


@time_execution_async('--collect_a11y_dom')
async def collect_a11y_dom(
	page: 'Page',
	debug: bool = False,
	enable_visual_mode: bool = False,
	cdp_client: CDPClient | None = None,
) -> A11yDOMState:
	"""Capture the accessibility tree of the page and all of its iframes. Raises on failure."""
	client = cdp_client or await get_cdp_client_for_page(page)
	session = await client.create_session(CDPTargetDescriptor(type='page', page=page))
	try:
		await session.send('Accessibility.enable')
		maps = await build_backend_id_maps(session, 0, debug)

		main_response = await session.send('Accessibility.getFullAXTree')
		frames = [_FrameNodes(0, _page_url(page), main_response.get('nodes') or [])]
		frames.extend(await fetch_iframe_ax_trees(session, maps))

		results: list[TreeResult] = []
		for frame in frames:
			results.append(
				await build_hierarchical_tree(
					frame.nodes,
					maps,
					frame.frame_index,
					debug=debug,
					enable_visual_mode=enable_visual_mode,
					session=session,
				)
			)

		elements, xpath_map, dom_state = merge_tree_results(results)
		bounding_box_map: dict[EncodedId, DOMRect] | None = None
		if enable_visual_mode:
			bounding_box_map = {}
			for result in results:
				bounding_box_map.update(result.bounding_box_map or {})

		return A11yDOMState(
			elements=elements,
			dom_state=dom_state,
			xpath_map=xpath_map,
			frame_map=maps.frame_map,
			backend_node_map=maps.backend_node_map,
			bounding_box_map=bounding_box_map,
			frame_debug_info=[build_frame_debug_info(frame, result) for frame, result in zip(frames, results)]
			if debug
			else None,
		)
	finally:
		try:
			await session.detach()
		except Exception as e:
			logger.debug(f'[A11y] Failed to detach capture session: {format_diagnostic(e)}')


async def get_a11y_dom(
	page: 'Page',
	debug: bool = False,
	enable_visual_mode: bool = False,
	cdp_client: CDPClient | None = None,
) -> A11yDOMState:
	"""Capture the accessibility tree, returning the degraded sentinel state instead of raising.

	Args:
		page: Playwright page to capture
		debug: Include per-frame debug info
		enable_visual_mode: Collect bounding boxes for every kept node
		cdp_client: CDP client to use (default: the page's shared Playwright CDP client)

	Returns:
		A11yDOMState; on any failure `A11yDOMState.degraded()`
	"""
	try:
		return await collect_a11y_dom(page, debug=debug, enable_visual_mode=enable_visual_mode, cdp_client=cdp_client)
	except Exception as e:
		logger.error(f'Error extracting accessibility tree: {format_diagnostic(e)}')
		return A11yDOMState.degraded()
