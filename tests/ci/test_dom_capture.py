"""Accessibility capture: full multi-frame capture, degraded results, retries and the snapshot cache."""

from unittest.mock import AsyncMock

import pytest

from browser_replay.dom import capture as capture_module
from browser_replay.dom.capture import capture_dom_state, is_recoverable_capture_error
from browser_replay.dom.dom_cache import (
	get_cached_dom_state,
	is_dom_snapshot_dirty,
	mark_dom_snapshot_dirty,
	store_dom_snapshot,
)
from browser_replay.dom.service import get_a11y_dom
from browser_replay.dom.views import DEGRADED_DOM_STATE_TEXT, A11yDOMState, AccessibilityNode
from tests.ci.conftest import FakeCDPClient, FakeCDPSession, FakePage
from tests.ci.test_dom_tree import AX_NODES, make_document


def _capture_client(partial_nodes: list | None = None) -> FakeCDPClient:
	page_session = FakeCDPSession(
		'page',
		responses={
			'DOM.getDocument': {'root': make_document()},
			'Accessibility.getFullAXTree': {'nodes': AX_NODES},
			'Accessibility.getPartialAXTree': {'nodes': partial_nodes or []},
		},
	)
	return FakeCDPClient(page_session=page_session)


def _state(name: str = 'Submit') -> A11yDOMState:
	node = AccessibilityNode(role='button', name=name, node_id='3', encoded_id='0-4')
	return A11yDOMState(elements={'0-4': node}, dom_state=f'[0-4] button: {name}', xpath_map={'0-4': '/html[1]/body[1]/button[1]'})


async def test_get_a11y_dom_captures_main_frame_and_iframes():
	client = _capture_client()
	page = FakePage()

	state = await get_a11y_dom(page, debug=True, cdp_client=client)

	assert not state.is_degraded
	assert '[0-4] button: Submit' in state.dom_state
	assert state.xpath_map['0-4'] == '/html[1]/body[1]/button[1]'
	assert state.xpath_map['1-11'] == '/html[1]/body[1]/a[1]'
	assert state.frame_map[1].content_document_backend_node_id == 8
	assert state.backend_node_map['0-4'] == 4

	partial_calls = client.page_session.params_for('Accessibility.getPartialAXTree')
	assert partial_calls == [{'backendNodeId': 8, 'fetchRelatives': True}]
	assert client.page_session.detached

	assert [info.frame_index for info in state.frame_debug_info] == [0, 1]
	assert state.frame_debug_info[0].frame_url == 'https://example.com/'
	assert state.frame_debug_info[0].interactive_count == 1


async def test_iframes_without_interactive_ax_nodes_fall_back_to_dom():
	"""A frame whose AX tree has no interactive roles is rebuilt from its DOM tags."""
	client = _capture_client(partial_nodes=[{'nodeId': '90', 'role': {'value': 'StaticText'}, 'name': {'value': 'hi'}}])

	state = await get_a11y_dom(FakePage(), cdp_client=client)

	assert state.elements['1-11'].role == 'link'
	assert state.elements['1-11'].name == 'Docs'
	assert '[1-11] link: Docs' in state.dom_state


async def test_ad_frames_are_indexed_but_not_captured():
	page_session = FakeCDPSession(
		'page',
		responses={
			'DOM.getDocument': {'root': make_document(iframe_src='https://securepubads.g.doubleclick.net/pagead/ads')},
			'Accessibility.getFullAXTree': {'nodes': AX_NODES},
		},
	)
	client = FakeCDPClient(page_session=page_session)

	state = await get_a11y_dom(FakePage(), debug=True, cdp_client=client)

	assert page_session.params_for('Accessibility.getPartialAXTree') == []
	assert state.frame_map[1].frame_id == 'child-frame'
	assert not any(encoded_id.startswith('1-') for encoded_id in state.xpath_map)
	assert [info.frame_index for info in state.frame_debug_info] == [0]


async def test_get_a11y_dom_degrades_instead_of_raising():
	client = FakeCDPClient()
	client.create_session = AsyncMock(side_effect=RuntimeError('Target closed'))

	state = await get_a11y_dom(FakePage(), cdp_client=client)

	assert state.is_degraded
	assert state.dom_state == DEGRADED_DOM_STATE_TEXT
	assert state.elements == {}
	assert state.xpath_map == {}


@pytest.fixture
def no_settle(monkeypatch):
	settle = AsyncMock()
	monkeypatch.setattr(capture_module, 'wait_for_settled_dom', settle)
	return settle


async def test_capture_retries_navigation_races(monkeypatch, no_settle):
	page = FakePage()
	expected = _state()
	collect = AsyncMock(side_effect=[RuntimeError('Execution context was destroyed.'), expected])
	monkeypatch.setattr(capture_module, 'collect_a11y_dom', collect)

	state = await capture_dom_state(page)

	assert state is expected
	assert collect.await_count == 2
	no_settle.assert_awaited_once()
	assert get_cached_dom_state(page) is expected


async def test_capture_gives_up_on_other_errors(monkeypatch, no_settle):
	collect = AsyncMock(side_effect=RuntimeError('Protocol error: boom'))
	monkeypatch.setattr(capture_module, 'collect_a11y_dom', collect)

	state = await capture_dom_state(FakePage(), max_attempts=5)

	assert state.is_degraded
	assert collect.await_count == 1
	no_settle.assert_not_awaited()


async def test_capture_returns_degraded_after_exhausting_attempts(monkeypatch, no_settle):
	collect = AsyncMock(return_value=A11yDOMState.degraded())
	monkeypatch.setattr(capture_module, 'collect_a11y_dom', collect)

	state = await capture_dom_state(FakePage(), max_attempts=2)

	assert state.is_degraded
	assert collect.await_count == 2
	assert no_settle.await_count == 1


async def test_capture_uses_cache_until_marked_dirty(monkeypatch, no_settle):
	page = FakePage()
	first, second = _state('First'), _state('Second')
	collect = AsyncMock(side_effect=[first, second])
	monkeypatch.setattr(capture_module, 'collect_a11y_dom', collect)

	assert await capture_dom_state(page) is first
	assert await capture_dom_state(page) is first
	assert collect.await_count == 1

	mark_dom_snapshot_dirty(page)
	assert await capture_dom_state(page) is second

	# use_cache=False always recaptures
	collect.side_effect = None
	collect.return_value = first
	assert await capture_dom_state(page, use_cache=False) is first
	assert collect.await_count == 3


def test_snapshot_cache_dirty_flag():
	page = FakePage()
	assert is_dom_snapshot_dirty(page)

	store_dom_snapshot(page, A11yDOMState())
	assert not is_dom_snapshot_dirty(page)

	mark_dom_snapshot_dirty(page)
	assert is_dom_snapshot_dirty(page)
	assert get_cached_dom_state(page) is None


def test_recoverable_capture_errors():
	assert is_recoverable_capture_error(RuntimeError('Cannot find context with specified id'))
	assert is_recoverable_capture_error('Target closed')
	assert not is_recoverable_capture_error(ValueError('bad input'))
