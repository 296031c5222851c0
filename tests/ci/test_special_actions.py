"""Replaying cached steps that need no element: navigation, waits, extraction."""

from unittest.mock import AsyncMock

import pytest

from browser_replay.cache.views import TaskStatus
from browser_replay.dom.dom_cache import is_dom_snapshot_dirty, store_dom_snapshot
from browser_replay.dom.views import A11yDOMState
from browser_replay.replay import special_actions
from browser_replay.replay.special_actions import execute_replay_special_action
from tests.ci.conftest import FakePage


@pytest.fixture(autouse=True)
def settle(monkeypatch):
	mock = AsyncMock()
	monkeypatch.setattr(special_actions, 'wait_for_settled_dom', mock)
	return mock


async def _run(action_type: str, page=None, **kwargs):
	return await execute_replay_special_action('task-1', action_type, page or FakePage(), **kwargs)


async def test_go_to_url_navigates_and_marks_snapshot_dirty(settle):
	page = FakePage()
	store_dom_snapshot(page, A11yDOMState())

	result = await _run('goToUrl', page, arguments=['  https://example.com/next  '], retries=1)

	page.goto.assert_awaited_once_with('https://example.com/next', wait_until='domcontentloaded')
	settle.assert_awaited_once_with(page)
	assert is_dom_snapshot_dirty(page)
	assert result.status == TaskStatus.COMPLETED
	assert result.output == 'Navigated to https://example.com/next'
	assert result.task_id == 'task-1'
	assert result.replay_step_meta.used_cached_action is True
	assert result.replay_step_meta.fallback_used is False
	assert result.replay_step_meta.retries == 1


async def test_go_to_url_reads_params_when_arguments_are_empty():
	page = FakePage()

	result = await _run('goToUrl', page, arguments=[], action_params={'url': 'https://example.com'})

	page.goto.assert_awaited_once_with('https://example.com', wait_until='domcontentloaded')
	assert result.status == TaskStatus.COMPLETED


async def test_go_to_url_without_url_fails():
	page = FakePage()

	result = await _run('goToUrl', page, arguments=['   '])

	assert result.status == TaskStatus.FAILED
	assert result.output == 'Missing URL for goToUrl'
	page.goto.assert_not_awaited()


async def test_navigation_errors_propagate():
	page = FakePage()
	page.goto.side_effect = RuntimeError('net::ERR_NAME_NOT_RESOLVED')

	with pytest.raises(RuntimeError, match='ERR_NAME_NOT_RESOLVED'):
		await _run('goToUrl', page, arguments=['https://nowhere.invalid'])


async def test_complete_and_refresh(settle):
	assert (await _run('complete')).output == 'Task Complete'

	page = FakePage()
	result = await _run('refreshPage', page)

	page.reload.assert_awaited_once_with(wait_until='domcontentloaded')
	settle.assert_awaited_once_with(page)
	assert result.output == 'Page refreshed'


async def test_wait_uses_recorded_duration():
	page = FakePage()

	result = await _run('wait', page, arguments=['250'])

	page.wait_for_timeout.assert_awaited_once_with(250.0)
	assert result.output == 'Waited 250ms'


@pytest.mark.parametrize('arguments', [[], ['-5'], ['soon']])
async def test_wait_defaults_to_one_second(arguments):
	page = FakePage()

	result = await _run('wait', page, arguments=arguments)

	page.wait_for_timeout.assert_awaited_once_with(1000)
	assert result.output == 'Waited 1000ms'


async def test_wait_for_load_state_normalizes_state_and_timeout():
	page = FakePage()

	result = await _run('waitForLoadState', page, arguments=['bogus', '3000'])

	page.wait_for_load_state.assert_awaited_once_with('domcontentloaded', timeout=3000.0)
	assert result.output == 'Waited for load state: domcontentloaded'


async def test_wait_for_load_state_without_timeout(settle):
	page = FakePage()
	settle.side_effect = RuntimeError('settle failed')

	result = await _run('waitForLoadState', page, action_params={'state': ' NetworkIdle '})

	page.wait_for_load_state.assert_awaited_once_with('networkidle')
	assert result.status == TaskStatus.COMPLETED
	assert result.output == 'Waited for load state: networkidle'


async def test_extract_serializes_hook_output():
	extract = AsyncMock(return_value={'price': 10, 'currency': 'EUR'})

	result = await _run('extract', instruction='  get the price ', extract=extract)

	extract.assert_awaited_once_with('get the price')
	assert result.status == TaskStatus.COMPLETED
	assert result.output == '{"price":10,"currency":"EUR"}'


async def test_extract_returns_text_unchanged():
	result = await _run('extract', instruction='summary', extract=AsyncMock(return_value='plain text'))
	assert result.output == 'plain text'


async def test_extract_failures():
	missing_instruction = await _run('extract', instruction='  ', extract=AsyncMock())
	assert missing_instruction.status == TaskStatus.FAILED
	assert missing_instruction.output == 'Missing objective/instruction for extract action'

	no_hook = await _run('extract', instruction='price')
	assert no_hook.output == 'Extract replay is unavailable on this page instance.'

	raised = await _run('extract', instruction='price', extract=AsyncMock(side_effect=RuntimeError('model timeout')))
	assert raised.status == TaskStatus.FAILED
	assert raised.output == 'Extract failed: model timeout'

	empty = await _run('extract', instruction='price', extract=AsyncMock(return_value=None))
	assert empty.output == 'Extract failed: could not serialize extracted output'

	unserializable = await _run('extract', instruction='price', extract=AsyncMock(return_value={'when': object()}))
	assert unserializable.output == 'Extract failed: could not serialize extracted output'


async def test_analyze_pdf_is_not_replayable():
	result = await _run('analyzePdf', instruction='read the pdf')

	assert result.status == TaskStatus.FAILED
	assert result.output == 'analyzePdf replay is not supported in run_from_action_cache.'


async def test_element_actions_are_not_special():
	assert await _run('actElement') is None
	assert await _run('teleport') is None
