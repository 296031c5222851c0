"""Cached steps that replay without resolving any element: navigation, waits, extraction."""

import json
import logging
from typing import TYPE_CHECKING, Any

from browser_replay.cache.views import ReplayStepMeta, TaskOutput, TaskStatus
from browser_replay.dom.dom_cache import mark_dom_snapshot_dirty
from browser_replay.dom.settle import wait_for_settled_dom
from browser_replay.replay.views import ExtractHook
from browser_replay.utils import format_unknown_error, parse_finite_number

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 1000
SUPPORTED_LOAD_STATES = frozenset({'load', 'domcontentloaded', 'networkidle'})
DEFAULT_LOAD_STATE = 'domcontentloaded'


def _meta(retries: int) -> ReplayStepMeta:
	return ReplayStepMeta(used_cached_action=True, fallback_used=False, retries=retries)


def _output(task_id: str, status: TaskStatus, output: Any, retries: int) -> TaskOutput:
	return TaskOutput(task_id=task_id, status=status, steps=[], output=output, replay_step_meta=_meta(retries))


def _first_present(*values: Any) -> Any:
	for value in values:
		if value is not None and value != '':
			return value
	return None


def _format_ms(value: float) -> str:
	return str(int(value)) if float(value).is_integer() else str(value)


def _normalize_wait_ms(value: Any) -> float:
	parsed = parse_finite_number(value)
	if parsed is None or parsed < 0:
		return DEFAULT_WAIT_MS
	return parsed


def _normalize_load_state(value: Any) -> str:
	if not isinstance(value, str):
		return DEFAULT_LOAD_STATE
	state = value.strip().lower()
	return state if state in SUPPORTED_LOAD_STATES else DEFAULT_LOAD_STATE


def _serialize_extracted(value: Any) -> str | None:
	if isinstance(value, str):
		return value
	if value is None:
		return None
	try:
		return json.dumps(value, separators=(',', ':'))
	except (TypeError, ValueError, RecursionError):
		return None


async def execute_replay_special_action(
	task_id: str,
	action_type: str,
	page: 'Page',
	instruction: str | None = None,
	arguments: list[Any] | None = None,
	action_params: dict[str, Any] | None = None,
	retries: int = 0,
	extract: ExtractHook | None = None,
) -> TaskOutput | None:
	"""Replay a step type that needs no element resolution.

	Args:
		task_id: Id reported on the returned TaskOutput
		action_type: Recorded action type
		page: Playwright page the replay runs on
		instruction: Recorded instruction; the objective for extract steps
		arguments: Recorded arguments; take precedence over `action_params`
		action_params: Recorded raw action params
		retries: Value reported as `replay_step_meta.retries`
		extract: Coroutine function used to replay extract steps

	Returns:
		The step's TaskOutput, or None when `action_type` is not a special action.
		Page errors from navigation, reload and waits propagate.
	"""
	args = list(arguments or [])
	params = action_params if isinstance(action_params, dict) else {}

	if action_type == 'goToUrl':
		raw_url = _first_present(args[0] if args else None, params.get('url'))
		url = raw_url.strip() if isinstance(raw_url, str) else ''
		if not url:
			return _output(task_id, TaskStatus.FAILED, 'Missing URL for goToUrl', retries)
		await page.goto(url, wait_until='domcontentloaded')
		await wait_for_settled_dom(page)
		mark_dom_snapshot_dirty(page)
		return _output(task_id, TaskStatus.COMPLETED, f'Navigated to {url}', retries)

	if action_type == 'complete':
		return _output(task_id, TaskStatus.COMPLETED, 'Task Complete', retries)

	if action_type == 'refreshPage':
		await page.reload(wait_until='domcontentloaded')
		await wait_for_settled_dom(page)
		mark_dom_snapshot_dirty(page)
		return _output(task_id, TaskStatus.COMPLETED, 'Page refreshed', retries)

	if action_type == 'wait':
		wait_ms = _normalize_wait_ms(_first_present(args[0] if args else None, params.get('duration')))
		await page.wait_for_timeout(wait_ms)
		mark_dom_snapshot_dirty(page)
		return _output(task_id, TaskStatus.COMPLETED, f'Waited {_format_ms(wait_ms)}ms', retries)

	if action_type == 'waitForLoadState':
		state = _normalize_load_state(_first_present(args[0] if args else None, params.get('state')))
		timeout = parse_finite_number(_first_present(args[1] if len(args) > 1 else None, params.get('timeout')))
		if timeout is not None and timeout >= 0:
			await page.wait_for_load_state(state, timeout=timeout)
		else:
			await page.wait_for_load_state(state)
		try:
			await wait_for_settled_dom(page)
		except Exception as e:
			logger.debug(f'Settling after waitForLoadState failed: {format_unknown_error(e)}')
		mark_dom_snapshot_dirty(page)
		return _output(task_id, TaskStatus.COMPLETED, f'Waited for load state: {state}', retries)

	if action_type == 'extract':
		objective = instruction.strip() if isinstance(instruction, str) else ''
		if not objective:
			return _output(task_id, TaskStatus.FAILED, 'Missing objective/instruction for extract action', retries)
		if extract is None:
			return _output(task_id, TaskStatus.FAILED, 'Extract replay is unavailable on this page instance.', retries)
		try:
			extracted = await extract(objective)
		except Exception as e:
			return _output(task_id, TaskStatus.FAILED, f'Extract failed: {format_unknown_error(e)}', retries)
		serialized = _serialize_extracted(extracted)
		if serialized is None:
			return _output(task_id, TaskStatus.FAILED, 'Extract failed: could not serialize extracted output', retries)
		return _output(task_id, TaskStatus.COMPLETED, serialized, retries)

	if action_type == 'analyzePdf':
		return _output(task_id, TaskStatus.FAILED, 'analyzePdf replay is not supported in run_from_action_cache.', retries)

	return None
