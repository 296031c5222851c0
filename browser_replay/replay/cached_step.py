"""Replay one cached step, re-resolving its element from the recorded XPath through CDP."""

import logging
import math
from typing import TYPE_CHECKING, Any

from uuid_extensions import uuid7str

from browser_replay.cache.views import ActionOutput, ReplayStepMeta, TaskOutput, TaskStatus
from browser_replay.cdp.interactions import ResolvedElement, dispatch_cdp_action
from browser_replay.cdp.views import CDPClient
from browser_replay.dom.dom_cache import mark_dom_snapshot_dirty
from browser_replay.dom.settle import wait_for_settled_dom
from browser_replay.dom.views import create_encoded_id
from browser_replay.locator.xpath_resolver import resolve_xpath_with_cdp
from browser_replay.replay.special_actions import execute_replay_special_action
from browser_replay.replay.views import CachedActionInput, ExtractHook, PerformInstructionFallback
from browser_replay.runtime_context import initialize_runtime_context
from browser_replay.utils import format_unknown_error

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 3


def normalize_max_steps(value: Any) -> int:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return 1
	if not math.isfinite(value) or value <= 0:
		return 1
	return max(1, math.floor(value))


async def run_cached_attempt(
	page: 'Page',
	instruction: str,
	cached_action: CachedActionInput,
	debug: bool = False,
	cdp_client: CDPClient | None = None,
) -> ActionOutput:
	"""One replay attempt: settle, resolve the XPath against the live DOM and perform the method.

	Raises whatever resolution raises; a failed interaction is reported as an unsuccessful ActionOutput.
	"""
	await wait_for_settled_dom(page, cdp_client=cdp_client)
	context = await initialize_runtime_context(page, debug=debug, cdp_client=cdp_client)
	frame_index = cached_action.frame_index or 0
	xpath = cached_action.xpath or ''
	resolved = await resolve_xpath_with_cdp(
		xpath,
		frame_index,
		context.cdp_client,
		frame_context_manager=context.frame_context_manager,
		debug=debug,
	)

	encoded_id = create_encoded_id(frame_index, resolved.backend_node_id)

	method_args = ['' if value is None else str(value) for value in cached_action.arguments]
	element = ResolvedElement(
		session=resolved.session,
		backend_node_id=resolved.backend_node_id,
		object_id=resolved.object_id,
		xpath=xpath,
	)
	try:
		await dispatch_cdp_action(cached_action.method or '', method_args, element)
	except Exception as e:
		if debug:
			logger.warning(f'Cached {cached_action.method} on {encoded_id} failed: {format_unknown_error(e)}')
		return ActionOutput(success=False, message=f'Failed to execute {cached_action.method}: {format_unknown_error(e)}')

	return ActionOutput(success=True, message=f'Successfully executed: {instruction}')


async def run_cached_step(
	page: 'Page',
	instruction: str,
	cached_action: CachedActionInput,
	max_steps: int | float = DEFAULT_MAX_STEPS,
	debug: bool = False,
	perform_fallback: PerformInstructionFallback | None = None,
	extract: ExtractHook | None = None,
	cdp_client: CDPClient | None = None,
) -> TaskOutput:
	"""Replay a cached step without the LLM, falling back to `perform_fallback` once every attempt failed.

	Special action types are dispatched directly. `actElement` steps with an xpath and method get up to
	`max_steps` structural attempts (non-positive or non-finite values mean one).

	Args:
		page: Playwright page to act on
		instruction: The instruction the step was recorded for
		cached_action: Replayable parts of the cache entry
		max_steps: Structural attempts before falling back
		debug: Log attempt and fallback details
		perform_fallback: Runs the instruction through the agent when structural replay fails
		extract: Replays extract steps
		cdp_client: CDP client to use instead of the page's shared one

	Returns:
		TaskOutput with `replay_step_meta` describing how the step was replayed
	"""
	task_id = uuid7str()
	attempts = normalize_max_steps(max_steps)
	cached_xpath = cached_action.xpath

	try:
		special = await execute_replay_special_action(
			task_id=task_id,
			action_type=cached_action.action_type,
			page=page,
			instruction=instruction,
			arguments=list(cached_action.arguments),
			action_params=cached_action.action_params,
			retries=1,
			extract=extract,
		)
	except Exception as e:
		return TaskOutput(
			task_id=task_id,
			status=TaskStatus.FAILED,
			output=f'Failed to execute cached special action: {format_unknown_error(e)}',
			replay_step_meta=ReplayStepMeta(
				used_cached_action=True, fallback_used=False, retries=1, cached_xpath=cached_xpath
			),
		)
	if special is not None:
		return special

	if cached_action.action_type != 'actElement' or not cached_action.xpath or not cached_action.method:
		return TaskOutput(task_id=task_id, status=TaskStatus.FAILED, output='Unsupported cached action')

	last_error: Any = None
	for attempt in range(1, attempts + 1):
		try:
			result = await run_cached_attempt(page, instruction, cached_action, debug=debug, cdp_client=cdp_client)
		except Exception as e:
			last_error = e
			if debug:
				logger.debug(f'Cached attempt {attempt}/{attempts} failed: {format_unknown_error(e)}')
			continue

		if not result.success:
			last_error = result.message
			continue

		await wait_for_settled_dom(page, cdp_client=cdp_client)
		mark_dom_snapshot_dirty(page)
		return TaskOutput(
			task_id=task_id,
			status=TaskStatus.COMPLETED,
			output=f'Executed cached action: {instruction}',
			replay_step_meta=ReplayStepMeta(
				used_cached_action=True, fallback_used=False, retries=attempt, cached_xpath=cached_xpath
			),
		)

	if perform_fallback is not None:
		try:
			fallback = TaskOutput.model_validate(await perform_fallback(instruction))
		except Exception as e:
			fallback = TaskOutput(
				task_id=task_id,
				status=TaskStatus.FAILED,
				output=f'Fallback perform failed: {format_unknown_error(e)}',
			)
		if debug:
			resolved_xpath = fallback.replay_step_meta.fallback_xpath if fallback.replay_step_meta else None
			logger.warning(
				f'⚠️ Cached action failed, fell back to the agent. instruction="{instruction}" '
				f'cached_xpath="{cached_xpath or "N/A"}" resolved_xpath="{resolved_xpath or "N/A"}"'
			)
		previous_meta = fallback.replay_step_meta
		return fallback.model_copy(
			update={
				'replay_step_meta': ReplayStepMeta(
					used_cached_action=True,
					fallback_used=True,
					retries=attempts,
					cached_xpath=cached_xpath,
					fallback_xpath=previous_meta.fallback_xpath if previous_meta else None,
					fallback_element_id=previous_meta.fallback_element_id if previous_meta else None,
				)
			}
		)

	return TaskOutput(
		task_id=task_id,
		status=TaskStatus.FAILED,
		output=format_unknown_error(last_error) if last_error is not None else 'Failed to execute cached action',
		replay_step_meta=ReplayStepMeta(
			used_cached_action=True, fallback_used=False, retries=attempts, cached_xpath=cached_xpath
		),
	)
