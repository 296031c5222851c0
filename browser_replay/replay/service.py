"""Replay a recorded action cache against a live page without calling the LLM."""

import logging
import math
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from bubus import EventBus
from uuid_extensions import uuid7str

from browser_replay.cache.views import (
	ActionCacheEntry,
	ActionCacheOutput,
	ActionCacheReplayResult,
	ReplayStepMeta,
	ReplayStepResult,
	TaskOutput,
	TaskStatus,
)
from browser_replay.config import CONFIG
from browser_replay.replay.helpers import dispatch_perform_helper
from browser_replay.replay.special_actions import execute_replay_special_action
from browser_replay.replay.views import (
	SPECIAL_ACTION_TYPES,
	ExtractHook,
	PerformInstructionFallback,
	ReplayFinishedEvent,
	ReplayStepCompletedEvent,
	normalize_page_action_method,
)
from browser_replay.utils import (
	format_diagnostic,
	format_identifier,
	format_unknown_error,
	sanitize_diagnostic_text,
	truncate_diagnostic,
)

if TYPE_CHECKING:
	from playwright.async_api import Page

logger = logging.getLogger(__name__)

MAX_REPLAY_STEPS = 1000
MAX_REPLAY_MESSAGE_CHARS = 4000
STOPPED_MESSAGE = 'Replay stopped because agent was closed'
UNKNOWN_TASK_ID = 'unknown-task'


def _step_sort_key(entry: ActionCacheEntry) -> float:
	value = entry.step_index
	return value if math.isfinite(value) else math.inf


def _reported_step_index(entry: ActionCacheEntry) -> int | float:
	value = entry.step_index
	if not math.isfinite(value):
		return -1
	return int(value) if float(value).is_integer() else value


def _normalize_message(output: Any, success: bool) -> str:
	if output is None:
		return 'Completed' if success else 'Failed to execute cached action'
	text = output if isinstance(output, str) else format_unknown_error(output)
	if not text:
		return ''
	return truncate_diagnostic(sanitize_diagnostic_text(text), MAX_REPLAY_MESSAGE_CHARS)


def _clean(value: str | None) -> str | None:
	if not isinstance(value, str):
		return None
	stripped = value.strip()
	return stripped or None


class ReplayEngine:
	"""Replays ActionCacheOutput steps in order on one page.

	Steps run strictly one at a time. `close()` may be called from another task: the step that is running
	finishes, the next one is recorded as stopped and nothing else touches the page.
	"""

	def __init__(
		self,
		event_bus: EventBus | None = None,
		debug: bool | None = None,
		extract: ExtractHook | None = None,
		debug_dir: str | Path | None = None,
	):
		self.event_bus = event_bus
		self.debug = CONFIG.BROWSER_REPLAY_DEBUG if debug is None else debug
		self.extract = extract
		self.debug_dir = Path(debug_dir) if debug_dir is not None else Path('debug') / 'action-cache'
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	def close(self) -> None:
		if not self._closed:
			logger.info('🛑 Replay engine closed, remaining steps will be skipped')
		self._closed = True

	async def run_from_action_cache(
		self,
		cache: ActionCacheOutput | dict[str, Any],
		page: 'Page | Callable[[], Page]',
		max_xpath_retries: int | None = None,
		perform_instruction_fallback: PerformInstructionFallback | None = None,
	) -> ActionCacheReplayResult:
		"""Replay every cached step in step order, stopping at the first failure.

		Args:
			cache: Recorded action cache, as a model or its JSON dict
			page: The page, or a zero-argument callable returning the page to use for each step
			max_xpath_retries: Structural attempts per element step before falling back
			perform_instruction_fallback: Runs a step's instruction through the agent when it cannot be replayed
				structurally

		Returns:
			ActionCacheReplayResult whose status is COMPLETED only if every step succeeded
		"""
		replay_id = uuid7str()
		max_steps = CONFIG.XPATH_RETRIES if max_xpath_retries is None else max_xpath_retries
		source_task_id = self._read_task_id(cache)
		results: list[ReplayStepResult] = []

		try:
			entries = self._read_steps(cache)
		except Exception as e:
			results.append(
				ReplayStepResult(
					step_index=-1,
					action_type='cache-read',
					success=False,
					message=f'Failed to read cached steps: {format_diagnostic(e)}',
				)
			)
			return await self._finish(replay_id, source_task_id, results, TaskStatus.FAILED)

		ordered = sorted(entries, key=_step_sort_key)
		limited = ordered[:MAX_REPLAY_STEPS]
		skipped = len(ordered) - len(limited)
		status = TaskStatus.COMPLETED

		for position, entry in enumerate(limited):
			if self._closed:
				results.append(self._stopped_result(entry))
				self._emit_step(replay_id, source_task_id, results[-1])
				status = TaskStatus.FAILED
				break

			step_result = await self._replay_step(entry, position, page, max_steps, perform_instruction_fallback)
			results.append(step_result)
			self._emit_step(replay_id, source_task_id, step_result)
			if not step_result.success:
				status = TaskStatus.FAILED
				break
		else:
			if skipped > 0 and self._closed:
				results.append(self._stopped_result(ordered[MAX_REPLAY_STEPS]))
				self._emit_step(replay_id, source_task_id, results[-1])
				status = TaskStatus.FAILED
			elif skipped > 0:
				results.append(
					ReplayStepResult(
						step_index=MAX_REPLAY_STEPS,
						action_type='replay-limit',
						success=False,
						message=(
							f'Replay truncated after {MAX_REPLAY_STEPS} steps; '
							f'{skipped} additional step(s) were skipped'
						),
					)
				)
				self._emit_step(replay_id, source_task_id, results[-1])
				status = TaskStatus.FAILED

		return await self._finish(replay_id, source_task_id, results, status)

	# --- step dispatch ---------------------------------------------------------

	async def _replay_step(
		self,
		entry: ActionCacheEntry,
		position: int,
		page: Any,
		max_steps: int,
		perform_instruction_fallback: PerformInstructionFallback | None,
	) -> ReplayStepResult:
		action_type = entry.action_type
		method = normalize_page_action_method(entry.method)
		xpath = _clean(entry.xpath)
		instruction = _clean(entry.instruction)
		is_special = action_type in SPECIAL_ACTION_TYPES
		uses_helper = not is_special and method is not None and xpath is not None
		used_xpath = False

		try:
			current_page = self._resolve_page(page)
			if is_special:
				result = await execute_replay_special_action(
					task_id=uuid7str(),
					action_type=action_type,
					page=current_page,
					instruction=entry.instruction,
					arguments=list(entry.arguments),
					action_params=entry.action_params,
					retries=1,
					extract=self.extract,
				)
				used_xpath = True
			elif uses_helper:
				if self.debug:
					logger.debug(f'Replaying step {position} via {method} on {xpath}')
				result = await dispatch_perform_helper(
					current_page,
					method,
					xpath,
					entry.arguments[0] if entry.arguments else None,
					frame_index=entry.frame_index or 0,
					instruction=instruction,
					max_steps=max_steps,
					debug=self.debug,
					perform_fallback=perform_instruction_fallback if instruction else None,
				)
				used_xpath = True
			elif instruction is not None and perform_instruction_fallback is not None:
				result = TaskOutput.model_validate(await perform_instruction_fallback(instruction))
				meta = result.replay_step_meta or ReplayStepMeta(used_cached_action=False, retries=0)
				result = result.model_copy(update={'replay_step_meta': meta.model_copy(update={'fallback_used': True})})
				return self._to_step_result(entry, result, used_xpath=False)
			elif instruction is not None:
				result = TaskOutput(
					status=TaskStatus.FAILED,
					output=f'No instruction fallback configured to replay action type "{format_identifier(action_type)}"',
				)
			else:
				result = TaskOutput(
					status=TaskStatus.FAILED,
					output=f'Cannot replay action type "{format_identifier(action_type)}" without XPath or instruction',
				)
		except Exception as e:
			# Special and helper steps count as structural replay even when they blow up
			return ReplayStepResult(
				step_index=_reported_step_index(entry),
				action_type=format_identifier(action_type),
				used_xpath=is_special or uses_helper,
				success=False,
				message=f'Replay step {position} failed: {format_diagnostic(e)}',
			)

		if result is None:
			result = TaskOutput(status=TaskStatus.FAILED, output='Unsupported cached action')
		meta_used_xpath = bool(result.replay_step_meta and result.replay_step_meta.used_cached_action)
		return self._to_step_result(entry, result, used_xpath=used_xpath and meta_used_xpath)

	def _to_step_result(self, entry: ActionCacheEntry, result: TaskOutput, used_xpath: bool) -> ReplayStepResult:
		meta = result.replay_step_meta
		success = result.status == TaskStatus.COMPLETED
		return ReplayStepResult(
			step_index=_reported_step_index(entry),
			action_type=format_identifier(entry.action_type),
			used_xpath=used_xpath,
			fallback_used=bool(meta and meta.fallback_used),
			cached_xpath=meta.cached_xpath if meta else None,
			fallback_xpath=meta.fallback_xpath if meta else None,
			fallback_element_id=meta.fallback_element_id if meta else None,
			retries=(meta.retries or 0) if meta else 0,
			success=success,
			message=_normalize_message(result.output, success),
		)

	def _stopped_result(self, entry: ActionCacheEntry) -> ReplayStepResult:
		return ReplayStepResult(
			step_index=_reported_step_index(entry),
			action_type=format_identifier(entry.action_type),
			success=False,
			message=STOPPED_MESSAGE,
		)

	# --- input reading ---------------------------------------------------------

	@staticmethod
	def _resolve_page(page: Any) -> Any:
		# Playwright pages are not callable; anything else callable is a page getter
		if callable(page) and not hasattr(page, 'goto'):
			return page()
		return page

	@staticmethod
	def _read_task_id(cache: Any) -> str:
		try:
			value = cache.get('taskId', cache.get('task_id')) if isinstance(cache, dict) else cache.task_id
		except Exception:
			return UNKNOWN_TASK_ID
		if not isinstance(value, str) or not value.strip():
			return UNKNOWN_TASK_ID
		return format_identifier(value.strip(), fallback=UNKNOWN_TASK_ID)

	@staticmethod
	def _read_steps(cache: Any) -> list[ActionCacheEntry]:
		raw_steps = cache.get('steps') if isinstance(cache, dict) else cache.steps
		if raw_steps is None:
			return []
		return [step if isinstance(step, ActionCacheEntry) else ActionCacheEntry.model_validate(step) for step in raw_steps]

	# --- reporting -------------------------------------------------------------

	def _emit_step(self, replay_id: str, source_task_id: str, step: ReplayStepResult) -> None:
		if self.event_bus is None:
			return
		self.event_bus.dispatch(ReplayStepCompletedEvent(replay_id=replay_id, source_task_id=source_task_id, step=step))

	async def _finish(
		self,
		replay_id: str,
		source_task_id: str,
		results: list[ReplayStepResult],
		status: TaskStatus,
	) -> ActionCacheReplayResult:
		replay = ActionCacheReplayResult(replay_id=replay_id, source_task_id=source_task_id, steps=results, status=status)
		if self.event_bus is not None:
			self.event_bus.dispatch(
				ReplayFinishedEvent(
					replay_id=replay_id, source_task_id=source_task_id, status=status.value, step_count=len(results)
				)
			)
		if self.debug and not self._closed:
			self._write_debug_artifact(replay)
		logger.info(f'🔁 Replay {replay_id} of task {source_task_id} finished: {status.value} ({len(results)} steps)')
		return replay

	def _write_debug_artifact(self, replay: ActionCacheReplayResult) -> None:
		try:
			self.debug_dir.mkdir(parents=True, exist_ok=True)
			path = self.debug_dir / f'replay-{replay.replay_id}.json'
			path.write_text(replay.model_dump_json(by_alias=True, indent=2), encoding='utf-8')
		except Exception as e:
			logger.error(f'Failed to write replay debug artifact: {format_diagnostic(e)}')
