from collections.abc import Awaitable, Callable
from typing import Any

from bubus import BaseEvent
from pydantic import BaseModel, ConfigDict, Field

from browser_replay.cache.views import ReplayStepResult, TaskOutput

PerformInstructionFallback = Callable[[str], Awaitable[TaskOutput]]
"""Runs an instruction through the full agent loop. Used when a cached step can no longer be replayed."""

ExtractHook = Callable[[str], Awaitable[Any]]
"""Extracts data from the current page for an objective."""

# Element methods replayable from a cached XPath
PAGE_ACTION_METHODS = (
	'click',
	'fill',
	'type',
	'press',
	'selectOptionFromDropdown',
	'check',
	'uncheck',
	'hover',
	'scrollToElement',
	'scrollToPercentage',
	'nextChunk',
	'prevChunk',
)
_PAGE_ACTION_METHODS_BY_LOWER = {method.lower(): method for method in PAGE_ACTION_METHODS}

SPECIAL_ACTION_TYPES = frozenset(
	{'goToUrl', 'refreshPage', 'wait', 'waitForLoadState', 'complete', 'extract', 'analyzePdf'}
)


def normalize_page_action_method(method: Any) -> str | None:
	"""Map a recorded method name to its canonical spelling, ignoring case and surrounding whitespace."""
	if not isinstance(method, str):
		return None
	return _PAGE_ACTION_METHODS_BY_LOWER.get(method.strip().lower())


class CachedActionInput(BaseModel):
	"""The parts of a cache entry needed to replay it."""

	model_config = ConfigDict(populate_by_name=True)

	action_type: str = Field(alias='actionType')
	xpath: str | None = None
	frame_index: int | None = Field(default=None, alias='frameIndex')
	method: str | None = None
	arguments: list[str | int | float] = Field(default_factory=list)
	action_params: dict[str, Any] | None = Field(default=None, alias='actionParams')


class ReplayStepCompletedEvent(BaseEvent[None]):
	"""Dispatched after every recorded step of a replay, including the failing one."""

	replay_id: str
	source_task_id: str
	step: ReplayStepResult


class ReplayFinishedEvent(BaseEvent[None]):
	replay_id: str
	source_task_id: str
	status: str
	step_count: int
