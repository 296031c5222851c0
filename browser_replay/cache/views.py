"""Action cache data models. Serialized with camelCase aliases so cache files stay stable across processes."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from uuid_extensions import uuid7str

from browser_replay.utils import format_identifier, format_unknown_error

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
	PENDING = 'pending'
	RUNNING = 'running'
	PAUSED = 'paused'
	CANCELLED = 'cancelled'
	COMPLETED = 'completed'
	FAILED = 'failed'


class ActionCacheEntry(BaseModel):
	"""One executed agent step, as needed to replay it without the LLM."""

	model_config = ConfigDict(frozen=True, populate_by_name=True)

	step_index: int | float = Field(alias='stepIndex')
	instruction: str | None = None
	element_id: str | None = Field(default=None, alias='elementId')
	method: str | None = None
	arguments: list[str | int | float] = Field(default_factory=list)
	action_params: dict[str, Any] | None = Field(default=None, alias='actionParams')
	frame_index: int | None = Field(default=None, alias='frameIndex')
	xpath: str | None = None
	action_type: str = Field(alias='actionType')
	success: bool = False
	message: str = ''


class ActionCacheOutput(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	task_id: str = Field(default_factory=uuid7str, alias='taskId')
	created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat(), alias='createdAt')
	status: TaskStatus | None = None
	steps: list[ActionCacheEntry] = Field(default_factory=list)


class ReplayStepMeta(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	used_cached_action: bool = Field(default=False, alias='usedCachedAction')
	fallback_used: bool = Field(default=False, alias='fallbackUsed')
	retries: int | None = None
	cached_xpath: str | None = Field(default=None, alias='cachedXPath')
	fallback_xpath: str | None = Field(default=None, alias='fallbackXPath')
	fallback_element_id: str | None = Field(default=None, alias='fallbackElementId')


class TaskOutput(BaseModel):
	"""Result of one replayed step, or of one fallback agent run."""

	model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

	task_id: str = Field(default_factory=uuid7str, alias='taskId')
	status: TaskStatus | None = None
	steps: list[Any] = Field(default_factory=list)
	output: Any = None
	action_cache: ActionCacheOutput | None = Field(default=None, alias='actionCache')
	replay_step_meta: ReplayStepMeta | None = Field(default=None, alias='replayStepMeta')


class ReplayStepResult(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	step_index: int | float = Field(alias='stepIndex')
	action_type: str = Field(alias='actionType')
	used_xpath: bool = Field(default=False, alias='usedXPath')
	fallback_used: bool = Field(default=False, alias='fallbackUsed')
	cached_xpath: str | None = Field(default=None, alias='cachedXPath')
	fallback_xpath: str | None = Field(default=None, alias='fallbackXPath')
	fallback_element_id: str | None = Field(default=None, alias='fallbackElementId')
	retries: int = 0
	success: bool = False
	message: str = ''


class ActionCacheReplayResult(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	replay_id: str = Field(default_factory=uuid7str, alias='replayId')
	source_task_id: str = Field(alias='sourceTaskId')
	steps: list[ReplayStepResult] = Field(default_factory=list)
	status: Literal[TaskStatus.COMPLETED, TaskStatus.FAILED]


class ActionOutput(BaseModel):
	"""What an executed agent action reported."""

	model_config = ConfigDict(extra='allow')

	success: bool = False
	message: str = ''
	extract: Any = None
	debug: dict[str, Any] | None = None


# --- agent actions ---------------------------------------------------------


class _ActionParams(BaseModel):
	model_config = ConfigDict(extra='allow', populate_by_name=True)


class GoToUrlParams(_ActionParams):
	url: str


class WaitParams(_ActionParams):
	reason: str | None = None
	duration: float | None = None


class WaitForLoadStateParams(_ActionParams):
	state: str | None = None
	timeout: float | None = None


class CompleteParams(_ActionParams):
	success: bool | None = None
	text: str | None = None


class ExtractParams(_ActionParams):
	objective: str


class ActElementParams(_ActionParams):
	instruction: str
	element_id: str = Field(alias='elementId', min_length=1)
	method: str
	arguments: list[Any] = Field(default_factory=list)
	confidence: float | None = Field(default=None, ge=0, le=1)


class AnalyzePdfParams(_ActionParams):
	instruction: str | None = None
	url: str | None = None


class GoToUrlAction(BaseModel):
	type: Literal['goToUrl']
	params: GoToUrlParams


class RefreshPageAction(BaseModel):
	type: Literal['refreshPage']
	params: _ActionParams = Field(default_factory=_ActionParams)


class WaitAction(BaseModel):
	type: Literal['wait']
	params: WaitParams = Field(default_factory=WaitParams)


class WaitForLoadStateAction(BaseModel):
	type: Literal['waitForLoadState']
	params: WaitForLoadStateParams = Field(default_factory=WaitForLoadStateParams)


class CompleteAction(BaseModel):
	type: Literal['complete']
	params: CompleteParams = Field(default_factory=CompleteParams)


class ExtractAction(BaseModel):
	type: Literal['extract']
	params: ExtractParams


class ActElementAction(BaseModel):
	type: Literal['actElement']
	params: ActElementParams


class AnalyzePdfAction(BaseModel):
	type: Literal['analyzePdf']
	params: AnalyzePdfParams = Field(default_factory=AnalyzePdfParams)


class UnknownAgentAction(BaseModel):
	"""Anything that did not match a known action shape. `params` is kept as given."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	type: str = 'unknown'
	params: Any = None


KnownAgentAction = Annotated[
	GoToUrlAction
	| RefreshPageAction
	| WaitAction
	| WaitForLoadStateAction
	| CompleteAction
	| ExtractAction
	| ActElementAction
	| AnalyzePdfAction,
	Field(discriminator='type'),
]

AgentAction = (
	GoToUrlAction
	| RefreshPageAction
	| WaitAction
	| WaitForLoadStateAction
	| CompleteAction
	| ExtractAction
	| ActElementAction
	| AnalyzePdfAction
	| UnknownAgentAction
)

_known_action_adapter: TypeAdapter = TypeAdapter(KnownAgentAction)
_ACTION_MODELS = (
	GoToUrlAction,
	RefreshPageAction,
	WaitAction,
	WaitForLoadStateAction,
	CompleteAction,
	ExtractAction,
	ActElementAction,
	AnalyzePdfAction,
	UnknownAgentAction,
)


def _read(value: Any, key: str) -> Any:
	# Recorded objects may expose properties that raise; treat those as absent
	try:
		if isinstance(value, dict):
			return value.get(key)
		return getattr(value, key, None)
	except Exception:
		return None


def parse_agent_action(raw: Any) -> AgentAction:
	"""Parse a recorded action into its typed shape. Never raises; malformed input becomes UnknownAgentAction."""
	if isinstance(raw, _ACTION_MODELS):
		return raw

	try:
		candidate = raw.model_dump(by_alias=True) if isinstance(raw, BaseModel) else raw
		if isinstance(candidate, dict):
			return _known_action_adapter.validate_python(candidate)
	except (ValidationError, RecursionError, TypeError, ValueError):
		pass
	except Exception as e:
		logger.debug(f'Could not read recorded action: {format_unknown_error(e)}')

	action_type = _read(raw, 'type')
	params = _read(raw, 'params')
	return UnknownAgentAction(
		type=format_identifier(action_type, fallback='unknown'),
		params=params if isinstance(params, dict) else None,
	)


def action_params_record(action: AgentAction) -> dict[str, Any]:
	"""Params of a parsed action as a plain dict with the original camelCase keys."""
	params = action.params
	if isinstance(params, BaseModel):
		# Read attributes directly; serializing would choke on self-referencing extras
		record: dict[str, Any] = {}
		for name, field in type(params).model_fields.items():
			if name in params.model_fields_set:
				record[field.alias or name] = getattr(params, name)
		record.update(params.model_extra or {})
		return record
	if isinstance(params, dict):
		return params
	return {}
