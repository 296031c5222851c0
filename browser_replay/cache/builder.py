"""Turn one executed agent step into a serializable action cache entry."""

import logging
from typing import Any

from browser_replay.cache.views import (
	ActionCacheEntry,
	ActionOutput,
	action_params_record,
	parse_agent_action,
)
from browser_replay.dom.views import A11yDOMState, is_encoded_id, parse_frame_index
from browser_replay.locator.element_locator import strip_text_node_selector
from browser_replay.utils import (
	format_identifier,
	format_unknown_error,
	sanitize_diagnostic_text,
	to_json_safe,
	truncate_diagnostic,
)

logger = logging.getLogger(__name__)

MAX_ACTION_TYPE_CHARS = 128
MAX_INSTRUCTION_CHARS = 2000
MAX_MESSAGE_CHARS = 4000
MAX_XPATH_CHARS = 4000
MAX_ARGUMENTS = 20
MAX_ARGUMENT_CHARS = 2000


def _read(value: Any, key: str) -> Any:
	# Recorded objects may expose properties that raise; treat those as absent
	try:
		if isinstance(value, dict):
			return value.get(key)
		return getattr(value, key, None)
	except Exception:
		return None


def _normalize_instruction(action_type: str, params: dict[str, Any]) -> str | None:
	if action_type == 'extract':
		raw = params.get('objective')
	else:
		raw = params.get('instruction')
	if not isinstance(raw, str) or not raw.strip():
		return None
	return truncate_diagnostic(raw, MAX_INSTRUCTION_CHARS)


def _normalize_arguments(action_type: str, params: dict[str, Any]) -> list[str]:
	raw = params.get('arguments')
	arguments: list[str] = []
	if isinstance(raw, list):
		window = raw[:MAX_ARGUMENTS]
		# Mixed payloads are not replayable, so drop them entirely
		if all(isinstance(item, (str, int, float)) and not isinstance(item, bool) for item in window):
			arguments = [truncate_diagnostic(str(item), MAX_ARGUMENT_CHARS) for item in window]

	if action_type == 'goToUrl' and not arguments:
		url = params.get('url')
		if isinstance(url, str):
			arguments = [truncate_diagnostic(url, MAX_ARGUMENT_CHARS)]
	return arguments


def _normalize_element_id(params: dict[str, Any]) -> str | None:
	raw = params.get('elementId')
	if not isinstance(raw, str) or not raw.strip():
		return None
	return format_identifier(raw.strip())


def _normalize_method(params: dict[str, Any]) -> str | None:
	raw = params.get('method')
	if not isinstance(raw, str) or not raw.strip():
		return None
	return format_identifier(raw.strip())


def _lookup_xpath(element_id: str | None, action_output: Any, dom_state: A11yDOMState | None) -> str | None:
	xpath: Any = None
	if dom_state is not None and is_encoded_id(element_id):
		xpath = dom_state.xpath_map.get(element_id)

	if not isinstance(xpath, str) or not xpath.strip():
		debug = _read(action_output, 'debug')
		metadata = _read(debug, 'elementMetadata') if debug is not None else None
		xpath = _read(metadata, 'xpath') if metadata is not None else None

	if not isinstance(xpath, str):
		return None
	stripped = strip_text_node_selector(xpath)
	if not stripped:
		return None
	return truncate_diagnostic(stripped, MAX_XPATH_CHARS)


def _normalize_message(raw: Any) -> str:
	try:
		text = raw if isinstance(raw, str) else format_unknown_error(raw) if raw is not None else ''
	except Exception:
		text = ''
	normalized = sanitize_diagnostic_text(text)
	if not normalized:
		return 'unknown error'
	return truncate_diagnostic(normalized, MAX_MESSAGE_CHARS)


def build_action_cache_entry(
	step_index: int,
	action: Any,
	action_output: ActionOutput | dict[str, Any] | None,
	dom_state: A11yDOMState | None,
) -> ActionCacheEntry:
	"""Build the cache entry for one executed step.

	Never raises: malformed actions become `unknown` entries and oversized fields are truncated.

	Args:
		step_index: Position of the step in the agent run
		action: The action the agent executed, as a model or raw dict
		action_output: What executing the action reported
		dom_state: The snapshot the action's element id refers to

	Returns:
		ActionCacheEntry ready to be appended to an ActionCacheOutput
	"""
	parsed = parse_agent_action(action)
	action_type = format_identifier(parsed.type, max_chars=MAX_ACTION_TYPE_CHARS, fallback='unknown')
	params = action_params_record(parsed)

	instruction = _normalize_instruction(action_type, params)
	element_id = _normalize_element_id(params)
	method = _normalize_method(params)
	arguments = _normalize_arguments(action_type, params)
	xpath = _lookup_xpath(element_id, action_output, dom_state)

	frame_index = parse_frame_index(element_id) if is_encoded_id(element_id) else None

	action_params = to_json_safe(params)
	success = _read(action_output, 'success')

	if action_type == 'actElement' and xpath is None:
		logger.debug(f'No xpath recorded for step {step_index} element {element_id}')

	return ActionCacheEntry(
		step_index=step_index,
		instruction=instruction,
		element_id=element_id,
		method=method,
		arguments=arguments,
		action_params=action_params if isinstance(action_params, dict) else None,
		frame_index=frame_index,
		xpath=xpath,
		action_type=action_type,
		success=success if isinstance(success, bool) else False,
		message=_normalize_message(_read(action_output, 'message')),
	)
