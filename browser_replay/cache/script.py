"""Export an action cache as a standalone Playwright script."""

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from browser_replay.utils import format_identifier, parse_finite_number, sanitize_diagnostic_text, truncate_diagnostic

logger = logging.getLogger(__name__)

MAX_SCRIPT_STEPS = 1000
MAX_SCRIPT_URL_CHARS = 2000
MAX_SCRIPT_TEXT_CHARS = 2000
DEFAULT_WAIT_MS = 1000
SUPPORTED_LOAD_STATES = ('load', 'domcontentloaded', 'networkidle')

INDENT = '\t\t'

# Element method -> helper exported by browser_replay.replay.helpers
SCRIPT_HELPERS: dict[str, str] = {
	'click': 'perform_click',
	'fill': 'perform_fill',
	'type': 'perform_type',
	'press': 'perform_press',
	'selectOptionFromDropdown': 'perform_select_option',
	'check': 'perform_check',
	'uncheck': 'perform_uncheck',
	'hover': 'perform_hover',
	'scrollToElement': 'perform_scroll_to_element',
	'scrollToPercentage': 'perform_scroll_to_percentage',
	'nextChunk': 'perform_next_chunk',
	'prevChunk': 'perform_prev_chunk',
}
_HELPERS_BY_LOWER = {method.lower(): helper for method, helper in SCRIPT_HELPERS.items()}
# Helpers taking the recorded value as their third positional argument
VALUE_METHODS = frozenset({'fill', 'type', 'press', 'selectOptionFromDropdown', 'scrollToPercentage'})
_VALUE_METHODS_LOWER = frozenset(method.lower() for method in VALUE_METHODS)

_FIELD_ALIASES = {
	'step_index': 'stepIndex',
	'action_type': 'actionType',
	'frame_index': 'frameIndex',
	'action_params': 'actionParams',
}


def _field(step: Any, name: str) -> Any:
	"""Read a field from an entry model or a raw (camelCase or snake_case) dict; unreadable fields are None."""
	try:
		if isinstance(step, dict):
			if name in step:
				return step[name]
			return step.get(_FIELD_ALIASES.get(name, name))
		return getattr(step, name, None)
	except Exception:
		return None


def _step_number(step: Any) -> float:
	value = _field(step, 'step_index')
	if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
		return math.inf
	return value


def _format_step_number(number: float) -> str:
	if not math.isfinite(number):
		return '-1'
	if float(number).is_integer():
		return str(int(number))
	return str(number)


def _format_number(value: float) -> str:
	return str(int(value)) if float(value).is_integer() else str(value)


def _clean_text(value: Any, max_chars: int = MAX_SCRIPT_TEXT_CHARS) -> str | None:
	if not isinstance(value, str):
		return None
	cleaned = sanitize_diagnostic_text(value)
	if not cleaned:
		return None
	return truncate_diagnostic(cleaned, max_chars)


def _arguments(step: Any) -> list[Any]:
	raw = _field(step, 'arguments')
	return list(raw) if isinstance(raw, (list, tuple)) else []


def _params(step: Any) -> dict[str, Any]:
	raw = _field(step, 'action_params')
	return raw if isinstance(raw, dict) else {}


def _first_present(*values: Any) -> Any:
	for value in values:
		if value is not None and value != '':
			return value
	return None


def _render_go_to_url(label: str, step: Any) -> list[str]:
	args = _arguments(step)
	url = _clean_text(args[0] if args else None, MAX_SCRIPT_URL_CHARS)
	if url is None:
		url = _clean_text(_params(step).get('url'), MAX_SCRIPT_URL_CHARS)
	if url is None:
		return [f'# Step {label} skipped: reason=missing url']
	return [f'# Step {label}', f'await page.goto({json.dumps(url)}, wait_until="domcontentloaded")']


def _render_wait(label: str, step: Any) -> list[str]:
	args = _arguments(step)
	duration = parse_finite_number(_first_present(args[0] if args else None, _params(step).get('duration')))
	if duration is None or duration < 0:
		duration = DEFAULT_WAIT_MS
	return [f'# Step {label}', f'await page.wait_for_timeout({_format_number(duration)})']


def _render_wait_for_load_state(label: str, step: Any) -> list[str]:
	args = _arguments(step)
	params = _params(step)
	raw_state = _first_present(args[0] if args else None, params.get('state'))
	state = raw_state.strip().lower() if isinstance(raw_state, str) else ''
	if state not in SUPPORTED_LOAD_STATES:
		state = 'domcontentloaded'
	timeout = parse_finite_number(_first_present(args[1] if len(args) > 1 else None, params.get('timeout')))
	if timeout is not None and timeout >= 0:
		call = f'await page.wait_for_load_state({json.dumps(state)}, timeout={_format_number(timeout)})'
	else:
		call = f'await page.wait_for_load_state({json.dumps(state)})'
	return [f'# Step {label}', call]


def _render_extract(label: str, step: Any) -> list[str]:
	instruction = _field(step, 'instruction')
	if not isinstance(instruction, str) or not instruction.strip():
		return [f'# Step {label} extract skipped: missing instruction']
	text = truncate_diagnostic(instruction.strip(), MAX_SCRIPT_TEXT_CHARS)
	return [f'# Step {label}', f'print(await extract(page, {json.dumps(text)}))']


def _render_element_step(label: str, step: Any, used_helpers: set[str]) -> list[str]:
	xpath = _field(step, 'xpath')
	if not isinstance(xpath, str) or not xpath.strip():
		return [f'# Step {label} skipped: reason=missing xpath']

	method = _field(step, 'method')
	normalized = method.strip().lower() if isinstance(method, str) else ''
	helper = _HELPERS_BY_LOWER.get(normalized)
	if helper is None:
		return [f'# Step {label} skipped: reason=unsupported method {format_identifier(method)}']
	used_helpers.add(helper)

	frame_index = _field(step, 'frame_index')
	if isinstance(frame_index, bool) or not isinstance(frame_index, int) or frame_index < 0:
		frame_index = 0
	instruction = _field(step, 'instruction')

	call = [f'await {helper}(', '\tpage,', f'\t{json.dumps(xpath.strip())},']
	if normalized in _VALUE_METHODS_LOWER:
		args = _arguments(step)
		value = '' if not args or args[0] is None else str(args[0])
		call.append(f'\t{json.dumps(value)},')
	call.append(f'\tframe_index={frame_index},')
	if isinstance(instruction, str) and instruction.strip():
		text = truncate_diagnostic(instruction.strip(), MAX_SCRIPT_TEXT_CHARS)
		call.append(f'\tinstruction={json.dumps(text)},')
	call.append(')')
	return [f'# Step {label}', *call]


def _render_step(step: Any, used_helpers: set[str]) -> list[str]:
	label = _format_step_number(_step_number(step))
	action_type = _field(step, 'action_type')

	if action_type == 'complete':
		return [f'# Step {label} (complete skipped in script)']
	if action_type == 'goToUrl':
		return _render_go_to_url(label, step)
	if action_type == 'refreshPage':
		return [f'# Step {label}', 'await page.reload(wait_until="domcontentloaded")']
	if action_type == 'wait':
		return _render_wait(label, step)
	if action_type == 'waitForLoadState':
		return _render_wait_for_load_state(label, step)
	if action_type == 'extract':
		return _render_extract(label, step)
	if action_type == 'analyzePdf':
		return [f'# Step {label} skipped: analyzePdf is not supported in scripts']
	if action_type == 'actElement':
		return _render_element_step(label, step, used_helpers)
	return [f'# Step {label} unsupported actionType={format_identifier(action_type)}']


def create_script_from_action_cache(steps: list[Any], task_id: str | None = None) -> str:
	"""Render cached steps as a runnable asyncio Playwright script.

	Element steps call the `perform_*` helpers from `browser_replay.replay.helpers`, which re-resolve the
	recorded XPath through CDP. Steps are emitted in ascending step order, at most MAX_SCRIPT_STEPS of them.

	Args:
		steps: ActionCacheEntry models or their dict form
		task_id: Source task id, written into the script header

	Returns:
		The script source
	"""
	ordered = sorted(list(steps or []), key=_step_number)
	rendered = ordered[:MAX_SCRIPT_STEPS]
	skipped = len(ordered) - len(rendered)

	used_helpers: set[str] = set()
	blocks = [_render_step(step, used_helpers) for step in rendered]
	if skipped > 0:
		blocks.append(
			[f'# Script truncated after {MAX_SCRIPT_STEPS} steps; {skipped} additional step(s) were skipped']
		)

	header_id = format_identifier(task_id, fallback='') if task_id else ''
	lines = [f'# Replay of cached task {header_id}' if header_id else '# Replay of a cached task', '']
	lines += ['import asyncio', '', 'from playwright.async_api import async_playwright']
	if used_helpers:
		lines += ['', f'from browser_replay.replay.helpers import {", ".join(sorted(used_helpers))}']
	lines += [
		'',
		'',
		'async def extract(page, instruction):',
		"\traise NotImplementedError(f'Extraction needs a model: {instruction}')",
		'',
		'',
		'async def main():',
		'\tasync with async_playwright() as playwright:',
		'\t\tbrowser = await playwright.chromium.launch(headless=False)',
		'\t\tpage = await browser.new_page()',
	]
	for block in blocks:
		lines.append('')
		lines += [f'{INDENT}{line}' for line in block]
	lines += [
		'',
		'\t\tawait browser.close()',
		'',
		'',
		"if __name__ == '__main__':",
		'\tasyncio.run(main())',
		'',
	]
	return '\n'.join(lines)


def write_script_from_action_cache(
	steps: list[Any],
	task_id: str | None = None,
	output_dir: str | Path | None = None,
) -> Path:
	"""Write the exported script to `<output_dir>/<task_id>/run_cached_actions.py` and return its path."""
	script = create_script_from_action_cache(steps, task_id=task_id)
	folder_name = format_identifier(task_id, fallback='') if task_id else ''
	if not folder_name or '/' in folder_name or folder_name.startswith('.'):
		folder_name = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S-%f')

	base = Path(output_dir) if output_dir is not None else Path.cwd() / 'action-cache-scripts'
	directory = base / folder_name
	directory.mkdir(parents=True, exist_ok=True)
	path = directory / 'run_cached_actions.py'
	path.write_text(script, encoding='utf-8')
	logger.info(f'📝 Wrote action cache script to {path}')
	return path
