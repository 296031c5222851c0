import json
import logging
import math
import re
import time
from collections.abc import Callable, Coroutine
from functools import wraps
from typing import Any, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec('P')
R = TypeVar('R')

MAX_DIAGNOSTIC_CHARS = 400
MAX_IDENTIFIER_CHARS = 128
CIRCULAR_MARKER = '[Circular]'

_WHITESPACE_RE = re.compile(r'\s+')


def sanitize_diagnostic_text(value: str) -> str:
	"""Replace control characters with spaces and collapse runs of whitespace."""
	if not value:
		return value
	without_control = ''.join(' ' if (ord(char) < 32 or ord(char) == 127) else char for char in value)
	return _WHITESPACE_RE.sub(' ', without_control).strip()


def truncate_diagnostic(value: str, max_chars: int = MAX_DIAGNOSTIC_CHARS) -> str:
	if len(value) <= max_chars:
		return value
	omitted = len(value) - max_chars
	return f'{value[:max_chars]}... [truncated {omitted} chars]'


def format_unknown_error(error: Any) -> str:
	"""Render anything that was raised or returned as an error into readable text."""
	if isinstance(error, BaseException):
		# Transports sometimes raise with a structured payload as the only argument
		if len(error.args) == 1 and isinstance(error.args[0], (dict, list)):
			return format_unknown_error(error.args[0])
		return str(error) or type(error).__name__
	if isinstance(error, str):
		return error
	if isinstance(error, (dict, list, tuple)):
		try:
			return safe_json_dumps(error)
		except (TypeError, ValueError):
			return repr(error)
	return str(error)


def format_diagnostic(value: Any, max_chars: int = MAX_DIAGNOSTIC_CHARS, fallback: str = 'unknown error') -> str:
	normalized = sanitize_diagnostic_text(format_unknown_error(value))
	if not normalized:
		return fallback
	return truncate_diagnostic(normalized, max_chars)


def format_identifier(value: Any, max_chars: int = MAX_IDENTIFIER_CHARS, fallback: str = 'unknown') -> str:
	if not isinstance(value, str):
		return fallback
	normalized = sanitize_diagnostic_text(value)
	if not normalized:
		return fallback
	return truncate_diagnostic(normalized, max_chars)


def to_json_safe(value: Any, _active: set[int] | None = None) -> Any:
	"""Copy arbitrary caller-supplied data into plain JSON types.

	Containers that are re-entered while already being copied are replaced with CIRCULAR_MARKER,
	so self-referential parameters never raise.
	"""
	if value is None or isinstance(value, (bool, int, str)):
		return value
	if isinstance(value, float):
		return value if math.isfinite(value) else None

	active = _active if _active is not None else set()
	if isinstance(value, (dict, list, tuple, set, frozenset)):
		marker = id(value)
		if marker in active:
			return CIRCULAR_MARKER
		active.add(marker)
		try:
			if isinstance(value, dict):
				return {str(key): to_json_safe(item, active) for key, item in value.items()}
			return [to_json_safe(item, active) for item in value]
		finally:
			active.discard(marker)

	model_dump = getattr(value, 'model_dump', None)
	if callable(model_dump):
		marker = id(value)
		if marker in active:
			return CIRCULAR_MARKER
		active.add(marker)
		try:
			return to_json_safe(model_dump(), active)
		finally:
			active.discard(marker)
	return str(value)


def safe_json_dumps(value: Any, **kwargs: Any) -> str:
	kwargs.setdefault('separators', (',', ':'))
	return json.dumps(to_json_safe(value), **kwargs)


def parse_finite_number(value: Any) -> float | None:
	"""Parse ints, floats and numeric strings; return None for anything non-finite or unparsable."""
	if isinstance(value, bool) or value is None:
		return None
	if isinstance(value, (int, float)):
		number = float(value)
	elif isinstance(value, str):
		try:
			number = float(value.strip())
		except ValueError:
			return None
	else:
		return None
	return number if math.isfinite(number) else None


def time_execution_async(
	additional_text: str = '',
) -> Callable[[Callable[P, Coroutine[Any, Any, R]]], Callable[P, Coroutine[Any, Any, R]]]:
	def decorator(func: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, Coroutine[Any, Any, R]]:
		@wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			start_time = time.time()
			result = await func(*args, **kwargs)
			execution_time = time.time() - start_time
			# Only log slow calls
			if execution_time > 0.25:
				logger.debug(f'⏳ {additional_text.strip("-")}() took {execution_time:.2f}s')
			return result

		return wrapper

	return decorator
