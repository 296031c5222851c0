"""Turn a recorded XPath back into a live backend node id through CDP."""

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

from browser_replay.cdp.frame_context import FrameContextManager, build_frame_diagnostics, find_frame_id_for_index
from browser_replay.cdp.views import CDPClient, CDPSession
from browser_replay.exceptions import ElementNotFoundError, FrameResolutionError, ProtocolError
from browser_replay.utils import format_diagnostic

logger = logging.getLogger(__name__)


@dataclass
class ResolvedXPath:
	backend_node_id: int
	frame_id: str
	object_id: str | None
	session: CDPSession


def normalize_frame_index(value: Any) -> int:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return 0
	if not math.isfinite(value) or value < 0:
		return 0
	return math.floor(value)


def build_xpath_evaluation_expression(xpath: str) -> str:
	escaped = json.dumps(xpath)
	return f"""(function() {{
	try {{
		const result = document.evaluate({escaped}, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null);
		return result.singleNodeValue || null;
	}} catch (error) {{
		return null;
	}}
}})();"""


async def resolve_xpath_with_cdp(
	xpath: str,
	frame_index: int | float | None,
	cdp_client: CDPClient,
	frame_context_manager: FrameContextManager | None = None,
	debug: bool = False,
) -> ResolvedXPath:
	"""Resolve an XPath inside a logical frame to a backend node id.

	Uses a pooled `dom` session rather than the root session so the root session's listeners and
	domains stay untouched.

	Raises:
		ElementNotFoundError: blank xpath (400), xpath matching nothing, or a node without backend id
		FrameResolutionError: unknown frame index, or an iframe without execution context
		ProtocolError: session acquisition, context wait, evaluation or describe failures
	"""
	if not isinstance(xpath, str) or not xpath.strip():
		raise ElementNotFoundError('XPath must be a non-empty string', 400)
	xpath = xpath.strip()
	index = normalize_frame_index(frame_index)

	try:
		session = await cdp_client.acquire_session('dom')
	except Exception as e:
		raise ProtocolError(f'Failed to acquire CDP session for XPath resolution: {format_diagnostic(e)}') from e

	target_frame_id = find_frame_id_for_index(frame_context_manager, index)
	if not target_frame_id:
		raise FrameResolutionError(
			f'Unable to resolve frameId for frameIndex {index}. {build_frame_diagnostics(frame_context_manager)}'
		)

	execution_context_id: int | None = None
	if frame_context_manager is not None:
		try:
			execution_context_id = await frame_context_manager.wait_for_execution_context(target_frame_id)
		except Exception as e:
			raise ProtocolError(
				f'Failed while waiting for execution context ({target_frame_id}): {format_diagnostic(e)}'
			) from e
		if index != 0 and execution_context_id is None:
			raise FrameResolutionError(
				f'Execution context missing for frameIndex {index} ({target_frame_id}). '
				f'{build_frame_diagnostics(frame_context_manager)}'
			)

	if execution_context_id is None and debug:
		logger.warning(f'[XPathResolver] Missing executionContextId for frame {index} ({target_frame_id}), continuing')

	for domain in ('DOM.enable', 'Runtime.enable'):
		try:
			await session.send(domain)
		except Exception as e:
			logger.debug(f'[XPathResolver] {domain} failed: {format_diagnostic(e)}')

	params: dict[str, Any] = {
		'expression': build_xpath_evaluation_expression(xpath),
		'includeCommandLineAPI': False,
		'returnByValue': False,
		'awaitPromise': False,
	}
	if execution_context_id is not None:
		params['contextId'] = execution_context_id
	try:
		evaluation = await session.send('Runtime.evaluate', params)
	except Exception as e:
		raise ProtocolError(f'Failed to evaluate XPath in frame {index}: {format_diagnostic(e)}') from e

	object_id = ((evaluation or {}).get('result') or {}).get('objectId')
	if not object_id:
		raise ElementNotFoundError(f'Failed to resolve XPath to objectId in frame {index}')

	try:
		described = await session.send('DOM.describeNode', {'objectId': object_id})
	except Exception as e:
		raise ProtocolError(f'Failed to describe resolved XPath node in frame {index}: {format_diagnostic(e)}') from e

	backend_node_id = ((described or {}).get('node') or {}).get('backendNodeId')
	if not isinstance(backend_node_id, int) or isinstance(backend_node_id, bool):
		raise ElementNotFoundError(f'DOM.describeNode did not return backendNodeId for frame {index}')

	return ResolvedXPath(backend_node_id=backend_node_id, frame_id=target_frame_id, object_id=object_id, session=session)
