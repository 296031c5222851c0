from browser_replay.cache import (
	ActionCacheEntry,
	ActionCacheOutput,
	ActionCacheReplayResult,
	TaskOutput,
	TaskStatus,
	build_action_cache_entry,
	create_script_from_action_cache,
)
from browser_replay.config import CONFIG
from browser_replay.dom import A11yDOMState, capture_dom_state, get_a11y_dom, wait_for_settled_dom
from browser_replay.exceptions import (
	BrowserReplayError,
	ElementNotFoundError,
	FrameResolutionError,
	ProtocolError,
	UnsupportedActionError,
)
from browser_replay.locator import get_element_locator, resolve_xpath_with_cdp
from browser_replay.logging_config import setup_logging
from browser_replay.replay import ReplayEngine, run_cached_step
from browser_replay.runtime_context import initialize_runtime_context

__all__ = [
	'A11yDOMState',
	'ActionCacheEntry',
	'ActionCacheOutput',
	'ActionCacheReplayResult',
	'BrowserReplayError',
	'CONFIG',
	'ElementNotFoundError',
	'FrameResolutionError',
	'ProtocolError',
	'ReplayEngine',
	'TaskOutput',
	'TaskStatus',
	'UnsupportedActionError',
	'build_action_cache_entry',
	'capture_dom_state',
	'create_script_from_action_cache',
	'get_a11y_dom',
	'get_element_locator',
	'initialize_runtime_context',
	'resolve_xpath_with_cdp',
	'run_cached_step',
	'setup_logging',
	'wait_for_settled_dom',
]
