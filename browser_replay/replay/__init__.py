from browser_replay.replay.cached_step import run_cached_attempt, run_cached_step
from browser_replay.replay.helpers import (
	dispatch_perform_helper,
	perform_check,
	perform_click,
	perform_fill,
	perform_hover,
	perform_next_chunk,
	perform_press,
	perform_prev_chunk,
	perform_scroll_to_element,
	perform_scroll_to_percentage,
	perform_select_option,
	perform_type,
	perform_uncheck,
)
from browser_replay.replay.service import MAX_REPLAY_STEPS, ReplayEngine
from browser_replay.replay.special_actions import execute_replay_special_action
from browser_replay.replay.views import (
	PAGE_ACTION_METHODS,
	CachedActionInput,
	ReplayFinishedEvent,
	ReplayStepCompletedEvent,
	normalize_page_action_method,
)

__all__ = [
	'CachedActionInput',
	'MAX_REPLAY_STEPS',
	'PAGE_ACTION_METHODS',
	'ReplayEngine',
	'ReplayFinishedEvent',
	'ReplayStepCompletedEvent',
	'dispatch_perform_helper',
	'execute_replay_special_action',
	'normalize_page_action_method',
	'perform_check',
	'perform_click',
	'perform_fill',
	'perform_hover',
	'perform_next_chunk',
	'perform_press',
	'perform_prev_chunk',
	'perform_scroll_to_element',
	'perform_scroll_to_percentage',
	'perform_select_option',
	'perform_type',
	'perform_uncheck',
	'run_cached_attempt',
	'run_cached_step',
]
