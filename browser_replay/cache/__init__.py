from browser_replay.cache.builder import build_action_cache_entry
from browser_replay.cache.script import create_script_from_action_cache, write_script_from_action_cache
from browser_replay.cache.views import (
	ActionCacheEntry,
	ActionCacheOutput,
	ActionCacheReplayResult,
	ActionOutput,
	AgentAction,
	ReplayStepMeta,
	ReplayStepResult,
	TaskOutput,
	TaskStatus,
	parse_agent_action,
)

__all__ = [
	'ActionCacheEntry',
	'ActionCacheOutput',
	'ActionCacheReplayResult',
	'ActionOutput',
	'AgentAction',
	'ReplayStepMeta',
	'ReplayStepResult',
	'TaskOutput',
	'TaskStatus',
	'build_action_cache_entry',
	'create_script_from_action_cache',
	'parse_agent_action',
	'write_script_from_action_cache',
]
