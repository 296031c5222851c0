"""Building action cache entries from executed agent steps."""

import json

from browser_replay.cache.builder import build_action_cache_entry
from browser_replay.cache.views import (
	ActElementAction,
	ActionCacheEntry,
	ActionCacheOutput,
	ActionOutput,
	UnknownAgentAction,
	parse_agent_action,
)
from browser_replay.dom.views import A11yDOMState

XPATH = '/html[1]/body[1]/button[1]'


def _act(element_id: str = '0-4', method: str = 'click', arguments: list | None = None, **extra) -> dict:
	return {
		'type': 'actElement',
		'params': {
			'instruction': 'click the submit button',
			'elementId': element_id,
			'method': method,
			'arguments': arguments or [],
			**extra,
		},
	}


def test_act_element_entry_uses_snapshot_xpath():
	dom_state = A11yDOMState(xpath_map={'0-4': f'{XPATH}/text()[1]'})

	entry = build_action_cache_entry(3, _act(), ActionOutput(success=True, message='Clicked'), dom_state)

	assert entry.step_index == 3
	assert entry.action_type == 'actElement'
	assert entry.instruction == 'click the submit button'
	assert entry.element_id == '0-4'
	assert entry.method == 'click'
	assert entry.arguments == []
	assert entry.xpath == XPATH
	assert entry.frame_index == 0
	assert entry.success is True
	assert entry.message == 'Clicked'
	assert entry.action_params == {
		'instruction': 'click the submit button',
		'elementId': '0-4',
		'method': 'click',
		'arguments': [],
	}


def test_iframe_element_records_frame_index_and_falls_back_to_debug_xpath():
	output = {'success': False, 'message': '', 'debug': {'elementMetadata': {'xpath': '/html/body/a/text()'}}}

	entry = build_action_cache_entry(1, _act(element_id='2-17'), output, A11yDOMState())

	assert entry.frame_index == 2
	assert entry.xpath == '/html/body/a'
	assert entry.success is False
	assert entry.message == 'unknown error'


def test_non_encoded_element_ids_have_no_frame_index():
	dom_state = A11yDOMState(xpath_map={'0-4': XPATH})

	entry = build_action_cache_entry(0, _act(element_id='submit-button'), ActionOutput(success=True), dom_state)

	assert entry.element_id == 'submit-button'
	assert entry.frame_index is None
	assert entry.xpath is None


def test_arguments_are_stringified_or_dropped():
	entry = build_action_cache_entry(0, _act(method='fill', arguments=['hello', 3, 2.5]), ActionOutput(), None)
	assert entry.arguments == ['hello', '3', '2.5']

	mixed = build_action_cache_entry(0, _act(method='fill', arguments=['hello', {'nested': True}]), ActionOutput(), None)
	assert mixed.arguments == []

	booleans = build_action_cache_entry(0, _act(method='fill', arguments=['hello', True]), ActionOutput(), None)
	assert booleans.arguments == []

	many = build_action_cache_entry(0, _act(method='fill', arguments=[str(i) for i in range(30)]), ActionOutput(), None)
	assert len(many.arguments) == 20


def test_go_to_url_records_url_argument():
	entry = build_action_cache_entry(
		0, {'type': 'goToUrl', 'params': {'url': 'https://example.com'}}, ActionOutput(success=True, message='ok'), None
	)

	assert entry.action_type == 'goToUrl'
	assert entry.arguments == ['https://example.com']
	assert entry.instruction is None
	assert entry.frame_index is None
	assert entry.action_params == {'url': 'https://example.com'}


def test_extract_uses_objective_as_instruction():
	entry = build_action_cache_entry(
		5, {'type': 'extract', 'params': {'objective': 'get the price'}}, ActionOutput(success=True), None
	)
	assert entry.instruction == 'get the price'


def test_malformed_actions_become_unknown_entries():
	entry = build_action_cache_entry(0, None, None, None)

	assert entry.action_type == 'unknown'
	assert entry.action_params == {}
	assert entry.success is False
	assert entry.message == 'unknown error'


class _RaisingParamsAction:
	type = 'actElement'

	@property
	def params(self):
		raise RuntimeError('params getter exploded')


class _RaisingDebugOutput:
	success = True
	message = 'clicked'

	@property
	def debug(self):
		raise RuntimeError('debug getter exploded')


class _UnprintableMessage:
	def __str__(self):
		raise RuntimeError('no text')


def test_action_with_raising_params_getter_becomes_entry():
	entry = build_action_cache_entry(3, _RaisingParamsAction(), ActionOutput(success=True, message='ok'), None)

	assert entry.step_index == 3
	assert entry.action_type == 'actElement'
	assert entry.action_params == {}
	assert entry.element_id is None
	assert entry.xpath is None
	assert isinstance(parse_agent_action(_RaisingParamsAction()), UnknownAgentAction)


def test_output_with_raising_debug_getter_becomes_entry():
	entry = build_action_cache_entry(0, _act(element_id='1-7'), _RaisingDebugOutput(), None)

	assert entry.element_id == '1-7'
	assert entry.frame_index == 1
	assert entry.xpath is None
	assert entry.success is True
	assert entry.message == 'clicked'


def test_unprintable_message_falls_back_to_unknown_error():
	entry = build_action_cache_entry(0, _act(), {'success': False, 'message': _UnprintableMessage()}, None)
	assert entry.message == 'unknown error'


def test_self_referencing_params_are_serializable():
	action = _act()
	action['params']['context'] = action['params']

	entry = build_action_cache_entry(0, action, ActionOutput(success=True, message='done'), None)

	assert entry.action_type == 'actElement'
	assert '[Circular]' in json.dumps(entry.action_params)


def test_long_messages_are_truncated_and_sanitized():
	entry = build_action_cache_entry(0, _act(), {'success': False, 'message': 'line\n' + 'x' * 5000}, None)

	assert '\n' not in entry.message
	assert entry.message.endswith('... [truncated 1005 chars]')


def test_error_payload_messages_are_rendered():
	entry = build_action_cache_entry(0, _act(), {'success': False, 'message': {'code': 7}}, None)
	assert entry.message == '{"code":7}'


def test_entries_serialize_with_camel_case_aliases():
	entry = build_action_cache_entry(2, _act(), ActionOutput(success=True, message='ok'), A11yDOMState(xpath_map={'0-4': XPATH}))
	cache = ActionCacheOutput(task_id='task-1', steps=[entry])

	data = json.loads(cache.model_dump_json(by_alias=True))

	assert data['taskId'] == 'task-1'
	step = data['steps'][0]
	assert step['stepIndex'] == 2
	assert step['actionType'] == 'actElement'
	assert step['frameIndex'] == 0
	assert step['elementId'] == '0-4'
	assert ActionCacheEntry.model_validate(step) == entry


def test_parse_agent_action():
	parsed = parse_agent_action(_act())
	assert isinstance(parsed, ActElementAction)
	assert parsed.params.element_id == '0-4'

	unknown = parse_agent_action({'type': 'teleport', 'params': {'where': 'moon'}})
	assert isinstance(unknown, UnknownAgentAction)
	assert unknown.type == 'teleport'
	assert unknown.params == {'where': 'moon'}

	assert parse_agent_action('garbage').type == 'unknown'
