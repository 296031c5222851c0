"""Backend id maps, hierarchical AX tree building and the DOM helpers behind them."""

from browser_replay.cdp.frame_context import FrameContextManager
from browser_replay.dom.build_maps import build_backend_id_maps, child_xpath_steps
from browser_replay.dom.build_tree import build_hierarchical_tree, convert_ax_node
from browser_replay.dom.utils import (
	clean_structural_nodes,
	create_dom_fallback_nodes,
	has_interactive_elements,
	remove_redundant_static_text,
)
from browser_replay.dom.views import (
	AccessibilityNode,
	BackendIdMaps,
	DOMRect,
	create_encoded_id,
	is_encoded_id,
	parse_backend_node_id,
	parse_frame_index,
	to_encoded_id,
)
from tests.ci.conftest import FakeCDPClient, FakeCDPSession


def make_document(iframe_src: str = 'https://example.com/embed') -> dict:
	return {
		'nodeType': 9,
		'nodeName': '#document',
		'backendNodeId': 1,
		'documentURL': 'https://example.com/',
		'children': [
			{
				'nodeType': 1,
				'localName': 'html',
				'backendNodeId': 2,
				'children': [
					{
						'nodeType': 1,
						'localName': 'body',
						'backendNodeId': 3,
						'children': [
							{
								'nodeType': 1,
								'localName': 'button',
								'backendNodeId': 4,
								'attributes': ['aria-label', 'Submit'],
								'children': [{'nodeType': 3, 'nodeName': '#text', 'nodeValue': ' Go ', 'backendNodeId': 5}],
							},
							{'nodeType': 1, 'localName': 'button', 'backendNodeId': 6, 'children': []},
							{
								'nodeType': 1,
								'localName': 'iframe',
								'backendNodeId': 7,
								'attributes': ['src', iframe_src],
								'frameId': 'child-frame',
								'contentDocument': {
									'nodeType': 9,
									'backendNodeId': 8,
									'documentURL': iframe_src,
									'children': [
										{
											'nodeType': 1,
											'localName': 'html',
											'backendNodeId': 9,
											'children': [
												{
													'nodeType': 1,
													'localName': 'body',
													'backendNodeId': 10,
													'children': [
														{
															'nodeType': 1,
															'localName': 'a',
															'backendNodeId': 11,
															'attributes': ['title', 'Docs'],
														}
													],
												}
											],
										}
									],
								},
							},
						],
					}
				],
			}
		],
	}


AX_NODES = [
	{
		'nodeId': '1',
		'role': {'value': 'RootWebArea'},
		'name': {'value': 'Example'},
		'childIds': ['2', '-5'],
		'backendDOMNodeId': 1,
	},
	{'nodeId': '2', 'parentId': '1', 'role': {'value': 'generic'}, 'childIds': ['3'], 'backendDOMNodeId': 3},
	{
		'nodeId': '3',
		'parentId': '2',
		'role': {'value': 'button'},
		'name': {'value': 'Submit'},
		'childIds': ['4'],
		'backendDOMNodeId': 4,
	},
	{
		'nodeId': '4',
		'parentId': '3',
		'role': {'value': 'StaticText'},
		'name': {'value': 'Submit'},
		'childIds': [],
		'backendDOMNodeId': 5,
	},
	{'nodeId': '-5', 'parentId': '1', 'role': {'value': 'button'}, 'name': {'value': 'Ghost'}, 'childIds': []},
]


def test_encoded_id_helpers():
	assert create_encoded_id(2, 17) == '2-17'
	assert is_encoded_id('0-12')
	assert not is_encoded_id('0-')
	assert not is_encoded_id(12)
	assert to_encoded_id('12') == '0-12'
	assert to_encoded_id(' 1-4 ') == '1-4'
	assert parse_frame_index('3-9') == 3
	assert parse_backend_node_id('3-9') == 9
	assert parse_frame_index('abc') is None


def test_dom_rect_from_quad():
	rect = DOMRect.from_quad([10, 20, 110, 20, 110, 60, 10, 60])
	assert (rect.x, rect.y, rect.width, rect.height) == (10, 20, 100, 40)
	assert (rect.right, rect.bottom) == (110, 60)


def test_child_xpath_steps_are_positional_per_name():
	children = [
		{'nodeType': 1, 'localName': 'div'},
		{'nodeType': 3},
		{'nodeType': 1, 'localName': 'div'},
		{'nodeType': 1, 'localName': 'svg'},
		{'nodeType': 10},
		{'nodeType': 8},
	]
	assert child_xpath_steps(children) == [
		'div[1]',
		'text()[1]',
		'div[2]',
		'*[name()="svg"][1]',
		None,
		'comment()[1]',
	]


async def test_backend_id_maps_index_every_frame():
	session = FakeCDPSession('page', responses={'DOM.getDocument': {'root': make_document()}})

	maps = await build_backend_id_maps(session)

	assert session.params_for('DOM.getDocument') == [{'depth': -1, 'pierce': True}]
	assert maps.xpath_map['0-4'] == '/html[1]/body[1]/button[1]'
	assert maps.xpath_map['0-5'] == '/html[1]/body[1]/button[1]/text()[1]'
	assert maps.xpath_map['0-6'] == '/html[1]/body[1]/button[2]'
	assert maps.tag_name_map['0-5'] == '#text'
	assert maps.accessible_name_map['0-4'] == 'Submit'
	assert maps.accessible_name_map['0-5'] == 'Go'
	assert '0-1' not in maps.xpath_map

	frame = maps.frame_map[1]
	assert frame.xpath == '/html[1]/body[1]/iframe[1]'
	assert frame.parent_frame_index == 0
	assert frame.content_document_backend_node_id == 8
	assert frame.frame_id == 'child-frame'

	# Iframe documents restart their XPaths
	assert maps.xpath_map['1-11'] == '/html[1]/body[1]/a[1]'
	assert maps.backend_node_map['1-11'] == 11
	assert maps.accessible_name_map['1-11'] == 'Docs'


async def test_ad_iframes_keep_their_frame_index():
	document = make_document(iframe_src='https://securepubads.g.doubleclick.net/pagead/ads?correlator=1')
	session = FakeCDPSession('page', responses={'DOM.getDocument': {'root': document}})

	maps = await build_backend_id_maps(session)

	assert maps.frame_map[1].src.startswith('https://securepubads.g.doubleclick.net/')
	assert maps.frame_map[1].parent_url == 'https://example.com/'
	assert maps.xpath_map['1-11'] == '/html[1]/body[1]/a[1]'


AD_SRC = 'https://securepubads.g.doubleclick.net/pagead/ads?correlator=1'


def _iframe(backend_node_id: int, frame_id: str, src: str, content: list | None = None) -> dict:
	node = {
		'nodeType': 1,
		'localName': 'iframe',
		'backendNodeId': backend_node_id,
		'attributes': ['src', src],
		'frameId': frame_id,
	}
	if content is not None:
		node['contentDocument'] = {
			'nodeType': 9,
			'backendNodeId': backend_node_id + 1,
			'documentURL': src,
			'children': [
				{
					'nodeType': 1,
					'localName': 'html',
					'backendNodeId': backend_node_id + 2,
					'children': [{'nodeType': 1, 'localName': 'body', 'backendNodeId': backend_node_id + 3, 'children': content}],
				}
			],
		}
	return node


def make_nested_frames_document() -> dict:
	"""<div><iframe ad/></div><iframe embed><iframe inner/></iframe>, in document order x, y, z."""
	inner = _iframe(40, 'z', 'https://example.com/inner', content=[])
	return {
		'nodeType': 9,
		'backendNodeId': 1,
		'documentURL': 'https://example.com/',
		'children': [
			{
				'nodeType': 1,
				'localName': 'html',
				'backendNodeId': 2,
				'children': [
					{
						'nodeType': 1,
						'localName': 'body',
						'backendNodeId': 3,
						'children': [
							{'nodeType': 1, 'localName': 'div', 'backendNodeId': 4, 'children': [_iframe(10, 'x', AD_SRC)]},
							_iframe(20, 'y', 'https://example.com/embed', content=[inner]),
						],
					}
				],
			}
		],
	}


NESTED_FRAME_TREE = {
	'frameTree': {
		'frame': {'id': 'main', 'url': 'https://example.com/'},
		'childFrames': [
			{'frame': {'id': 'x', 'parentId': 'main', 'url': AD_SRC}},
			{
				'frame': {'id': 'y', 'parentId': 'main', 'url': 'https://example.com/embed'},
				'childFrames': [{'frame': {'id': 'z', 'parentId': 'y', 'url': 'https://example.com/inner'}}],
			},
		],
	}
}


async def test_iframe_indices_follow_document_order():
	session = FakeCDPSession('page', responses={'DOM.getDocument': {'root': make_nested_frames_document()}})

	maps = await build_backend_id_maps(session)

	assert {index: info.frame_id for index, info in maps.frame_map.items()} == {1: 'x', 2: 'y', 3: 'z'}
	assert maps.frame_map[1].xpath == '/html[1]/body[1]/div[1]/iframe[1]'
	assert maps.frame_map[3].parent_frame_index == 2
	assert maps.frame_map[3].xpath == '/html[1]/body[1]/iframe[1]'


async def test_snapshot_and_frame_manager_agree_on_frame_indices():
	session = FakeCDPSession('page', responses={'DOM.getDocument': {'root': make_nested_frames_document()}})
	client = FakeCDPClient(root=FakeCDPSession('root', responses={'Page.getFrameTree': NESTED_FRAME_TREE}))
	manager = FrameContextManager(client)

	maps = await build_backend_id_maps(session)
	await manager.ensure_initialized()

	assert manager.get_frame_id_by_index(0) == 'main'
	for frame_index, info in maps.frame_map.items():
		assert manager.get_frame_id_by_index(frame_index) == info.frame_id


async def test_backend_id_maps_failure_yields_empty_maps():
	session = FakeCDPSession('page', responses={'DOM.getDocument': RuntimeError('Target closed')})

	maps = await build_backend_id_maps(session)

	assert maps == BackendIdMaps()


def test_convert_ax_node():
	node = convert_ax_node(
		{
			'nodeId': 12,
			'role': {'value': 'textbox'},
			'name': {'value': ''},
			'value': {'value': 'hello'},
			'backendDOMNodeId': 40,
			'childIds': [13, 14],
		}
	)
	assert node.role == 'textbox'
	assert node.name is None
	assert node.value == 'hello'
	assert node.node_id == '12'
	assert node.child_ids == ['13', '14']
	assert node.backend_dom_node_id == 40


async def test_hierarchical_tree_collapses_wrappers_and_redundant_text():
	maps = BackendIdMaps(xpath_map={'0-4': '/html[1]/body[1]/button[1]'}, tag_name_map={'0-3': 'body', '0-4': 'button'})

	result = await build_hierarchical_tree(AX_NODES, maps, frame_index=0)

	assert result.simplified == '[0-1] RootWebArea: Example\n  [0-4] button: Submit'
	assert set(result.id_to_element) == {'0-1', '0-4'}
	assert result.tree[0].children[0].children == []
	assert result.xpath_map == maps.xpath_map
	assert result.bounding_box_map is None


async def test_hierarchical_tree_collects_boxes_in_visual_mode():
	session = FakeCDPSession(
		'page', responses={'DOM.getBoxModel': {'model': {'border': [0, 0, 50, 0, 50, 20, 0, 20]}}}
	)

	result = await build_hierarchical_tree(AX_NODES, BackendIdMaps(), frame_index=2, enable_visual_mode=True, session=session)

	assert set(result.bounding_box_map) == {'2-1', '2-3', '2-4', '2-5'}
	assert result.id_to_element['2-4'].bounding_box.width == 50


def test_generic_nodes_take_their_tag_name():
	node = AccessibilityNode(role='generic', name='Menu', node_id='7', encoded_id='0-7')
	cleaned = clean_structural_nodes(node, {'0-7': 'nav'})
	assert cleaned.role == 'nav'

	empty = AccessibilityNode(role='none', node_id='8', encoded_id='0-8')
	assert clean_structural_nodes(empty, {}) is None


def test_redundant_static_text_only_removed_on_exact_match():
	parent = AccessibilityNode(role='link', name='Read more')
	children = [AccessibilityNode(role='StaticText', name='Read '), AccessibilityNode(role='StaticText', name='MORE')]
	assert remove_redundant_static_text(parent, children) == []

	other = [AccessibilityNode(role='StaticText', name='Something else')]
	assert remove_redundant_static_text(parent, other) == other


def test_dom_fallback_nodes_for_frames_without_ax_tree():
	nodes = create_dom_fallback_nodes(
		1,
		{'1-9': 'button', '1-10': 'div', '0-4': 'a'},
		{'1-9': 9, '1-10': 10, '0-4': 4},
		{'1-9': 'Save'},
	)

	assert nodes == [
		{
			'nodeId': 'dom-1-9',
			'backendDOMNodeId': 9,
			'role': {'value': 'button'},
			'name': {'value': 'Save'},
			'childIds': [],
		}
	]
	assert has_interactive_elements(nodes)
	assert not has_interactive_elements([{'role': {'value': 'StaticText'}}])
