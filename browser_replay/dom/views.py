import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EncodedId = str
"""`"<frameIndex>-<backendNodeId>"`, unique within one captured snapshot."""

ENCODED_ID_RE = re.compile(r'^(\d+)-(\d+)$')

INTERACTIVE_ROLES = frozenset({'button', 'link', 'textbox', 'searchbox', 'combobox'})

DEGRADED_DOM_STATE_TEXT = 'Error: Could not extract accessibility tree'


def create_encoded_id(frame_index: int, backend_node_id: int) -> EncodedId:
	return f'{frame_index}-{backend_node_id}'


def is_encoded_id(value: Any) -> bool:
	return isinstance(value, str) and ENCODED_ID_RE.match(value) is not None


def to_encoded_id(element_id: str | int) -> EncodedId:
	"""Normalize an element id; a bare backend node id is taken to live in the main frame."""
	text = str(element_id).strip()
	if ENCODED_ID_RE.match(text):
		return text
	if text.isdigit():
		return create_encoded_id(0, int(text))
	raise ValueError(f'Invalid element id format: {text!r}')


def parse_frame_index(encoded_id: str | None) -> int | None:
	if not isinstance(encoded_id, str):
		return None
	match = ENCODED_ID_RE.match(encoded_id.strip())
	if match is None:
		return None
	return int(match.group(1))


def parse_backend_node_id(encoded_id: str | None) -> int | None:
	if not isinstance(encoded_id, str):
		return None
	match = ENCODED_ID_RE.match(encoded_id.strip())
	if match is None:
		return None
	return int(match.group(2))


class DOMRect(BaseModel):
	x: float
	y: float
	width: float
	height: float
	top: float
	left: float
	right: float
	bottom: float

	@classmethod
	def from_quad(cls, quad: list[float]) -> 'DOMRect':
		xs, ys = quad[0::2], quad[1::2]
		left, top, right, bottom = min(xs), min(ys), max(xs), max(ys)
		return cls(x=left, y=top, width=right - left, height=bottom - top, top=top, left=left, right=right, bottom=bottom)


class AccessibilityNode(BaseModel):
	"""Simplified accessibility node, owned by one A11yDOMState."""

	model_config = ConfigDict(revalidate_instances='never')

	role: str = 'unknown'
	name: str | None = None
	description: str | None = None
	value: str | None = None
	node_id: str | None = None
	backend_dom_node_id: int | None = None
	parent_id: str | None = None
	child_ids: list[str] = Field(default_factory=list)
	encoded_id: EncodedId | None = None
	frame_index: int = 0
	children: list['AccessibilityNode'] = Field(default_factory=list)
	bounding_box: DOMRect | None = None


class IframeInfo(BaseModel):
	frame_index: int
	sibling_position: int = 0
	src: str | None = None
	name: str | None = None
	xpath: str
	parent_frame_index: int | None = 0
	parent_url: str | None = None
	content_document_backend_node_id: int | None = None
	iframe_backend_node_id: int | None = None
	frame_id: str | None = None


class BackendIdMaps(BaseModel):
	tag_name_map: dict[EncodedId, str] = Field(default_factory=dict)
	xpath_map: dict[EncodedId, str] = Field(default_factory=dict)
	accessible_name_map: dict[EncodedId, str] = Field(default_factory=dict)
	backend_node_map: dict[EncodedId, int] = Field(default_factory=dict)
	frame_map: dict[int, IframeInfo] = Field(default_factory=dict)


class TreeResult(BaseModel):
	tree: list[AccessibilityNode] = Field(default_factory=list)
	simplified: str = ''
	xpath_map: dict[EncodedId, str] = Field(default_factory=dict)
	id_to_element: dict[EncodedId, AccessibilityNode] = Field(default_factory=dict)
	bounding_box_map: dict[EncodedId, DOMRect] | None = None


class FrameDebugInfo(BaseModel):
	frame_index: int
	frame_url: str
	total_nodes: int
	tree_element_count: int
	interactive_count: int
	sample_nodes: list[dict[str, Any]] | None = None


class A11yDOMState(BaseModel):
	"""One captured snapshot. `elements` and `xpath_map` share the same key domain."""

	model_config = ConfigDict(arbitrary_types_allowed=True, revalidate_instances='never')

	elements: dict[EncodedId, AccessibilityNode] = Field(default_factory=dict)
	dom_state: str = ''
	xpath_map: dict[EncodedId, str] = Field(default_factory=dict)
	frame_map: dict[int, IframeInfo] = Field(default_factory=dict)
	backend_node_map: dict[EncodedId, int] = Field(default_factory=dict)
	bounding_box_map: dict[EncodedId, DOMRect] | None = None
	frame_debug_info: list[FrameDebugInfo] | None = None

	@classmethod
	def degraded(cls) -> 'A11yDOMState':
		return cls(dom_state=DEGRADED_DOM_STATE_TEXT)

	@property
	def is_degraded(self) -> bool:
		return not self.elements and self.dom_state == DEGRADED_DOM_STATE_TEXT
