from browser_replay.cdp.client import CdpUseClient, resolve_websocket_url
from browser_replay.cdp.frame_context import (
	FrameContextManager,
	build_frame_diagnostics,
	get_or_create_frame_context_manager,
	resolve_frame_id_for_index,
)
from browser_replay.cdp.frame_filters import is_ad_or_tracking_frame
from browser_replay.cdp.interactions import ResolvedElement, dispatch_cdp_action
from browser_replay.cdp.playwright_adapter import PlaywrightCDPClient, dispose_cdp_client_for_page, get_cdp_client_for_page
from browser_replay.cdp.views import CDPClient, CDPSession, CDPTargetDescriptor, FrameRecord

__all__ = [
	'CDPClient',
	'CDPSession',
	'CDPTargetDescriptor',
	'CdpUseClient',
	'FrameContextManager',
	'FrameRecord',
	'PlaywrightCDPClient',
	'ResolvedElement',
	'build_frame_diagnostics',
	'dispatch_cdp_action',
	'dispose_cdp_client_for_page',
	'get_cdp_client_for_page',
	'get_or_create_frame_context_manager',
	'is_ad_or_tracking_frame',
	'resolve_frame_id_for_index',
	'resolve_websocket_url',
]
