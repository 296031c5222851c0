from browser_replay.locator.element_locator import get_element_locator, strip_text_node_selector
from browser_replay.locator.xpath_resolver import ResolvedXPath, resolve_xpath_with_cdp

__all__ = ['ResolvedXPath', 'get_element_locator', 'resolve_xpath_with_cdp', 'strip_text_node_selector']
