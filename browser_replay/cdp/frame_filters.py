"""Heuristics for dropping ad and tracking iframes before they pollute the frame graph."""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

PIXEL_PATTERNS = [re.compile(r'\(1×1\)', re.I), re.compile(r'\(1x1\)', re.I)]

SUSPICIOUS_PATTERNS = [
	re.compile(r'pixel', re.I),
	re.compile(r'user-sync', re.I),
	re.compile(r'cookie-sync', re.I),
	re.compile(r'usersync', re.I),
	re.compile(r'ecm3', re.I),
	re.compile(r'dcm', re.I),
	re.compile(r'safeframe', re.I),
	re.compile(r'topics\s+frame', re.I),
]

TRACKING_EXTENSIONS = ['.gif', '.ashx', '.png?', '/pixel', '/usersync']

AD_DOMAINS = [
	# Google
	'doubleclick.net',
	'googlesyndication.com',
	'googleadservices.com',
	'google-analytics.com',
	'googletagmanager.com',
	'googletagservices.com',
	'imasdk.googleapis.com',
	# Yahoo
	'ybp.yahoo.com',
	'yahoo.com/pixel',
	# Exchanges
	'adnxs.com',
	'rubiconproject.com',
	'pubmatic.com',
	'openx.net',
	'advertising.com',
	'contextweb.com',
	'casalemedia.com',
	# Retargeting
	'criteo.com',
	'criteo.net',
	'bidswitch.net',
	# Analytics
	'quantserve.com',
	'scorecardresearch.com',
	'moatads.com',
	'adsafeprotected.com',
	'chartbeat.com',
	# Recommendation widgets
	'outbrain.com',
	'taboola.com',
	'zemanta.com',
	'openwebmedia.org',
	'turn.com',
	'amazon-adsystem.com',
]

TRACKING_PARAMS = ['correlator=', 'google_push=', 'gdfp_req=', 'prebid', 'pubads']

MIN_FILTER_SCORE = 2


@dataclass
class FrameRiskSignal:
	name: str
	weight: int
	matched: bool
	strong: bool = False


def _safe_hostname(value: str | None) -> str | None:
	if not value or not value.strip():
		return None
	try:
		hostname = urlparse(value).hostname
	except ValueError:
		return None
	return hostname.lower() if hostname else None


def _is_same_site_frame(url: str, parent_url: str | None) -> bool:
	hostname = _safe_hostname(url)
	parent_hostname = _safe_hostname(parent_url)
	if not hostname or not parent_hostname:
		return False
	return hostname == parent_hostname or hostname.endswith(f'.{parent_hostname}') or parent_hostname.endswith(f'.{hostname}')


def collect_frame_risk_signals(url: str, name: str | None = None) -> list[FrameRiskSignal]:
	url_lower = url.lower()
	name_lower = (name or '').lower()
	return [
		FrameRiskSignal(
			'pixel-pattern',
			2,
			any(p.search(url_lower) or p.search(name_lower) for p in PIXEL_PATTERNS),
			strong=True,
		),
		FrameRiskSignal(
			'suspicious-keyword',
			1,
			any(p.search(url_lower) or p.search(name_lower) for p in SUSPICIOUS_PATTERNS),
		),
		FrameRiskSignal('tracking-extension', 1, any(ext in url_lower for ext in TRACKING_EXTENSIONS)),
		FrameRiskSignal('known-ad-domain', 2, any(domain in url_lower for domain in AD_DOMAINS), strong=True),
		FrameRiskSignal('tracking-query-param', 2, any(param in url_lower for param in TRACKING_PARAMS), strong=True),
		FrameRiskSignal('data-uri', 2, url_lower.startswith('data:'), strong=True),
	]


def is_ad_or_tracking_frame(url: str | None, name: str | None = None, parent_url: str | None = None) -> bool:
	"""Check if a frame is likely an ad or tracking iframe.

	Signals are weighted and a frame is only dropped once the score reaches MIN_FILTER_SCORE,
	so one weak indicator never removes a legitimate frame. Same-site frames are kept unless a
	strong signal fired.
	"""
	# Blank frames are often bootstrapped into real apps after load
	if not url or url.lower() == 'about:blank':
		return False

	signals = collect_frame_risk_signals(url, name)
	risk_score = sum(signal.weight for signal in signals if signal.matched)
	if risk_score < MIN_FILTER_SCORE:
		return False

	has_strong_signal = any(signal.matched and signal.strong for signal in signals)
	if not has_strong_signal and _is_same_site_frame(url, parent_url):
		return False
	return True
