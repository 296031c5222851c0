from browser_replay.cdp.frame_filters import is_ad_or_tracking_frame


def test_blank_frames_are_kept():
	assert is_ad_or_tracking_frame(None) is False
	assert is_ad_or_tracking_frame('') is False
	assert is_ad_or_tracking_frame('about:blank') is False
	assert is_ad_or_tracking_frame('ABOUT:BLANK') is False


def test_regular_frames_are_kept():
	assert is_ad_or_tracking_frame('https://example.com/app/embed') is False
	assert is_ad_or_tracking_frame('https://www.youtube.com/embed/abc', name='video') is False


def test_known_ad_domains_are_dropped():
	assert is_ad_or_tracking_frame('https://securepubads.g.doubleclick.net/pagead/ads?correlator=123') is True
	assert is_ad_or_tracking_frame('https://ads.pubmatic.com/AdServer/js/user_sync.html') is True


def test_data_uri_frames_are_dropped():
	assert is_ad_or_tracking_frame('data:text/html,<p>hi</p>') is True


def test_pixel_name_is_a_strong_signal():
	assert is_ad_or_tracking_frame('https://widgets.example.org/frame', name='tracker (1x1)') is True


def test_weak_signals_on_same_site_frames_are_kept():
	"""Two weak signals reach the threshold, but a same-site frame survives without a strong one."""
	url = 'https://cdn.example.com/pixel.gif'
	assert is_ad_or_tracking_frame(url) is True
	assert is_ad_or_tracking_frame(url, parent_url='https://example.com/checkout') is False


def test_strong_signals_drop_same_site_frames():
	assert is_ad_or_tracking_frame('https://example.com/frame?correlator=1', parent_url='https://example.com/') is True
