"""Environment-driven configuration and logging setup."""

import io
import logging

import pytest

from browser_replay.config import CONFIG
from browser_replay.logging_config import setup_logging


def test_defaults(monkeypatch):
	for name in (
		'BROWSER_REPLAY_LOGGING_LEVEL',
		'BROWSER_REPLAY_DEBUG',
		'BROWSER_REPLAY_CDP_URL',
		'BROWSER_REPLAY_XPATH_RETRIES',
		'BROWSER_REPLAY_CONTEXT_TIMEOUT_MS',
		'BROWSER_REPLAY_DOM_CAPTURE_MAX_ATTEMPTS',
	):
		monkeypatch.delenv(name, raising=False)

	assert CONFIG.BROWSER_REPLAY_LOGGING_LEVEL == 'info'
	assert CONFIG.BROWSER_REPLAY_DEBUG is False
	assert CONFIG.BROWSER_REPLAY_CDP_URL is None
	assert CONFIG.XPATH_RETRIES == 3
	assert CONFIG.CONTEXT_TIMEOUT_MS == 750
	assert CONFIG.DOM_CAPTURE_MAX_ATTEMPTS == 3


def test_values_are_read_on_every_access(monkeypatch):
	monkeypatch.setenv('BROWSER_REPLAY_XPATH_RETRIES', '5')
	assert CONFIG.XPATH_RETRIES == 5

	monkeypatch.setenv('BROWSER_REPLAY_XPATH_RETRIES', '0')
	assert CONFIG.XPATH_RETRIES == 1

	monkeypatch.setenv('BROWSER_REPLAY_XPATH_RETRIES', 'many')
	assert CONFIG.XPATH_RETRIES == 3

	monkeypatch.setenv('BROWSER_REPLAY_DOM_CAPTURE_MAX_ATTEMPTS', '50')
	assert CONFIG.DOM_CAPTURE_MAX_ATTEMPTS == 10

	monkeypatch.setenv('BROWSER_REPLAY_DEBUG', 'True')
	assert CONFIG.BROWSER_REPLAY_DEBUG is True


def test_cdp_url_must_be_a_url(monkeypatch):
	monkeypatch.setenv('BROWSER_REPLAY_CDP_URL', 'http://localhost:9222')
	assert CONFIG.BROWSER_REPLAY_CDP_URL == 'http://localhost:9222'

	monkeypatch.setenv('BROWSER_REPLAY_CDP_URL', 'localhost:9222')
	with pytest.raises(AssertionError):
		CONFIG.BROWSER_REPLAY_CDP_URL


@pytest.fixture
def restore_logging():
	root = logging.getLogger()
	replay_logger = logging.getLogger('browser_replay')
	cdp_logger = logging.getLogger('cdp_use')
	saved = (
		root.handlers[:],
		root.level,
		replay_logger.handlers[:],
		replay_logger.level,
		replay_logger.propagate,
		cdp_logger.level,
		cdp_logger.propagate,
	)
	yield
	root.handlers = saved[0]
	root.setLevel(saved[1])
	replay_logger.handlers = saved[2]
	replay_logger.setLevel(saved[3])
	replay_logger.propagate = saved[4]
	cdp_logger.setLevel(saved[5])
	cdp_logger.propagate = saved[6]


def test_setup_logging_writes_to_stream(restore_logging):
	stream = io.StringIO()

	replay_logger = setup_logging(stream=stream, log_level='debug', force_setup=True)
	logging.getLogger('browser_replay.replay.service').debug('replaying step 0')
	logging.getLogger('cdp_use').warning('socket chatter')

	assert replay_logger.name == 'browser_replay'
	assert replay_logger.propagate is False
	assert logging.getLogger().level == logging.DEBUG
	assert 'DEBUG    [browser_replay.replay.service] replaying step 0' in stream.getvalue()
	assert 'socket chatter' not in stream.getvalue()


def test_setup_logging_does_not_duplicate_handlers(restore_logging):
	stream = io.StringIO()

	setup_logging(stream=stream, log_level='warning', force_setup=True)
	setup_logging(stream=stream, log_level='warning', force_setup=True)
	logging.getLogger('browser_replay').warning('once')

	assert stream.getvalue().count('once') == 1
	assert logging.getLogger().level == logging.WARNING


def test_setup_logging_keeps_existing_configuration(restore_logging):
	root = logging.getLogger()
	existing = logging.StreamHandler(io.StringIO())
	root.handlers = [existing]

	setup_logging(stream=io.StringIO())

	assert root.handlers == [existing]
