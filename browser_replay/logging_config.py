import logging
import sys

from browser_replay.config import CONFIG


def setup_logging(stream=None, log_level=None, force_setup=False):
	"""Setup logging configuration for browser-replay.

	Args:
		stream: Output stream for logs (default: sys.stdout). Can be sys.stderr when stdout is reserved.
		log_level: Override log level (default: uses CONFIG.BROWSER_REPLAY_LOGGING_LEVEL)
		force_setup: Force reconfiguration even if handlers already exist
	"""
	log_type = log_level or CONFIG.BROWSER_REPLAY_LOGGING_LEVEL

	if logging.getLogger().hasHandlers() and not force_setup:
		return logging.getLogger('browser_replay')

	root = logging.getLogger()
	root.handlers = []

	console = logging.StreamHandler(stream or sys.stdout)
	console.setFormatter(logging.Formatter('%(levelname)-8s [%(name)s] %(message)s'))
	root.addHandler(console)

	if log_type == 'debug':
		root.setLevel(logging.DEBUG)
	elif log_type == 'warning':
		root.setLevel(logging.WARNING)
	else:
		root.setLevel(logging.INFO)

	replay_logger = logging.getLogger('browser_replay')
	replay_logger.handlers = []
	replay_logger.propagate = False
	replay_logger.addHandler(console)
	replay_logger.setLevel(root.level)

	# CDP websocket chatter drowns everything else at debug level
	third_party_loggers = [
		'httpx',
		'httpcore',
		'playwright',
		'asyncio',
		'websockets',
		'websockets.client',
		'cdp_use',
		'cdp_use.client',
		'bubus',
	]
	for logger_name in third_party_loggers:
		third_party = logging.getLogger(logger_name)
		third_party.setLevel(logging.ERROR)
		third_party.propagate = False

	return replay_logger
