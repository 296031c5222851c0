"""Configuration system for browser-replay with lazy loading of environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	try:
		return int(raw.strip())
	except ValueError:
		return default


class Config:
	"""Lazy-loading configuration, every property reads the environment on access."""

	@property
	def BROWSER_REPLAY_LOGGING_LEVEL(self) -> str:
		return os.getenv('BROWSER_REPLAY_LOGGING_LEVEL', 'info').lower()

	@property
	def BROWSER_REPLAY_DEBUG(self) -> bool:
		return os.getenv('BROWSER_REPLAY_DEBUG', 'false').lower()[:1] in 'ty1'

	@property
	def BROWSER_REPLAY_CDP_URL(self) -> str | None:
		url = os.getenv('BROWSER_REPLAY_CDP_URL', '')
		if url and '://' not in url:
			raise AssertionError('BROWSER_REPLAY_CDP_URL must be a valid URL if set')
		return url or None

	# Replay tuning
	@property
	def XPATH_RETRIES(self) -> int:
		return max(1, _env_int('BROWSER_REPLAY_XPATH_RETRIES', 3))

	# Timeouts (milliseconds)
	@property
	def CONTEXT_TIMEOUT_MS(self) -> int:
		return max(0, _env_int('BROWSER_REPLAY_CONTEXT_TIMEOUT_MS', 750))

	@property
	def FRAME_READY_TIMEOUT_MS(self) -> int:
		return max(0, _env_int('BROWSER_REPLAY_FRAME_READY_TIMEOUT_MS', 5000))

	@property
	def SETTLE_TIMEOUT_MS(self) -> int:
		return max(0, _env_int('BROWSER_REPLAY_SETTLE_TIMEOUT_MS', 10_000))

	@property
	def DOM_CAPTURE_MAX_ATTEMPTS(self) -> int:
		return min(10, max(1, _env_int('BROWSER_REPLAY_DOM_CAPTURE_MAX_ATTEMPTS', 3)))


CONFIG = Config()
