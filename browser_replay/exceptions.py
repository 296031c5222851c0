"""Error taxonomy for resolution and interaction failures.

Degraded captures, exhausted retries and stopped replays are not raised: they are reported as a sentinel
snapshot or as failed step results.
"""


class BrowserReplayError(Exception):
	"""Base error carrying an HTTP-like status code for callers that surface it."""

	status_code: int = 500

	def __init__(self, message: str, status_code: int | None = None):
		super().__init__(message)
		self.message = message
		if status_code is not None:
			self.status_code = status_code

	def __str__(self) -> str:
		return self.message


class ElementNotFoundError(BrowserReplayError):
	"""An element id or xpath could not be found."""

	status_code = 404


class FrameResolutionError(BrowserReplayError):
	"""A frame index could not be resolved to a live frame or execution context."""

	status_code = 404


class ProtocolError(BrowserReplayError):
	"""A CDP command itself failed (transport or protocol error)."""

	status_code = 500


class UnsupportedActionError(BrowserReplayError):
	"""No handler exists for an element action method."""

	status_code = 400
