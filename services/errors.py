from __future__ import annotations

from typing import Optional


class AdminApiError(Exception):
	"""Base class for failures coming back from the admin backend."""

	def __init__(self, message: str, status: Optional[int] = None) -> None:
		super().__init__(message)
		self.message = str(message or "")
		self.status = status


class Unauthorized(AdminApiError):
	"""Session missing or rejected (HTTP 401). Never retried."""


class RemoteError(AdminApiError):
	"""Network or server failure. Message is shown to the user."""


class StaleResponse(Exception):
	"""A response arrived after a newer request was issued."""

	def __init__(self, seq: int, latest: int) -> None:
		super().__init__(f"stale response seq={seq} latest={latest}")
		self.seq = seq
		self.latest = latest


class ValidationError(Exception):
	"""Local form validation failure, keyed by field name."""

	def __init__(self, errors: dict[str, str]) -> None:
		self.errors = dict(errors)
		first = next(iter(self.errors.values()), "Invalid input")
		super().__init__(first)
