"""Exceptions raised by directory services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class DirectoryError(Exception):
	"""Base class for directory related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "directory_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ValidationError(DirectoryError):
	"""Raised for validation errors not covered by request schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class EmailInUse(DirectoryError):
	"""Another member or login account already holds this email."""

	status_code = status.HTTP_409_CONFLICT
	detail = "email_in_use"
