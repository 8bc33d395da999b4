"""Result envelopes returned by mutating operations.

Expected declines (not found, out of scope) are ordinary results with
``success=False`` and a human readable message rather than exceptions.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from shepherd.directory.models import Member


class OperationResult(BaseModel):
	success: bool
	message: Optional[str] = None
	count: Optional[int] = None
	id: Optional[UUID] = None

	@classmethod
	def ok(cls, message: str | None = None, **kwargs) -> "OperationResult":
		return cls(success=True, message=message, **kwargs)

	@classmethod
	def declined(cls, message: str) -> "OperationResult":
		return cls(success=False, message=message)


class AccountSyncOutcome(str, Enum):
	CREATED = "created"
	LINKED = "linked"
	REMOVED = "removed"
	NO_ACCOUNT = "no_account"
	SKIPPED_NO_EMAIL = "skipped_no_email"
	SKIPPED_ADMIN = "skipped_admin"


class SuspensionChange(str, Enum):
	SUSPENDED = "suspended"
	RESTORED = "restored"


class MemberWriteResult(BaseModel):
	success: bool
	message: Optional[str] = None
	member: Optional[Member] = None
	account_sync: Optional[AccountSyncOutcome] = None
	suspension: Optional[SuspensionChange] = None

	@classmethod
	def declined(cls, message: str) -> "MemberWriteResult":
		return cls(success=False, message=message)
