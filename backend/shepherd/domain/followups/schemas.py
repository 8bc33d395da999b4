"""Follow-up request and response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from shepherd.domain.followups.models import AttentionKind, FollowUpOutcome, FollowUpType, FollowUpView


class FollowUpFilters(BaseModel):
	page: int = Field(default=1, ge=1)
	limit: int = Field(default=10, ge=1, le=100)
	type: Optional[FollowUpType] = None
	outcome: Optional[FollowUpOutcome] = None
	account_id: Optional[UUID] = None
	search: Optional[str] = Field(default=None, max_length=100)
	start_date: Optional[date] = None
	end_date: Optional[date] = None

	@field_validator("type", "outcome", "account_id", "search", "start_date", "end_date", mode="before")
	@classmethod
	def _all_means_unset(cls, value):
		# List screens send "all" or "" for an unset filter.
		if isinstance(value, str) and value.strip().lower() in ("", "all"):
			return None
		return value


class FollowUpPage(BaseModel):
	data: list[FollowUpView]
	total: int
	total_pages: int
	page: int


class FollowUpCreateRequest(BaseModel):
	member_id: UUID
	type: FollowUpType
	outcome: Optional[FollowUpOutcome] = None
	notes: Optional[str] = Field(default=None, max_length=2000)
	scheduled_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None


class FollowUpStats(BaseModel):
	total: int = 0
	this_week: int = 0
	outcomes: dict[str, int] = Field(default_factory=dict)
	types: dict[str, int] = Field(default_factory=dict)


class DismissRequest(BaseModel):
	kind: AttentionKind | str
	reference_id: UUID
