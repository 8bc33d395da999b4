"""Follow-up domain models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from shepherd.directory.models import MemberStatus


class FollowUpType(str, Enum):
	CALL = "Call"
	WHATSAPP = "WhatsApp"
	PRAYER = "Prayer"
	VISIT = "Visit"
	OTHER = "Other"


class FollowUpOutcome(str, Enum):
	REACHED = "Reached"
	NO_ANSWER = "NoAnswer"
	SCHEDULED_CALLBACK = "ScheduledCallback"


class AttentionKind(str, Enum):
	INACTIVE = "inactive"
	OVERDUE = "overdue"


class FollowUp(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	member_id: UUID
	account_id: Optional[UUID] = None
	type: FollowUpType
	outcome: Optional[FollowUpOutcome] = None
	notes: Optional[str] = None
	scheduled_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None
	created_at: Optional[datetime] = None


class FollowUpMember(BaseModel):
	id: UUID
	first_name: str
	last_name: str
	status: MemberStatus
	camp_id: Optional[UUID] = None


class FollowUpAuthor(BaseModel):
	id: UUID
	email: str
	first_name: Optional[str] = None
	last_name: Optional[str] = None


class FollowUpView(BaseModel):
	"""A follow-up joined with the member and the account that logged it."""

	id: UUID
	type: FollowUpType
	outcome: Optional[FollowUpOutcome] = None
	notes: Optional[str] = None
	scheduled_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None
	created_at: Optional[datetime] = None
	member: FollowUpMember
	logged_by: Optional[FollowUpAuthor] = None


class AttentionItem(BaseModel):
	member_id: UUID
	kind: AttentionKind
	reference_id: UUID
	first_name: str
	last_name: str
	reason: str
	days_overdue: Optional[int] = None
