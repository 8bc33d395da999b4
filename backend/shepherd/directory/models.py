"""Domain models for the access-scoped directory."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MemberRole(str, Enum):
	LEADER = "Leader"
	SHEPHERD = "Shepherd"
	MEMBER = "Member"
	NEW_CONVERT = "New Convert"
	GUEST = "Guest"


class MemberStatus(str, Enum):
	ACTIVE = "Active"
	INACTIVE = "Inactive"
	ARCHIVED = "Archived"


class MemberCategory(str, Enum):
	STUDENT = "Student"
	WORKFORCE = "Workforce"
	NSS = "NSS"
	ALUMNI = "Alumni"


class AccountRole(str, Enum):
	ADMIN = "Admin"
	LEADER = "Leader"
	SHEPHERD = "Shepherd"


class EventType(str, Enum):
	SERVICE = "Service"
	RETREAT = "Retreat"
	MEETING = "Meeting"
	OUTREACH = "Outreach"


class AttendanceStatus(str, Enum):
	PRESENT = "Present"
	ABSENT = "Absent"
	EXCUSED = "Excused"


class OutboxAction(str, Enum):
	CREATE = "create"
	UPDATE = "update"
	DELETE = "delete"
	BAN = "ban"
	UNBAN = "unban"


class OutboxStatus(str, Enum):
	PENDING = "pending"
	DONE = "done"
	FAILED = "failed"


# Member roles that hold a login account.
ACCOUNT_ROLES: frozenset[MemberRole] = frozenset({MemberRole.LEADER, MemberRole.SHEPHERD})


class Member(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	first_name: str
	last_name: str
	email: Optional[str] = None
	phone: Optional[str] = None
	role: MemberRole = MemberRole.MEMBER
	status: MemberStatus = MemberStatus.ACTIVE
	category: MemberCategory = MemberCategory.STUDENT
	camp_id: Optional[UUID] = None
	birthday: Optional[date] = None
	join_date: Optional[date] = None
	residence: Optional[str] = None
	region: Optional[str] = None
	guardian: Optional[str] = None
	guardian_contact: Optional[str] = None
	guardian_location: Optional[str] = None
	profile_picture: Optional[str] = None
	update_token: Optional[str] = Field(default=None, exclude=True)
	token_expires_at: Optional[datetime] = Field(default=None, exclude=True)
	created_at: Optional[datetime] = None

	@property
	def full_name(self) -> str:
		return f"{self.first_name} {self.last_name}".strip()


class MemberWithCamp(Member):
	camp_name: Optional[str] = None


class Camp(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	name: str
	leader_id: Optional[UUID] = None
	created_at: Optional[datetime] = None


class Account(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	email: str
	role: AccountRole
	member_id: Optional[UUID] = None
	camp_id: Optional[UUID] = None
	first_name: Optional[str] = None
	last_name: Optional[str] = None
	is_suspended: bool = False
	created_at: Optional[datetime] = None


class Event(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	name: str
	date: datetime
	type: EventType
	description: Optional[str] = None
	meeting_url: Optional[str] = None
	is_recurring: bool = False
	camp_id: Optional[UUID] = None
	created_by_id: Optional[UUID] = None
	created_at: Optional[datetime] = None


class Attendance(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	member_id: UUID
	event_id: UUID
	status: AttendanceStatus
	notes: Optional[str] = None
	created_at: Optional[datetime] = None


class Assignment(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	member_id: UUID
	shepherd_id: UUID
	assigned_at: Optional[datetime] = None


class IdentityEvent(BaseModel):
	"""A pending identity-provider side effect recorded in the outbox."""

	model_config = ConfigDict(from_attributes=True)

	id: int
	account_id: UUID
	action: OutboxAction
	payload: dict[str, Any]
	status: OutboxStatus = OutboxStatus.PENDING
	attempts: int = 0
	last_error: Optional[str] = None
	created_at: Optional[datetime] = None
	processed_at: Optional[datetime] = None


class EventSummary(Event):
	present_count: int = 0
	absent_count: int = 0
	excused_count: int = 0
	total_count: int = 0


class CampSummary(Camp):
	member_count: int = 0
	leader_email: Optional[str] = None


class CampFollowUp(BaseModel):
	"""Most recent follow-ups shown on a camp dashboard."""

	model_config = ConfigDict(from_attributes=True)

	id: UUID
	member_id: UUID
	member_name: str
	type: str
	outcome: Optional[str] = None
	notes: Optional[str] = None
	created_at: Optional[datetime] = None
	logged_by: Optional[str] = None
