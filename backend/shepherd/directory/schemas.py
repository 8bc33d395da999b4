"""Request and response schemas for the directory API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from shepherd.directory.models import (
	AccountRole,
	AttendanceStatus,
	CampFollowUp,
	EventType,
	MemberCategory,
	MemberRole,
	MemberStatus,
	MemberWithCamp,
)

_BLANK_TO_NONE = (
	"email",
	"phone",
	"birthday",
	"join_date",
	"camp_id",
	"residence",
	"region",
	"guardian",
	"guardian_contact",
	"guardian_location",
	"profile_picture",
)


def _blank_to_none(value):
	if isinstance(value, str) and not value.strip():
		return None
	return value


class MemberCreateRequest(BaseModel):
	first_name: str = Field(..., min_length=1, max_length=100)
	last_name: str = Field(..., min_length=1, max_length=100)
	email: Optional[EmailStr] = None
	phone: Optional[str] = Field(default=None, max_length=32)
	role: MemberRole = MemberRole.MEMBER
	status: MemberStatus = MemberStatus.ACTIVE
	category: MemberCategory = MemberCategory.STUDENT
	camp_id: Optional[UUID] = None
	birthday: Optional[date] = None
	join_date: Optional[date] = None
	residence: Optional[str] = Field(default=None, max_length=200)
	region: Optional[str] = Field(default=None, max_length=100)
	guardian: Optional[str] = Field(default=None, max_length=200)
	guardian_contact: Optional[str] = Field(default=None, max_length=32)
	guardian_location: Optional[str] = Field(default=None, max_length=200)
	profile_picture: Optional[str] = Field(default=None, max_length=2048)

	@field_validator(*_BLANK_TO_NONE, mode="before")
	@classmethod
	def _blank(cls, value):
		return _blank_to_none(value)

	@field_validator("first_name", "last_name", mode="before")
	@classmethod
	def _strip_name(cls, value):
		return value.strip() if isinstance(value, str) else value

	@field_validator("email")
	@classmethod
	def _lower_email(cls, value):
		return value.lower() if value else value


class MemberUpdateRequest(BaseModel):
	"""Partial update. Only fields present in the body are written.

	Blank strings clear optional fields, matching how forms submit them.
	"""

	first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
	last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
	email: Optional[EmailStr] = None
	phone: Optional[str] = Field(default=None, max_length=32)
	role: Optional[MemberRole] = None
	status: Optional[MemberStatus] = None
	category: Optional[MemberCategory] = None
	camp_id: Optional[UUID] = None
	birthday: Optional[date] = None
	join_date: Optional[date] = None
	residence: Optional[str] = Field(default=None, max_length=200)
	region: Optional[str] = Field(default=None, max_length=100)
	guardian: Optional[str] = Field(default=None, max_length=200)
	guardian_contact: Optional[str] = Field(default=None, max_length=32)
	guardian_location: Optional[str] = Field(default=None, max_length=200)
	profile_picture: Optional[str] = Field(default=None, max_length=2048)

	@field_validator(*_BLANK_TO_NONE, mode="before")
	@classmethod
	def _blank(cls, value):
		return _blank_to_none(value)

	@field_validator("first_name", "last_name", mode="before")
	@classmethod
	def _strip_name(cls, value):
		return value.strip() if isinstance(value, str) else value

	@field_validator("email")
	@classmethod
	def _lower_email(cls, value):
		return value.lower() if value else value

	def changes(self) -> dict:
		"""Fields explicitly present in the request. Required columns never become null."""
		data = self.model_dump(exclude_unset=True)
		for required in ("first_name", "last_name", "role", "status", "category"):
			if required in data and data[required] is None:
				data.pop(required)
		return data


class BulkDeleteRequest(BaseModel):
	ids: list[UUID] = Field(default_factory=list, max_length=1000)


class MarkAttendanceRequest(BaseModel):
	event_id: UUID
	member_id: UUID
	status: AttendanceStatus
	notes: Optional[str] = Field(default=None, max_length=1000)


class BulkAttendanceRequest(BaseModel):
	event_id: UUID
	member_ids: list[UUID] = Field(..., max_length=1000)
	status: AttendanceStatus


class RosterEntry(BaseModel):
	member_id: UUID
	first_name: str
	last_name: str
	phone: Optional[str] = None
	role: MemberRole
	camp_name: Optional[str] = None
	attendance_id: Optional[UUID] = None
	attendance_status: Optional[AttendanceStatus] = None
	notes: Optional[str] = None
	can_edit: bool


class EventCreateRequest(BaseModel):
	name: str = Field(..., min_length=1, max_length=200)
	date: datetime
	type: EventType = EventType.SERVICE
	description: Optional[str] = Field(default=None, max_length=2000)
	meeting_url: Optional[str] = Field(default=None, max_length=2048)
	is_recurring: bool = False


class CampCreateRequest(BaseModel):
	name: str = Field(..., min_length=1, max_length=120)
	leader_id: Optional[UUID] = None


class CampUpdateRequest(BaseModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=120)
	leader_id: Optional[UUID] = None


class AccountSummary(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: UUID
	email: str
	role: AccountRole
	first_name: Optional[str] = None
	last_name: Optional[str] = None
	camp_id: Optional[UUID] = None


class CampStats(BaseModel):
	total: int = 0
	active: int = 0
	leaders: int = 0
	new_converts: int = 0


class CampDetails(BaseModel):
	id: UUID
	name: str
	created_at: Optional[datetime] = None
	leader: Optional[AccountSummary] = None
	members: list[MemberWithCamp]
	stats: CampStats


class CampDashboardStats(BaseModel):
	total: int = 0
	active: int = 0
	inactive: int = 0
	new_converts: int = 0


class CampDashboard(BaseModel):
	stats: CampDashboardStats
	recent_follow_ups: list[CampFollowUp]
	shepherds: list[AccountSummary]


class AssignMembersRequest(BaseModel):
	shepherd_id: UUID
	member_ids: list[UUID] = Field(..., max_length=1000)


class AssignmentRequest(BaseModel):
	shepherd_id: UUID
	member_id: UUID


class CategoryStats(BaseModel):
	Student: int = 0
	Workforce: int = 0
	NSS: int = 0
	Alumni: int = 0
