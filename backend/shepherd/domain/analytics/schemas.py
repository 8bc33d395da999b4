from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AttendanceTrendPoint(BaseModel):
	date: str
	full_date: datetime
	count: int
	name: str


class CampAttendance(BaseModel):
	name: str
	attendance_count: int


class TopAttendee(BaseModel):
	id: UUID
	first_name: str
	last_name: str
	profile_picture: Optional[str] = None
	attendance_count: int


class TopShepherd(BaseModel):
	shepherd_id: UUID
	first_name: Optional[str] = None
	last_name: Optional[str] = None
	attendance_count: int


class AttendanceAnalytics(BaseModel):
	trends: List[AttendanceTrendPoint] = Field(default_factory=list)
	camp_stats: List[CampAttendance] = Field(default_factory=list)
	top_attendees: List[TopAttendee] = Field(default_factory=list)
	top_shepherd: Optional[TopShepherd] = None


class EventAttendancePoint(BaseModel):
	name: str
	date: str
	present: int = 0
	absent: int = 0


class UpcomingEvent(BaseModel):
	id: UUID
	name: str
	date: str
	type: str


class BirthdayEntry(BaseModel):
	id: UUID
	first_name: str
	last_name: str
	birthday: date
	phone: Optional[str] = None


class DashboardStats(BaseModel):
	total_members: int = 0
	new_converts: int = 0
	birthdays_today: int = 0
	active_members: int = 0
	attendance_data: List[EventAttendancePoint] = Field(default_factory=list)
	upcoming_events: List[UpcomingEvent] = Field(default_factory=list)
	birthdays_this_week: List[BirthdayEntry] = Field(default_factory=list)
