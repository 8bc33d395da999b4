"""Attendance analytics and the home dashboard figures.

Counts are filtered to the caller's camp unless the caller is an Admin.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from uuid import UUID

import asyncpg

from shepherd.directory.scope import resolve_scope
from shepherd.domain.analytics import schemas
from shepherd.infra.auth import Caller
from shepherd.infra.postgres import get_pool

TREND_WINDOW = timedelta(weeks=12)
TOP_ATTENDEES = 10
RECENT_EVENTS = 6
UPCOMING_EVENTS = 5
BIRTHDAYS_SHOWN = 5


def _short_name(name: str) -> str:
	return name[:12] + "..." if len(name) > 15 else name


def _day_month(value: datetime) -> str:
	return f"{value.day} {value.strftime('%b')}"


def _week_days(today: date) -> List[str]:
	# MM-DD keys for today and the following seven days, wrapping the year end.
	return [(today + timedelta(days=offset)).strftime("%m-%d") for offset in range(8)]


class AnalyticsService:
	async def _get_pool(self) -> asyncpg.Pool:
		return await get_pool()

	async def attendance_analytics(
		self, caller: Caller, *, now: Optional[datetime] = None
	) -> schemas.AttendanceAnalytics:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return schemas.AttendanceAnalytics()
		camp_id: UUID | None = scope.camp_filter
		since = (now or datetime.now(timezone.utc)) - TREND_WINDOW
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			trends = await conn.fetch(
				"""
				SELECT e.date, e.name, COUNT(a.id) AS count
				FROM attendance a
				JOIN events e ON e.id = a.event_id
				JOIN members m ON m.id = a.member_id
				WHERE e.date >= $2 AND a.status = 'Present'
					AND ($1::uuid IS NULL OR m.camp_id = $1)
				GROUP BY e.date, e.name
				ORDER BY e.date
				""",
				camp_id,
				since,
			)
			camps = await conn.fetch(
				"""
				SELECT c.name, COUNT(a.id) AS attendance_count
				FROM attendance a
				JOIN members m ON m.id = a.member_id
				JOIN camps c ON c.id = m.camp_id
				JOIN events e ON e.id = a.event_id
				WHERE e.date >= $2 AND a.status = 'Present'
					AND ($1::uuid IS NULL OR m.camp_id = $1)
				GROUP BY c.name
				ORDER BY COUNT(a.id) DESC
				""",
				camp_id,
				since,
			)
			attendees = await conn.fetch(
				"""
				SELECT m.id, m.first_name, m.last_name, m.profile_picture, COUNT(a.id) AS attendance_count
				FROM attendance a
				JOIN members m ON m.id = a.member_id
				JOIN events e ON e.id = a.event_id
				WHERE e.date >= $2 AND a.status = 'Present'
					AND ($1::uuid IS NULL OR m.camp_id = $1)
				GROUP BY m.id, m.first_name, m.last_name, m.profile_picture
				ORDER BY COUNT(a.id) DESC
				LIMIT $3
				""",
				camp_id,
				since,
				TOP_ATTENDEES,
			)
			shepherd = await conn.fetchrow(
				"""
				SELECT acc.id AS shepherd_id,
					COALESCE(sm.first_name, acc.first_name) AS first_name,
					COALESCE(sm.last_name, acc.last_name) AS last_name,
					COUNT(a.id) AS attendance_count
				FROM attendance a
				JOIN assignments asg ON asg.member_id = a.member_id
				JOIN accounts acc ON acc.id = asg.shepherd_id
				LEFT JOIN members sm ON sm.id = acc.member_id
				JOIN members m ON m.id = a.member_id
				JOIN events e ON e.id = a.event_id
				WHERE e.date >= $2 AND a.status = 'Present'
					AND ($1::uuid IS NULL OR m.camp_id = $1)
				GROUP BY acc.id, sm.first_name, sm.last_name, acc.first_name, acc.last_name
				ORDER BY COUNT(a.id) DESC
				LIMIT 1
				""",
				camp_id,
				since,
			)
		return schemas.AttendanceAnalytics(
			trends=[
				schemas.AttendanceTrendPoint(
					date=row["date"].strftime("%b %d"),
					full_date=row["date"],
					count=int(row["count"]),
					name=row["name"],
				)
				for row in trends
			],
			camp_stats=[
				schemas.CampAttendance(name=row["name"], attendance_count=int(row["attendance_count"]))
				for row in camps
			],
			top_attendees=[schemas.TopAttendee(**dict(row)) for row in attendees],
			top_shepherd=schemas.TopShepherd(**dict(shepherd)) if shepherd else None,
		)

	async def dashboard_stats(self, caller: Caller, *, now: Optional[datetime] = None) -> schemas.DashboardStats:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return schemas.DashboardStats()
		camp_id: UUID | None = scope.camp_filter
		now = now or datetime.now(timezone.utc)
		month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
		week = _week_days(now.date())
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			counts = await conn.fetchrow(
				"""
				SELECT COUNT(*) AS total,
					COUNT(*) FILTER (WHERE role = 'New Convert' AND created_at >= $2) AS new_converts,
					COUNT(*) FILTER (WHERE to_char(birthday, 'MM-DD') = $3) AS birthdays_today,
					COUNT(*) FILTER (WHERE status = 'Active') AS active
				FROM members
				WHERE ($1::uuid IS NULL OR camp_id = $1)
				""",
				camp_id,
				month_start,
				week[0],
			)
			recent = await conn.fetch(
				"""
				SELECT e.id, e.name, e.date,
					COUNT(a.id) FILTER (WHERE a.status = 'Present') AS present,
					COUNT(a.id) FILTER (WHERE a.status = 'Absent') AS absent
				FROM events e
				LEFT JOIN attendance a ON a.event_id = e.id
				WHERE e.date <= $2 AND ($1::uuid IS NULL OR e.camp_id = $1)
				GROUP BY e.id
				ORDER BY e.date DESC
				LIMIT $3
				""",
				camp_id,
				now,
				RECENT_EVENTS,
			)
			upcoming = await conn.fetch(
				"""
				SELECT id, name, date, type FROM events
				WHERE date >= $2 AND ($1::uuid IS NULL OR camp_id = $1)
				ORDER BY date
				LIMIT $3
				""",
				camp_id,
				now,
				UPCOMING_EVENTS,
			)
			birthdays = await conn.fetch(
				"""
				SELECT id, first_name, last_name, birthday, phone FROM members
				WHERE status = 'Active' AND birthday IS NOT NULL
					AND to_char(birthday, 'MM-DD') = ANY($2::text[])
					AND ($1::uuid IS NULL OR camp_id = $1)
				ORDER BY array_position($2::text[], to_char(birthday, 'MM-DD'))
				LIMIT $3
				""",
				camp_id,
				week,
				BIRTHDAYS_SHOWN,
			)
		return schemas.DashboardStats(
			total_members=int(counts["total"] or 0),
			new_converts=int(counts["new_converts"] or 0),
			birthdays_today=int(counts["birthdays_today"] or 0),
			active_members=int(counts["active"] or 0),
			attendance_data=[
				schemas.EventAttendancePoint(
					name=_short_name(row["name"]),
					date=_day_month(row["date"]),
					present=int(row["present"] or 0),
					absent=int(row["absent"] or 0),
				)
				for row in reversed(recent)
			],
			upcoming_events=[
				schemas.UpcomingEvent(
					id=row["id"],
					name=row["name"],
					date=f"{row['date'].strftime('%a')} {_day_month(row['date'])}",
					type=row["type"],
				)
				for row in upcoming
			],
			birthdays_this_week=[schemas.BirthdayEntry(**dict(row)) for row in birthdays],
		)


__all__ = ["AnalyticsService"]
