"""Data access for follow-ups."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID

from shepherd.domain.followups import models
from shepherd.domain.followups.schemas import FollowUpFilters
from shepherd.infra.postgres import get_pool

_VIEW_SELECT = """
	SELECT f.id, f.type, f.outcome, f.notes, f.scheduled_at, f.completed_at, f.created_at,
		m.id AS member_id, m.first_name AS member_first_name, m.last_name AS member_last_name,
		m.status AS member_status, m.camp_id AS member_camp_id,
		acc.id AS author_id, acc.email AS author_email,
		COALESCE(sm.first_name, acc.first_name) AS author_first_name,
		COALESCE(sm.last_name, acc.last_name) AS author_last_name
	FROM follow_ups f
	JOIN members m ON m.id = f.member_id
	LEFT JOIN accounts acc ON acc.id = f.account_id
	LEFT JOIN members sm ON sm.id = acc.member_id
"""


def _view(row: Mapping[str, Any]) -> models.FollowUpView:
	author = None
	if row["author_id"] is not None:
		author = models.FollowUpAuthor(
			id=row["author_id"],
			email=row["author_email"],
			first_name=row["author_first_name"],
			last_name=row["author_last_name"],
		)
	return models.FollowUpView(
		id=row["id"],
		type=row["type"],
		outcome=row["outcome"],
		notes=row["notes"],
		scheduled_at=row["scheduled_at"],
		completed_at=row["completed_at"],
		created_at=row["created_at"],
		member=models.FollowUpMember(
			id=row["member_id"],
			first_name=row["member_first_name"],
			last_name=row["member_last_name"],
			status=row["member_status"],
			camp_id=row["member_camp_id"],
		),
		logged_by=author,
	)


def _filter_clause(
	filters: FollowUpFilters,
	*,
	camp_id: UUID | None,
	end_of_range: datetime | None,
) -> tuple[str, list[Any]]:
	clauses = ["($1::uuid IS NULL OR m.camp_id = $1)"]
	params: list[Any] = [camp_id]

	def add(sql: str, value: Any) -> None:
		params.append(value)
		clauses.append(sql.format(idx=len(params)))

	if filters.type is not None:
		add("f.type = ${idx}", filters.type.value)
	if filters.outcome is not None:
		add("f.outcome = ${idx}", filters.outcome.value)
	if filters.account_id is not None:
		add("f.account_id = ${idx}", filters.account_id)
	if filters.start_date is not None:
		add("f.created_at >= ${idx}::date", filters.start_date)
	if end_of_range is not None:
		add("f.created_at <= ${idx}", end_of_range)
	if filters.search:
		add(
			"(m.first_name ILIKE ${idx} OR m.last_name ILIKE ${idx} OR sm.first_name ILIKE ${idx}"
			" OR acc.first_name ILIKE ${idx} OR f.notes ILIKE ${idx})",
			f"%{filters.search.strip()}%",
		)
	return " AND ".join(clauses), params


class FollowUpRepository:
	"""Thin data-access layer around asyncpg."""

	async def list_follow_ups(
		self,
		filters: FollowUpFilters,
		*,
		camp_id: UUID | None,
		end_of_range: datetime | None,
	) -> tuple[list[models.FollowUpView], int]:
		where, params = _filter_clause(filters, camp_id=camp_id, end_of_range=end_of_range)
		offset = (filters.page - 1) * filters.limit
		pool = await get_pool()
		async with pool.acquire() as conn:
			total = await conn.fetchval(
				f"""
				SELECT COUNT(*) FROM follow_ups f
				JOIN members m ON m.id = f.member_id
				LEFT JOIN accounts acc ON acc.id = f.account_id
				LEFT JOIN members sm ON sm.id = acc.member_id
				WHERE {where}
				""",
				*params,
			)
			rows = await conn.fetch(
				_VIEW_SELECT
				+ f"""
				WHERE {where}
				ORDER BY f.created_at DESC
				LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
				""",
				*params,
				filters.limit,
				offset,
			)
		return [_view(row) for row in rows], int(total or 0)

	async def stats(self, *, camp_id: UUID | None, since: datetime) -> dict[str, Any]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			totals = await conn.fetchrow(
				"""
				SELECT COUNT(*) AS total, COUNT(*) FILTER (WHERE f.created_at >= $2) AS this_week
				FROM follow_ups f JOIN members m ON m.id = f.member_id
				WHERE ($1::uuid IS NULL OR m.camp_id = $1)
				""",
				camp_id,
				since,
			)
			outcomes = await conn.fetch(
				"""
				SELECT f.outcome AS key, COUNT(*) AS total
				FROM follow_ups f JOIN members m ON m.id = f.member_id
				WHERE ($1::uuid IS NULL OR m.camp_id = $1) AND f.outcome IS NOT NULL
				GROUP BY f.outcome
				""",
				camp_id,
			)
			types = await conn.fetch(
				"""
				SELECT f.type AS key, COUNT(*) AS total
				FROM follow_ups f JOIN members m ON m.id = f.member_id
				WHERE ($1::uuid IS NULL OR m.camp_id = $1)
				GROUP BY f.type
				""",
				camp_id,
			)
		return {
			"total": int(totals["total"] or 0),
			"this_week": int(totals["this_week"] or 0),
			"outcomes": {row["key"]: int(row["total"]) for row in outcomes},
			"types": {row["key"]: int(row["total"]) for row in types},
		}

	async def member_follow_ups(self, member_id: UUID) -> list[models.FollowUpView]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(_VIEW_SELECT + " WHERE f.member_id = $1 ORDER BY f.created_at DESC", member_id)
		return [_view(row) for row in rows]

	async def get_follow_up(self, follow_up_id: UUID) -> Optional[models.FollowUpView]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(_VIEW_SELECT + " WHERE f.id = $1", follow_up_id)
		return _view(row) if row else None

	async def insert_follow_up(self, values: Mapping[str, Any]) -> models.FollowUp:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO follow_ups (member_id, account_id, type, outcome, notes, scheduled_at, completed_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7)
				RETURNING *
				""",
				values["member_id"],
				values.get("account_id"),
				models.FollowUpType(values["type"]).value,
				models.FollowUpOutcome(values["outcome"]).value if values.get("outcome") else None,
				values.get("notes"),
				values.get("scheduled_at"),
				values.get("completed_at"),
			)
		return models.FollowUp.model_validate(dict(row))

	async def delete_follow_up(self, follow_up_id: UUID) -> bool:
		pool = await get_pool()
		async with pool.acquire() as conn:
			status = await conn.execute("DELETE FROM follow_ups WHERE id = $1", follow_up_id)
		return status.endswith(" 1")

	async def inactive_members(
		self,
		*,
		camp_id: UUID | None,
		member_ids: Sequence[UUID] | None,
		attended_since: datetime,
		contacted_since: datetime,
		limit: int = 5,
	) -> list[dict[str, Any]]:
		"""Active members with no recent attendance and no recent completed follow-up."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT m.id, m.first_name, m.last_name,
					MAX(e.date) AS last_seen,
					EXTRACT(DAY FROM NOW() - MAX(e.date))::int AS days_overdue
				FROM members m
				LEFT JOIN attendance a ON a.member_id = m.id
				LEFT JOIN events e ON e.id = a.event_id
				WHERE m.status = 'Active'
					AND ($1::uuid IS NULL OR m.camp_id = $1)
					AND ($2::uuid[] IS NULL OR m.id = ANY($2::uuid[]))
					AND NOT EXISTS (
						SELECT 1 FROM attendance ra JOIN events re ON re.id = ra.event_id
						WHERE ra.member_id = m.id AND re.date >= $3
					)
					AND NOT EXISTS (
						SELECT 1 FROM follow_ups rf
						WHERE rf.member_id = m.id AND rf.completed_at >= $4
					)
				GROUP BY m.id, m.first_name, m.last_name
				ORDER BY MAX(e.date) ASC NULLS FIRST
				LIMIT $5
				""",
				camp_id,
				list(member_ids) if member_ids is not None else None,
				attended_since,
				contacted_since,
				limit,
			)
		return [dict(row) for row in rows]

	async def overdue_follow_ups(
		self,
		*,
		camp_id: UUID | None,
		member_ids: Sequence[UUID] | None,
		now: datetime,
		limit: int = 5,
	) -> list[dict[str, Any]]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT f.id AS follow_up_id, m.id AS member_id, m.first_name, m.last_name,
					EXTRACT(DAY FROM $3 - f.scheduled_at)::int AS days_overdue
				FROM follow_ups f
				JOIN members m ON m.id = f.member_id
				WHERE f.scheduled_at < $3 AND f.completed_at IS NULL
					AND ($1::uuid IS NULL OR m.camp_id = $1)
					AND ($2::uuid[] IS NULL OR m.id = ANY($2::uuid[]))
				ORDER BY f.scheduled_at
				LIMIT $4
				""",
				camp_id,
				list(member_ids) if member_ids is not None else None,
				now,
				limit,
			)
		return [dict(row) for row in rows]


__all__ = ["FollowUpRepository"]
