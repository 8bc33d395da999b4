"""Async repository for members, camps, accounts, events and attendance."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Mapping, Sequence
from uuid import UUID

import asyncpg

from shepherd.directory import models
from shepherd.infra.postgres import get_pool

MEMBER_COLUMNS = (
	"first_name",
	"last_name",
	"email",
	"phone",
	"role",
	"status",
	"category",
	"camp_id",
	"birthday",
	"join_date",
	"residence",
	"region",
	"guardian",
	"guardian_contact",
	"guardian_location",
	"profile_picture",
)

EVENT_COLUMNS = (
	"name",
	"date",
	"type",
	"description",
	"meeting_url",
	"is_recurring",
	"camp_id",
	"created_by_id",
)

_MEMBER_SELECT = """
	SELECT m.*, c.name AS camp_name
	FROM members m
	LEFT JOIN camps c ON c.id = m.camp_id
"""


@asynccontextmanager
async def _connection(conn: asyncpg.Connection | None) -> AsyncIterator[asyncpg.Connection]:
	if conn is not None:
		yield conn
		return
	pool = await get_pool()
	async with pool.acquire() as acquired:
		yield acquired


def _affected(status: str) -> int:
	"""Row count from an asyncpg command tag such as ``DELETE 3``."""
	try:
		return int(status.rsplit(" ", 1)[-1])
	except (ValueError, AttributeError):
		return 0


def _plain(value: Any) -> Any:
	return value.value if hasattr(value, "value") else value


def _assignments(values: Mapping[str, Any], allowed: Sequence[str]) -> tuple[list[str], list[Any]]:
	columns = [key for key in values if key in allowed]
	return columns, [_plain(values[key]) for key in columns]


class DirectoryRepository:
	"""Thin data-access layer around asyncpg.

	Methods that take part in a caller-managed transaction accept ``conn``;
	without it they acquire their own connection from the pool.
	"""

	@asynccontextmanager
	async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				yield conn

	# --- Members -------------------------------------------------------------

	async def list_members(self, *, camp_id: UUID | None = None) -> list[models.MemberWithCamp]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				_MEMBER_SELECT
				+ """
				WHERE ($1::uuid IS NULL OR m.camp_id = $1)
				ORDER BY m.created_at DESC
				""",
				camp_id,
			)
		return [models.MemberWithCamp.model_validate(dict(row)) for row in rows]

	async def list_members_by_category(
		self, category: models.MemberCategory, *, camp_id: UUID | None = None
	) -> list[models.MemberWithCamp]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				_MEMBER_SELECT
				+ """
				WHERE m.category = $1 AND ($2::uuid IS NULL OR m.camp_id = $2)
				ORDER BY m.created_at DESC
				""",
				category.value,
				camp_id,
			)
		return [models.MemberWithCamp.model_validate(dict(row)) for row in rows]

	async def category_counts(self, *, camp_id: UUID | None = None) -> dict[str, int]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT category, COUNT(*) AS total
				FROM members
				WHERE ($1::uuid IS NULL OR camp_id = $1)
				GROUP BY category
				""",
				camp_id,
			)
		return {row["category"]: int(row["total"]) for row in rows}

	async def list_active_members(self, *, camp_id: UUID | None = None) -> list[models.MemberWithCamp]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				_MEMBER_SELECT
				+ """
				WHERE m.status = 'Active' AND ($1::uuid IS NULL OR m.camp_id = $1)
				ORDER BY m.first_name, m.last_name
				""",
				camp_id,
			)
		return [models.MemberWithCamp.model_validate(dict(row)) for row in rows]

	async def get_member(self, member_id: UUID, *, conn: asyncpg.Connection | None = None) -> models.MemberWithCamp | None:
		async with _connection(conn) as c:
			row = await c.fetchrow(_MEMBER_SELECT + " WHERE m.id = $1", member_id)
		return models.MemberWithCamp.model_validate(dict(row)) if row else None

	async def get_member_by_email(self, email: str, *, conn: asyncpg.Connection | None = None) -> models.Member | None:
		async with _connection(conn) as c:
			row = await c.fetchrow("SELECT * FROM members WHERE lower(email) = lower($1) LIMIT 1", email)
		return models.Member.model_validate(dict(row)) if row else None

	async def get_members(
		self, member_ids: Iterable[UUID], *, conn: asyncpg.Connection | None = None
	) -> list[models.Member]:
		ids = list(dict.fromkeys(member_ids))
		if not ids:
			return []
		async with _connection(conn) as c:
			rows = await c.fetch("SELECT * FROM members WHERE id = ANY($1::uuid[])", ids)
		return [models.Member.model_validate(dict(row)) for row in rows]

	async def insert_member(self, values: Mapping[str, Any], *, conn: asyncpg.Connection | None = None) -> models.Member:
		columns, params = _assignments(values, MEMBER_COLUMNS)
		placeholders = ", ".join(f"${idx}" for idx in range(1, len(columns) + 1))
		async with _connection(conn) as c:
			row = await c.fetchrow(
				f"INSERT INTO members ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
				*params,
			)
		return models.Member.model_validate(dict(row))

	async def update_member(
		self, member_id: UUID, values: Mapping[str, Any], *, conn: asyncpg.Connection | None = None
	) -> models.Member | None:
		columns, params = _assignments(values, MEMBER_COLUMNS)
		async with _connection(conn) as c:
			if not columns:
				row = await c.fetchrow("SELECT * FROM members WHERE id = $1", member_id)
			else:
				sets = ", ".join(f"{col} = ${idx}" for idx, col in enumerate(columns, start=2))
				row = await c.fetchrow(
					f"UPDATE members SET {sets} WHERE id = $1 RETURNING *",
					member_id,
					*params,
				)
		return models.Member.model_validate(dict(row)) if row else None

	async def delete_members(self, member_ids: Sequence[UUID]) -> int:
		async with _connection(None) as conn:
			status = await conn.execute("DELETE FROM members WHERE id = ANY($1::uuid[])", list(member_ids))
		return _affected(status)

	# --- Accounts ------------------------------------------------------------

	async def get_account(self, account_id: UUID, *, conn: asyncpg.Connection | None = None) -> models.Account | None:
		async with _connection(conn) as c:
			row = await c.fetchrow("SELECT * FROM accounts WHERE id = $1", account_id)
		return models.Account.model_validate(dict(row)) if row else None

	async def get_account_by_member(
		self, member_id: UUID, *, conn: asyncpg.Connection | None = None
	) -> models.Account | None:
		async with _connection(conn) as c:
			row = await c.fetchrow(
				"SELECT * FROM accounts WHERE member_id = $1 ORDER BY created_at LIMIT 1", member_id
			)
		return models.Account.model_validate(dict(row)) if row else None

	async def get_account_by_email(self, email: str, *, conn: asyncpg.Connection | None = None) -> models.Account | None:
		async with _connection(conn) as c:
			row = await c.fetchrow("SELECT * FROM accounts WHERE lower(email) = lower($1)", email)
		return models.Account.model_validate(dict(row)) if row else None

	async def insert_account(
		self,
		*,
		account_id: UUID,
		email: str,
		role: models.AccountRole,
		member_id: UUID | None,
		camp_id: UUID | None,
		first_name: str | None = None,
		last_name: str | None = None,
		is_suspended: bool = False,
		conn: asyncpg.Connection | None = None,
	) -> models.Account:
		async with _connection(conn) as c:
			row = await c.fetchrow(
				"""
				INSERT INTO accounts (id, email, role, member_id, camp_id, first_name, last_name, is_suspended)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
				RETURNING *
				""",
				account_id,
				email,
				role.value,
				member_id,
				camp_id,
				first_name,
				last_name,
				is_suspended,
			)
		return models.Account.model_validate(dict(row))

	async def update_account(
		self,
		account_id: UUID,
		*,
		email: str,
		role: models.AccountRole,
		member_id: UUID | None,
		camp_id: UUID | None,
		first_name: str | None = None,
		last_name: str | None = None,
		conn: asyncpg.Connection | None = None,
	) -> models.Account:
		async with _connection(conn) as c:
			row = await c.fetchrow(
				"""
				UPDATE accounts
				SET email = $2, role = $3, member_id = $4, camp_id = $5, first_name = $6, last_name = $7
				WHERE id = $1
				RETURNING *
				""",
				account_id,
				email,
				role.value,
				member_id,
				camp_id,
				first_name,
				last_name,
			)
		return models.Account.model_validate(dict(row))

	async def delete_account(self, account_id: UUID, *, conn: asyncpg.Connection | None = None) -> bool:
		async with _connection(conn) as c:
			status = await c.execute("DELETE FROM accounts WHERE id = $1", account_id)
		return _affected(status) > 0

	async def set_account_suspended(
		self, account_id: UUID, suspended: bool, *, conn: asyncpg.Connection | None = None
	) -> None:
		async with _connection(conn) as c:
			await c.execute("UPDATE accounts SET is_suspended = $2 WHERE id = $1", account_id, suspended)

	async def rebind_account_id(
		self, old_id: UUID, new_id: UUID, *, conn: asyncpg.Connection | None = None
	) -> None:
		"""Move a local account onto the identity the provider already holds for its email."""
		async with _connection(conn) as c:
			await c.execute("UPDATE accounts SET id = $2 WHERE id = $1", old_id, new_id)
			await c.execute("UPDATE identity_outbox SET account_id = $2 WHERE account_id = $1", old_id, new_id)

	async def list_accounts(
		self, roles: Iterable[models.AccountRole], *, camp_id: UUID | None = None
	) -> list[models.Account]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM accounts
				WHERE role = ANY($1::text[]) AND ($2::uuid IS NULL OR camp_id = $2)
				ORDER BY first_name NULLS LAST, email
				""",
				[role.value for role in roles],
				camp_id,
			)
		return [models.Account.model_validate(dict(row)) for row in rows]

	# --- Assignments ---------------------------------------------------------

	async def assigned_member_ids(self, shepherd_id: UUID, *, conn: asyncpg.Connection | None = None) -> set[UUID]:
		async with _connection(conn) as c:
			rows = await c.fetch("SELECT member_id FROM assignments WHERE shepherd_id = $1", shepherd_id)
		return {row["member_id"] for row in rows}

	async def list_assigned_members(self, shepherd_id: UUID) -> list[models.MemberWithCamp]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				_MEMBER_SELECT
				+ """
				JOIN assignments a ON a.member_id = m.id
				WHERE a.shepherd_id = $1
				ORDER BY m.first_name, m.last_name
				""",
				shepherd_id,
			)
		return [models.MemberWithCamp.model_validate(dict(row)) for row in rows]

	async def add_assignments(self, shepherd_id: UUID, member_ids: Sequence[UUID]) -> int:
		"""Insert the missing (member, shepherd) pairs and return how many were new."""
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				INSERT INTO assignments (member_id, shepherd_id)
				SELECT member_id, $1 FROM unnest($2::uuid[]) AS member_id
				ON CONFLICT (member_id, shepherd_id) DO NOTHING
				RETURNING id
				""",
				shepherd_id,
				list(dict.fromkeys(member_ids)),
			)
		return len(rows)

	async def replace_assignments(self, member_id: UUID, shepherd_id: UUID) -> None:
		async with self.transaction() as conn:
			await conn.execute("DELETE FROM assignments WHERE member_id = $1", member_id)
			await conn.execute(
				"INSERT INTO assignments (member_id, shepherd_id) VALUES ($1, $2)",
				member_id,
				shepherd_id,
			)

	async def delete_assignment(self, member_id: UUID, shepherd_id: UUID) -> bool:
		async with _connection(None) as conn:
			status = await conn.execute(
				"DELETE FROM assignments WHERE member_id = $1 AND shepherd_id = $2",
				member_id,
				shepherd_id,
			)
		return _affected(status) > 0

	# --- Events & attendance -------------------------------------------------

	async def get_event(self, event_id: UUID, *, conn: asyncpg.Connection | None = None) -> models.Event | None:
		async with _connection(conn) as c:
			row = await c.fetchrow("SELECT * FROM events WHERE id = $1", event_id)
		return models.Event.model_validate(dict(row)) if row else None

	async def list_events(self, *, camp_id: UUID | None = None) -> list[models.EventSummary]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT e.*,
					COUNT(a.id) FILTER (WHERE a.status = 'Present') AS present_count,
					COUNT(a.id) FILTER (WHERE a.status = 'Absent') AS absent_count,
					COUNT(a.id) FILTER (WHERE a.status = 'Excused') AS excused_count,
					COUNT(a.id) AS total_count
				FROM events e
				LEFT JOIN (
					attendance a JOIN members m ON m.id = a.member_id AND ($1::uuid IS NULL OR m.camp_id = $1)
				) ON a.event_id = e.id
				WHERE ($1::uuid IS NULL OR e.camp_id = $1)
				GROUP BY e.id
				ORDER BY e.date DESC
				""",
				camp_id,
			)
		return [models.EventSummary.model_validate(dict(row)) for row in rows]

	async def insert_event(self, values: Mapping[str, Any]) -> models.Event:
		columns, params = _assignments(values, EVENT_COLUMNS)
		placeholders = ", ".join(f"${idx}" for idx in range(1, len(columns) + 1))
		async with _connection(None) as conn:
			row = await conn.fetchrow(
				f"INSERT INTO events ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
				*params,
			)
		return models.Event.model_validate(dict(row))

	async def delete_event(self, event_id: UUID) -> bool:
		async with self.transaction() as conn:
			await conn.execute("DELETE FROM attendance WHERE event_id = $1", event_id)
			status = await conn.execute("DELETE FROM events WHERE id = $1", event_id)
		return _affected(status) > 0

	async def attendance_for_event(self, event_id: UUID) -> dict[UUID, models.Attendance]:
		async with _connection(None) as conn:
			rows = await conn.fetch("SELECT * FROM attendance WHERE event_id = $1", event_id)
		return {row["member_id"]: models.Attendance.model_validate(dict(row)) for row in rows}

	async def upsert_attendance(
		self,
		member_id: UUID,
		event_id: UUID,
		status: models.AttendanceStatus,
		notes: str | None,
		*,
		conn: asyncpg.Connection | None = None,
	) -> models.Attendance:
		async with _connection(conn) as c:
			row = await c.fetchrow(
				"""
				INSERT INTO attendance (member_id, event_id, status, notes)
				VALUES ($1, $2, $3, $4)
				ON CONFLICT (member_id, event_id)
				DO UPDATE SET status = EXCLUDED.status, notes = EXCLUDED.notes
				RETURNING *
				""",
				member_id,
				event_id,
				status.value,
				notes,
			)
		return models.Attendance.model_validate(dict(row))

	async def upsert_attendance_statuses(
		self,
		member_ids: Sequence[UUID],
		event_id: UUID,
		status: models.AttendanceStatus,
		*,
		conn: asyncpg.Connection | None = None,
	) -> int:
		"""Set one status for many members, keeping any notes already recorded."""
		async with _connection(conn) as c:
			rows = await c.fetch(
				"""
				INSERT INTO attendance (member_id, event_id, status)
				SELECT member_id, $2, $3 FROM unnest($1::uuid[]) AS member_id
				ON CONFLICT (member_id, event_id) DO UPDATE SET status = EXCLUDED.status
				RETURNING id
				""",
				list(dict.fromkeys(member_ids)),
				event_id,
				status.value,
			)
		return len(rows)

	# --- Camps ---------------------------------------------------------------

	async def list_camps(self, *, camp_id: UUID | None = None) -> list[models.CampSummary]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT c.*, acc.email AS leader_email,
					(SELECT COUNT(*) FROM members m WHERE m.camp_id = c.id) AS member_count
				FROM camps c
				LEFT JOIN accounts acc ON acc.id = c.leader_id
				WHERE ($1::uuid IS NULL OR c.id = $1)
				ORDER BY c.name
				""",
				camp_id,
			)
		return [models.CampSummary.model_validate(dict(row)) for row in rows]

	async def get_camp(self, camp_id: UUID) -> models.Camp | None:
		async with _connection(None) as conn:
			row = await conn.fetchrow("SELECT * FROM camps WHERE id = $1", camp_id)
		return models.Camp.model_validate(dict(row)) if row else None

	async def insert_camp(self, name: str, leader_id: UUID | None) -> models.Camp:
		async with _connection(None) as conn:
			row = await conn.fetchrow(
				"INSERT INTO camps (name, leader_id) VALUES ($1, $2) RETURNING *", name, leader_id
			)
		return models.Camp.model_validate(dict(row))

	async def update_camp(self, camp_id: UUID, *, name: str | None, leader_id: UUID | None, clear_leader: bool) -> models.Camp | None:
		async with _connection(None) as conn:
			row = await conn.fetchrow(
				"""
				UPDATE camps
				SET name = COALESCE($2, name),
					leader_id = CASE WHEN $4 THEN NULL ELSE COALESCE($3, leader_id) END
				WHERE id = $1
				RETURNING *
				""",
				camp_id,
				name,
				leader_id,
				clear_leader,
			)
		return models.Camp.model_validate(dict(row)) if row else None

	async def count_camp_members(self, camp_id: UUID) -> int:
		async with _connection(None) as conn:
			value = await conn.fetchval("SELECT COUNT(*) FROM members WHERE camp_id = $1", camp_id)
		return int(value or 0)

	async def delete_camp(self, camp_id: UUID) -> bool:
		"""Delete an empty camp. Returns False when the camp is missing or still has members."""
		try:
			async with self.transaction() as conn:
				await conn.execute("UPDATE accounts SET camp_id = NULL WHERE camp_id = $1", camp_id)
				status = await conn.execute("DELETE FROM camps WHERE id = $1", camp_id)
		except asyncpg.ForeignKeyViolationError:
			return False
		return _affected(status) > 0

	async def camp_member_stats(self, camp_id: UUID) -> dict[str, int]:
		async with _connection(None) as conn:
			row = await conn.fetchrow(
				"""
				SELECT
					COUNT(*) AS total,
					COUNT(*) FILTER (WHERE status = 'Active') AS active,
					COUNT(*) FILTER (WHERE status = 'Inactive') AS inactive,
					COUNT(*) FILTER (WHERE role IN ('Leader', 'Shepherd')) AS leaders,
					COUNT(*) FILTER (WHERE role = 'New Convert') AS new_converts
				FROM members
				WHERE camp_id = $1
				""",
				camp_id,
			)
		return {key: int(row[key] or 0) for key in ("total", "active", "inactive", "leaders", "new_converts")}

	async def recent_camp_follow_ups(self, camp_id: UUID, *, limit: int = 10) -> list[models.CampFollowUp]:
		async with _connection(None) as conn:
			rows = await conn.fetch(
				"""
				SELECT f.id, f.member_id, f.type, f.outcome, f.notes, f.created_at,
					m.first_name || ' ' || m.last_name AS member_name,
					acc.email AS logged_by
				FROM follow_ups f
				JOIN members m ON m.id = f.member_id
				LEFT JOIN accounts acc ON acc.id = f.account_id
				WHERE m.camp_id = $1
				ORDER BY f.created_at DESC
				LIMIT $2
				""",
				camp_id,
				limit,
			)
		return [models.CampFollowUp.model_validate(dict(row)) for row in rows]

	# --- Identity outbox -----------------------------------------------------

	async def enqueue_identity_event(
		self,
		account_id: UUID,
		action: models.OutboxAction,
		payload: Mapping[str, Any] | None = None,
		*,
		conn: asyncpg.Connection | None = None,
	) -> int:
		async with _connection(conn) as c:
			value = await c.fetchval(
				"""
				INSERT INTO identity_outbox (account_id, action, payload)
				VALUES ($1, $2, $3::jsonb)
				RETURNING id
				""",
				account_id,
				action.value,
				json.dumps(dict(payload or {})),
			)
		return int(value)

	async def claim_identity_events(
		self, limit: int, *, conn: asyncpg.Connection
	) -> list[models.IdentityEvent]:
		rows = await conn.fetch(
			"""
			SELECT * FROM identity_outbox
			WHERE status = 'pending'
			ORDER BY id
			LIMIT $1
			FOR UPDATE SKIP LOCKED
			""",
			limit,
		)
		events: list[models.IdentityEvent] = []
		for row in rows:
			data = dict(row)
			if isinstance(data.get("payload"), str):
				data["payload"] = json.loads(data["payload"])
			events.append(models.IdentityEvent.model_validate(data))
		return events

	async def mark_identity_event_done(self, event_id: int, *, conn: asyncpg.Connection | None = None) -> None:
		async with _connection(conn) as c:
			await c.execute(
				"UPDATE identity_outbox SET status = 'done', processed_at = NOW() WHERE id = $1",
				event_id,
			)

	async def mark_identity_event_failed(
		self,
		event_id: int,
		*,
		attempts: int,
		error: str,
		final: bool,
		conn: asyncpg.Connection | None = None,
	) -> None:
		async with _connection(conn) as c:
			await c.execute(
				"""
				UPDATE identity_outbox
				SET attempts = $2, last_error = $3,
					status = CASE WHEN $4 THEN 'failed' ELSE 'pending' END,
					processed_at = CASE WHEN $4 THEN NOW() ELSE processed_at END
				WHERE id = $1
				""",
				event_id,
				attempts,
				error[:500],
				final,
			)


__all__ = ["DirectoryRepository", "EVENT_COLUMNS", "MEMBER_COLUMNS"]
