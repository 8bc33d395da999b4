import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from uuid import UUID, uuid4

import asyncpg
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from shepherd.directory import models
from shepherd.infra import postgres
from shepherd.infra.auth import Caller
from shepherd.main import app
from shepherd.settings import settings


def _now() -> datetime:
	return datetime.now(timezone.utc)


class FakeDirectoryRepository:
	"""In-memory stand-in for DirectoryRepository with the same coroutine surface."""

	def __init__(self) -> None:
		self.members: dict[UUID, models.Member] = {}
		self.camps: dict[UUID, models.Camp] = {}
		self.accounts: dict[UUID, models.Account] = {}
		self.events: dict[UUID, models.Event] = {}
		self.attendance: dict[tuple[UUID, UUID], models.Attendance] = {}
		self.assignments: list[tuple[UUID, UUID]] = []
		self.outbox: list[models.IdentityEvent] = []
		self._outbox_ids = count(1)
		self._last_created: datetime | None = None
		self.transactions = 0

	# --- seeding -------------------------------------------------------------

	def add_camp(self, name: str = "Legon", leader_id: UUID | None = None) -> models.Camp:
		camp = models.Camp(id=uuid4(), name=name, leader_id=leader_id, created_at=_now())
		self.camps[camp.id] = camp
		return camp

	def add_member(self, first_name: str = "Ama", last_name: str = "Mensah", **values) -> models.Member:
		member = models.Member(id=uuid4(), first_name=first_name, last_name=last_name, created_at=self._created_at(), **values)
		self.members[member.id] = member
		return member

	def add_account(self, role: models.AccountRole, *, email: str | None = None, **values) -> models.Account:
		account_id = values.pop("id", None) or uuid4()
		account = models.Account(
			id=account_id,
			email=email or f"{account_id.hex[:8]}@example.org",
			role=role,
			created_at=_now(),
			**values,
		)
		self.accounts[account.id] = account
		return account

	def add_event(self, name: str = "Sunday Service", **values) -> models.Event:
		values.setdefault("date", _now())
		values.setdefault("type", models.EventType.SERVICE)
		event = models.Event(id=uuid4(), name=name, created_at=_now(), **values)
		self.events[event.id] = event
		return event

	def assign(self, member_id: UUID, shepherd_id: UUID) -> None:
		if (member_id, shepherd_id) not in self.assignments:
			self.assignments.append((member_id, shepherd_id))

	def _with_camp(self, member: models.Member) -> models.MemberWithCamp:
		camp = self.camps.get(member.camp_id) if member.camp_id else None
		return models.MemberWithCamp(
			**member.model_dump(),
			update_token=member.update_token,
			token_expires_at=member.token_expires_at,
			camp_name=camp.name if camp else None,
		)

	def _sorted(self, members) -> list[models.MemberWithCamp]:
		return [self._with_camp(m) for m in sorted(members, key=lambda m: (m.first_name, m.last_name))]

	def _newest_first(self, members) -> list[models.MemberWithCamp]:
		return [self._with_camp(m) for m in sorted(members, key=lambda m: m.created_at, reverse=True)]

	def _created_at(self) -> datetime:
		# Strictly increasing so creation order is observable
		stamp = _now()
		if self._last_created is not None and stamp <= self._last_created:
			stamp = self._last_created + timedelta(microseconds=1)
		self._last_created = stamp
		return stamp

	@staticmethod
	def _in_camp(value: UUID | None, camp_id: UUID | None) -> bool:
		return camp_id is None or value == camp_id

	# --- transactions --------------------------------------------------------

	@asynccontextmanager
	async def transaction(self):
		self.transactions += 1
		snapshot = (
			dict(self.members),
			dict(self.accounts),
			dict(self.attendance),
			list(self.assignments),
			list(self.outbox),
		)
		try:
			yield None
		except BaseException:
			self.members, self.accounts, self.attendance, self.assignments, self.outbox = snapshot
			raise

	# --- members -------------------------------------------------------------

	async def list_members(self, *, camp_id=None):
		return self._newest_first(m for m in self.members.values() if self._in_camp(m.camp_id, camp_id))

	async def list_members_by_category(self, category, *, camp_id=None):
		return self._newest_first(
			m for m in self.members.values() if m.category is category and self._in_camp(m.camp_id, camp_id)
		)

	async def category_counts(self, *, camp_id=None):
		counts: dict[str, int] = {}
		for member in self.members.values():
			if self._in_camp(member.camp_id, camp_id):
				counts[member.category.value] = counts.get(member.category.value, 0) + 1
		return counts

	async def list_active_members(self, *, camp_id=None):
		return self._sorted(
			m
			for m in self.members.values()
			if m.status is models.MemberStatus.ACTIVE and self._in_camp(m.camp_id, camp_id)
		)

	async def get_member(self, member_id, *, conn=None):
		member = self.members.get(member_id)
		return self._with_camp(member) if member else None

	async def get_member_by_email(self, email, *, conn=None):
		for member in self.members.values():
			if member.email and member.email.lower() == email.lower():
				return member
		return None

	async def get_members(self, member_ids, *, conn=None):
		return [self.members[mid] for mid in dict.fromkeys(member_ids) if mid in self.members]

	async def insert_member(self, values, *, conn=None):
		member = models.Member(id=uuid4(), created_at=self._created_at(), **dict(values))
		self.members[member.id] = member
		return member

	async def update_member(self, member_id, values, *, conn=None):
		member = self.members.get(member_id)
		if member is None:
			return None
		member = member.model_copy(update=dict(values))
		self.members[member_id] = member
		return member

	async def delete_members(self, member_ids):
		deleted = 0
		for member_id in member_ids:
			if self.members.pop(member_id, None) is not None:
				deleted += 1
		return deleted

	# --- accounts ------------------------------------------------------------

	async def get_account(self, account_id, *, conn=None):
		return self.accounts.get(account_id)

	async def get_account_by_member(self, member_id, *, conn=None):
		for account in self.accounts.values():
			if account.member_id == member_id:
				return account
		return None

	async def get_account_by_email(self, email, *, conn=None):
		for account in self.accounts.values():
			if account.email.lower() == email.lower():
				return account
		return None

	async def insert_account(self, *, account_id, email, role, member_id, camp_id, conn=None, **values):
		self._check_account_email(email, account_id)
		account = models.Account(
			id=account_id, email=email, role=role, member_id=member_id, camp_id=camp_id, created_at=_now(), **values
		)
		self.accounts[account.id] = account
		return account

	async def update_account(self, account_id, *, conn=None, **values):
		if "email" in values:
			self._check_account_email(values["email"], account_id)
		account = self.accounts[account_id].model_copy(update=values)
		self.accounts[account_id] = account
		return account

	def _check_account_email(self, email, account_id):
		for account in self.accounts.values():
			if account.id != account_id and account.email.lower() == email.lower():
				raise asyncpg.UniqueViolationError("uq_accounts_email")

	async def delete_account(self, account_id, *, conn=None):
		return self.accounts.pop(account_id, None) is not None

	async def set_account_suspended(self, account_id, suspended, *, conn=None):
		self.accounts[account_id] = self.accounts[account_id].model_copy(update={"is_suspended": suspended})

	async def rebind_account_id(self, old_id, new_id, *, conn=None):
		account = self.accounts.pop(old_id)
		self.accounts[new_id] = account.model_copy(update={"id": new_id})
		self.outbox = [
			event.model_copy(update={"account_id": new_id}) if event.account_id == old_id else event
			for event in self.outbox
		]

	async def list_accounts(self, roles, *, camp_id=None):
		wanted = set(roles)
		return [a for a in self.accounts.values() if a.role in wanted and self._in_camp(a.camp_id, camp_id)]

	# --- assignments ---------------------------------------------------------

	async def assigned_member_ids(self, shepherd_id, *, conn=None):
		return {member_id for member_id, sid in self.assignments if sid == shepherd_id}

	async def list_assigned_members(self, shepherd_id):
		ids = await self.assigned_member_ids(shepherd_id)
		return self._sorted(m for m in self.members.values() if m.id in ids)

	async def add_assignments(self, shepherd_id, member_ids):
		added = 0
		for member_id in dict.fromkeys(member_ids):
			if (member_id, shepherd_id) not in self.assignments:
				self.assignments.append((member_id, shepherd_id))
				added += 1
		return added

	async def replace_assignments(self, member_id, shepherd_id):
		self.assignments = [pair for pair in self.assignments if pair[0] != member_id]
		self.assignments.append((member_id, shepherd_id))

	async def delete_assignment(self, member_id, shepherd_id):
		if (member_id, shepherd_id) not in self.assignments:
			return False
		self.assignments.remove((member_id, shepherd_id))
		return True

	# --- events & attendance -------------------------------------------------

	async def get_event(self, event_id, *, conn=None):
		return self.events.get(event_id)

	async def list_events(self, *, camp_id=None):
		summaries = []
		for event in sorted(self.events.values(), key=lambda e: e.date, reverse=True):
			if camp_id is not None and event.camp_id != camp_id:
				continue
			records = [r for (_, eid), r in self.attendance.items() if eid == event.id]
			summaries.append(
				models.EventSummary(
					**event.model_dump(),
					present_count=sum(1 for r in records if r.status is models.AttendanceStatus.PRESENT),
					absent_count=sum(1 for r in records if r.status is models.AttendanceStatus.ABSENT),
					excused_count=sum(1 for r in records if r.status is models.AttendanceStatus.EXCUSED),
					total_count=len(records),
				)
			)
		return summaries

	async def insert_event(self, values):
		event = models.Event(id=uuid4(), created_at=_now(), **dict(values))
		self.events[event.id] = event
		return event

	async def delete_event(self, event_id):
		self.attendance = {key: r for key, r in self.attendance.items() if key[1] != event_id}
		return self.events.pop(event_id, None) is not None

	async def attendance_for_event(self, event_id):
		return {mid: r for (mid, eid), r in self.attendance.items() if eid == event_id}

	async def upsert_attendance(self, member_id, event_id, status, notes, *, conn=None):
		existing = self.attendance.get((member_id, event_id))
		record = models.Attendance(
			id=existing.id if existing else uuid4(),
			member_id=member_id,
			event_id=event_id,
			status=status,
			notes=notes,
			created_at=existing.created_at if existing else _now(),
		)
		self.attendance[(member_id, event_id)] = record
		return record

	async def upsert_attendance_statuses(self, member_ids, event_id, status, *, conn=None):
		ids = list(dict.fromkeys(member_ids))
		for member_id in ids:
			existing = self.attendance.get((member_id, event_id))
			await self.upsert_attendance(member_id, event_id, status, existing.notes if existing else None)
		return len(ids)

	# --- camps ---------------------------------------------------------------

	async def list_camps(self, *, camp_id=None):
		summaries = []
		for camp in sorted(self.camps.values(), key=lambda c: c.name):
			if camp_id is not None and camp.id != camp_id:
				continue
			leader = self.accounts.get(camp.leader_id) if camp.leader_id else None
			summaries.append(
				models.CampSummary(
					**camp.model_dump(),
					member_count=sum(1 for m in self.members.values() if m.camp_id == camp.id),
					leader_email=leader.email if leader else None,
				)
			)
		return summaries

	async def get_camp(self, camp_id):
		return self.camps.get(camp_id)

	async def insert_camp(self, name, leader_id):
		return self.add_camp(name, leader_id)

	async def update_camp(self, camp_id, *, name, leader_id, clear_leader):
		camp = self.camps.get(camp_id)
		if camp is None:
			return None
		update = {}
		if name is not None:
			update["name"] = name
		if clear_leader:
			update["leader_id"] = None
		elif leader_id is not None:
			update["leader_id"] = leader_id
		camp = camp.model_copy(update=update)
		self.camps[camp_id] = camp
		return camp

	async def count_camp_members(self, camp_id):
		return sum(1 for m in self.members.values() if m.camp_id == camp_id)

	async def delete_camp(self, camp_id):
		return self.camps.pop(camp_id, None) is not None

	async def camp_member_stats(self, camp_id):
		members = [m for m in self.members.values() if m.camp_id == camp_id]
		return {
			"total": len(members),
			"active": sum(1 for m in members if m.status is models.MemberStatus.ACTIVE),
			"inactive": sum(1 for m in members if m.status is models.MemberStatus.INACTIVE),
			"new_converts": sum(1 for m in members if m.role is models.MemberRole.NEW_CONVERT),
		}

	async def recent_camp_follow_ups(self, camp_id, *, limit=10):
		return []

	# --- identity outbox -----------------------------------------------------

	async def enqueue_identity_event(self, account_id, action, payload=None, *, conn=None):
		event = models.IdentityEvent(
			id=next(self._outbox_ids),
			account_id=account_id,
			action=action,
			payload=dict(payload or {}),
			created_at=_now(),
		)
		self.outbox.append(event)
		return event.id

	async def claim_identity_events(self, limit, *, conn=None):
		pending = [e for e in self.outbox if e.status is models.OutboxStatus.PENDING]
		return sorted(pending, key=lambda e: e.id)[:limit]

	def _replace_event(self, event_id, **update):
		self.outbox = [e.model_copy(update=update) if e.id == event_id else e for e in self.outbox]

	async def mark_identity_event_done(self, event_id, *, conn=None):
		self._replace_event(event_id, status=models.OutboxStatus.DONE, processed_at=_now())

	async def mark_identity_event_failed(self, event_id, *, attempts, error, final, conn=None):
		self._replace_event(
			event_id,
			attempts=attempts,
			last_error=error[:500],
			status=models.OutboxStatus.FAILED if final else models.OutboxStatus.PENDING,
		)

	def pending_actions(self, account_id: UUID | None = None) -> list[models.OutboxAction]:
		return [
			e.action
			for e in self.outbox
			if e.status is models.OutboxStatus.PENDING and (account_id is None or e.account_id == account_id)
		]


class StubConnection:
	"""Queues canned results per asyncpg call and records every statement."""

	def __init__(self):
		self.queries: list[tuple[str, tuple]] = []
		self.fetch_rets: list = []
		self.fetchrow_rets: list = []
		self.fetchval_rets: list = []
		self.executemany_calls: list = []
		self.transactions = 0

	async def fetch(self, query, *args):
		self.queries.append((query, args))
		return self.fetch_rets.pop(0) if self.fetch_rets else []

	async def fetchrow(self, query, *args):
		self.queries.append((query, args))
		return self.fetchrow_rets.pop(0) if self.fetchrow_rets else None

	async def fetchval(self, query, *args):
		self.queries.append((query, args))
		return self.fetchval_rets.pop(0) if self.fetchval_rets else None

	async def execute(self, query, *args):
		self.queries.append((query, args))
		return "UPDATE 1"

	async def executemany(self, query, args):
		self.executemany_calls.append((query, list(args)))

	@asynccontextmanager
	async def transaction(self):
		self.transactions += 1
		yield self


class StubPool:
	def __init__(self, conn: StubConnection):
		self._conn = conn

	@asynccontextmanager
	async def acquire(self):
		yield self._conn


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from shepherd.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via the X-Account-Id header, which is only accepted
	in dev mode without a JWT secret.
	"""
	original_env = settings.environment
	original_secret = settings.identity_jwt_secret
	settings.environment = "dev"
	settings.identity_jwt_secret = None
	try:
		yield
	finally:
		settings.environment = original_env
		settings.identity_jwt_secret = original_secret


@pytest.fixture
def directory_repo() -> FakeDirectoryRepository:
	return FakeDirectoryRepository()


@pytest.fixture
def stub_conn() -> StubConnection:
	return StubConnection()


@pytest.fixture
def stub_pool(stub_conn) -> StubPool:
	return StubPool(stub_conn)


@pytest.fixture
def make_caller():
	def _make(role, camp_id=None, **kwargs) -> Caller:
		return Caller(id=kwargs.pop("id", None) or uuid4(), role=models.AccountRole(role), camp_id=camp_id, **kwargs)

	return _make


@pytest.fixture
def authed_accounts(monkeypatch, directory_repo):
	"""Resolve X-Account-Id headers against the in-memory directory."""
	from shepherd.infra import auth

	monkeypatch.setattr(auth, "_accounts", directory_repo)
	return directory_repo


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
	app.dependency_overrides.clear()
