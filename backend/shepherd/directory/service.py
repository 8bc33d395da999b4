"""Service layer for the access-scoped directory.

Scope decisions come from :mod:`shepherd.directory.scope`. Expected denials
and missing rows return declined results or empty listings; the two are
deliberately indistinguishable to callers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional
from uuid import UUID

import asyncpg

from shepherd.directory import models
from shepherd.directory import repo as repo_module
from shepherd.directory import schemas
from shepherd.directory.account_sync import sync_member_account
from shepherd.directory.exceptions import EmailInUse, ValidationError
from shepherd.directory.results import MemberWriteResult, OperationResult
from shepherd.directory.scope import ResolvedScope, resolve_scope
from shepherd.infra.auth import Caller
from shepherd.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

AfterCommitHook = Callable[[], Awaitable[Any]]

_UNAUTHORIZED = "Unauthorized"
_EMAIL_IN_USE = "Email already in use"
_ACCOUNT_GRANTING_ROLES = frozenset({models.AccountRole.ADMIN, models.AccountRole.LEADER})
_ASSIGNABLE_ROLES = (models.AccountRole.SHEPHERD, models.AccountRole.LEADER)


class DirectoryService:
	"""Members, camps, events, attendance and assignments, filtered by caller scope."""

	def __init__(
		self,
		repository: repo_module.DirectoryRepository | None = None,
		*,
		after_commit: AfterCommitHook | None = None,
	) -> None:
		self.repo = repository or repo_module.DirectoryRepository()
		self.after_commit = after_commit
		self._flushes: set[asyncio.Task] = set()

	# ------------------------------------------------------------------
	# Helpers

	async def _assigned(self, caller: Caller, scope: ResolvedScope) -> frozenset[UUID]:
		if not scope.needs_assignments:
			return frozenset()
		return frozenset(await self.repo.assigned_member_ids(caller.id))

	def _schedule_flush(self) -> None:
		if self.after_commit is None:
			return
		task = asyncio.create_task(self._flush_outbox(), name="directory-outbox-flush")
		self._flushes.add(task)
		task.add_done_callback(self._flushes.discard)

	async def _flush_outbox(self) -> None:
		try:
			await self.after_commit()
		except Exception:
			# The outbox keeps the events; the background dispatcher retries them.
			_LOG.exception("directory.outbox_flush_failed")

	async def drain(self) -> None:
		"""Wait for outbox flushes started by earlier writes."""
		if self._flushes:
			await asyncio.gather(*self._flushes, return_exceptions=True)

	async def _email_taken(
		self, email: str | None, member_id: UUID | None, conn: asyncpg.Connection | None
	) -> bool:
		if not email:
			return False
		holder = await self.repo.get_member_by_email(email, conn=conn)
		return holder is not None and holder.id != member_id

	@staticmethod
	def _summary(account: models.Account) -> schemas.AccountSummary:
		return schemas.AccountSummary.model_validate(account)

	# ------------------------------------------------------------------
	# Members

	async def list_members(self, caller: Caller) -> list[models.MemberWithCamp]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		return await self.repo.list_members(camp_id=scope.camp_filter)

	async def get_member(self, caller: Caller, member_id: UUID) -> models.MemberWithCamp | None:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return None
		member = await self.repo.get_member(member_id)
		if member is None or not scope.can_view_member(member):
			return None
		return member

	async def list_members_by_category(
		self, caller: Caller, category: models.MemberCategory
	) -> list[models.MemberWithCamp]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		return await self.repo.list_members_by_category(category, camp_id=scope.camp_filter)

	async def category_stats(self, caller: Caller) -> schemas.CategoryStats:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return schemas.CategoryStats()
		counts = await self.repo.category_counts(camp_id=scope.camp_filter)
		return schemas.CategoryStats(**{key: counts.get(key, 0) for key in schemas.CategoryStats.model_fields})

	async def create_member(self, caller: Caller, payload: schemas.MemberCreateRequest) -> MemberWriteResult:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return MemberWriteResult.declined(_UNAUTHORIZED)
		values = payload.model_dump()
		if not scope.sees_everything:
			values["camp_id"] = scope.camp_id
		if payload.role in models.ACCOUNT_ROLES and caller.role not in _ACCOUNT_GRANTING_ROLES:
			return MemberWriteResult.declined(f"{_UNAUTHORIZED} - only leaders can grant {payload.role.value} access")

		try:
			async with self.repo.transaction() as conn:
				if await self._email_taken(values.get("email"), None, conn):
					return MemberWriteResult.declined(_EMAIL_IN_USE)
				member = await self.repo.insert_member(values, conn=conn)
				report = await sync_member_account(
					self.repo,
					member,
					previous=None,
					role_supplied=True,
					status_supplied=False,
					conn=conn,
				)
		except (EmailInUse, asyncpg.UniqueViolationError):
			_LOG.info("directory.member_email_conflict", extra={"operation": "create"})
			return MemberWriteResult.declined(_EMAIL_IN_USE)
		_LOG.info("directory.member_created", extra={"member_id": str(member.id)})
		if report.enqueued:
			self._schedule_flush()
		return MemberWriteResult(
			success=True,
			member=member,
			account_sync=report.account,
			suspension=report.suspension,
		)

	async def update_member(
		self, caller: Caller, member_id: UUID, payload: schemas.MemberUpdateRequest
	) -> MemberWriteResult:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return MemberWriteResult.declined("Member not found")
		changes = payload.changes()
		if not changes:
			raise ValidationError("no_changes")
		role_supplied = "role" in changes
		status_supplied = "status" in changes

		try:
			async with self.repo.transaction() as conn:
				previous = await self.repo.get_member(member_id, conn=conn)
				if previous is None or not scope.can_view_member(previous):
					return MemberWriteResult.declined("Member not found")
				assigned = await self._assigned(caller, scope)
				if not scope.can_edit_member(previous, assigned):
					return MemberWriteResult.declined(f"{_UNAUTHORIZED} - {scope.edit_denial()}")
				if "camp_id" in changes and not scope.sees_everything and changes["camp_id"] != scope.camp_id:
					return MemberWriteResult.declined(f"{_UNAUTHORIZED} - cannot move members to another camp")
				if (
					role_supplied
					and changes["role"] in models.ACCOUNT_ROLES
					and changes["role"] is not previous.role
					and caller.role not in _ACCOUNT_GRANTING_ROLES
				):
					return MemberWriteResult.declined(f"{_UNAUTHORIZED} - only leaders can grant system access")

				if "email" in changes and await self._email_taken(changes["email"], member_id, conn):
					return MemberWriteResult.declined(_EMAIL_IN_USE)

				member = await self.repo.update_member(member_id, changes, conn=conn)
				if member is None:
					return MemberWriteResult.declined("Member not found")
				report = await sync_member_account(
					self.repo,
					member,
					previous=previous,
					role_supplied=role_supplied,
					status_supplied=status_supplied,
					conn=conn,
				)
		except (EmailInUse, asyncpg.UniqueViolationError):
			_LOG.info("directory.member_email_conflict", extra={"operation": "update", "member_id": str(member_id)})
			return MemberWriteResult.declined(_EMAIL_IN_USE)
		if report.enqueued:
			self._schedule_flush()
		return MemberWriteResult(
			success=True,
			member=member,
			account_sync=report.account,
			suspension=report.suspension,
		)

	async def delete_members(self, caller: Caller, member_ids: Iterable[UUID]) -> OperationResult:
		ids = list(dict.fromkeys(member_ids))
		if not ids:
			return OperationResult.declined("No members selected")
		if not caller.is_admin:
			return OperationResult.declined(_UNAUTHORIZED)
		deleted = await self.repo.delete_members(ids)
		_LOG.info("directory.members_deleted", extra={"requested": len(ids), "deleted": deleted})
		return OperationResult.ok(f"Deleted {deleted} members.", count=deleted)

	# ------------------------------------------------------------------
	# Events & attendance

	async def list_events(self, caller: Caller) -> list[models.EventSummary]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		return await self.repo.list_events(camp_id=scope.camp_filter)

	async def create_event(self, caller: Caller, payload: schemas.EventCreateRequest) -> OperationResult:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return OperationResult.declined(_UNAUTHORIZED)
		values = payload.model_dump()
		values["camp_id"] = None if caller.is_admin else scope.camp_id
		values["created_by_id"] = caller.id
		event = await self.repo.insert_event(values)
		return OperationResult.ok("Event created", id=event.id)

	async def delete_event(self, caller: Caller, event_id: UUID) -> OperationResult:
		scope = resolve_scope(caller)
		event = await self.repo.get_event(event_id)
		if event is None or not scope.can_view_event(event):
			return OperationResult.declined("Event not found")
		await self.repo.delete_event(event_id)
		return OperationResult.ok("Event deleted", id=event_id)

	async def get_roster(self, caller: Caller, event_id: UUID) -> list[schemas.RosterEntry]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		event = await self.repo.get_event(event_id)
		if event is None or not scope.can_view_event(event):
			return []
		members = await self.repo.list_active_members(camp_id=scope.camp_filter)
		assigned = await self._assigned(caller, scope)
		records = await self.repo.attendance_for_event(event_id)
		roster: list[schemas.RosterEntry] = []
		for member in members:
			record = records.get(member.id)
			roster.append(
				schemas.RosterEntry(
					member_id=member.id,
					first_name=member.first_name,
					last_name=member.last_name,
					phone=member.phone,
					role=member.role,
					camp_name=member.camp_name,
					attendance_id=record.id if record else None,
					attendance_status=record.status if record else None,
					notes=record.notes if record else None,
					can_edit=scope.can_edit_member(member, assigned),
				)
			)
		return roster

	async def mark_attendance(self, caller: Caller, payload: schemas.MarkAttendanceRequest) -> OperationResult:
		scope = resolve_scope(caller)
		if scope.is_empty:
			obs_metrics.inc_attendance_mark("single", "declined")
			return OperationResult.declined(_UNAUTHORIZED)
		if await self.repo.get_event(payload.event_id) is None:
			obs_metrics.inc_attendance_mark("single", "declined")
			return OperationResult.declined("Event not found")
		member = await self.repo.get_member(payload.member_id)
		if member is None:
			obs_metrics.inc_attendance_mark("single", "declined")
			return OperationResult.declined("Member not found")
		assigned = await self._assigned(caller, scope)
		if not scope.can_edit_member(member, assigned):
			obs_metrics.inc_attendance_mark("single", "declined")
			return OperationResult.declined(f"{_UNAUTHORIZED} - {scope.edit_denial()}")

		record = await self.repo.upsert_attendance(
			payload.member_id, payload.event_id, payload.status, payload.notes
		)
		obs_metrics.inc_attendance_mark("single", "marked")
		return OperationResult.ok("Attendance marked", id=record.id, count=1)

	async def bulk_mark_attendance(
		self, caller: Caller, payload: schemas.BulkAttendanceRequest
	) -> OperationResult:
		scope = resolve_scope(caller)
		ids = list(dict.fromkeys(payload.member_ids))
		if scope.is_empty:
			obs_metrics.inc_attendance_mark("bulk", "declined")
			return OperationResult.declined(_UNAUTHORIZED)
		if not ids:
			obs_metrics.inc_attendance_mark("bulk", "declined")
			return OperationResult.declined("No members selected")
		if await self.repo.get_event(payload.event_id) is None:
			obs_metrics.inc_attendance_mark("bulk", "declined")
			return OperationResult.declined("Event not found")
		members = await self.repo.get_members(ids)
		if len(members) != len(ids):
			obs_metrics.inc_attendance_mark("bulk", "declined")
			return OperationResult.declined("Member not found")
		assigned = await self._assigned(caller, scope)
		if any(not scope.can_edit_member(member, assigned) for member in members):
			obs_metrics.inc_attendance_mark("bulk", "declined")
			if scope.needs_assignments:
				return OperationResult.declined("Unauthorized to mark attendance for all selected members")
			return OperationResult.declined(f"{_UNAUTHORIZED} - some members are outside your camp")

		count = await self.repo.upsert_attendance_statuses(ids, payload.event_id, payload.status)
		obs_metrics.inc_attendance_mark("bulk", "marked", count)
		return OperationResult.ok(f"Marked {count} members as {payload.status.value}", count=count)

	# ------------------------------------------------------------------
	# Camps

	async def list_camps(self, caller: Caller) -> list[models.CampSummary]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		return await self.repo.list_camps(camp_id=scope.camp_filter)

	def _camp_visible(self, scope: ResolvedScope, camp_id: UUID) -> bool:
		return not scope.is_empty and (scope.sees_everything or scope.camp_id == camp_id)

	async def camp_details(self, caller: Caller, camp_id: UUID) -> schemas.CampDetails | None:
		scope = resolve_scope(caller)
		if not self._camp_visible(scope, camp_id):
			return None
		camp = await self.repo.get_camp(camp_id)
		if camp is None:
			return None
		members = await self.repo.list_members(camp_id=camp_id)
		leader = await self.repo.get_account(camp.leader_id) if camp.leader_id else None
		stats = schemas.CampStats(
			total=len(members),
			active=sum(1 for m in members if m.status is models.MemberStatus.ACTIVE),
			leaders=sum(1 for m in members if m.role in models.ACCOUNT_ROLES),
			new_converts=sum(1 for m in members if m.role is models.MemberRole.NEW_CONVERT),
		)
		return schemas.CampDetails(
			id=camp.id,
			name=camp.name,
			created_at=camp.created_at,
			leader=self._summary(leader) if leader else None,
			members=members,
			stats=stats,
		)

	async def camp_dashboard(self, caller: Caller, camp_id: UUID) -> schemas.CampDashboard | None:
		scope = resolve_scope(caller)
		if not self._camp_visible(scope, camp_id):
			return None
		if await self.repo.get_camp(camp_id) is None:
			return None
		counts = await self.repo.camp_member_stats(camp_id)
		follow_ups = await self.repo.recent_camp_follow_ups(camp_id, limit=10)
		shepherds = await self.repo.list_accounts([models.AccountRole.SHEPHERD], camp_id=camp_id)
		return schemas.CampDashboard(
			stats=schemas.CampDashboardStats(
				total=counts["total"],
				active=counts["active"],
				inactive=counts["inactive"],
				new_converts=counts["new_converts"],
			),
			recent_follow_ups=follow_ups,
			shepherds=[self._summary(account) for account in shepherds],
		)

	async def create_camp(self, caller: Caller, payload: schemas.CampCreateRequest) -> OperationResult:
		if not caller.is_admin:
			return OperationResult.declined(_UNAUTHORIZED)
		camp = await self.repo.insert_camp(payload.name.strip(), payload.leader_id)
		return OperationResult.ok("Camp created", id=camp.id)

	async def update_camp(
		self, caller: Caller, camp_id: UUID, payload: schemas.CampUpdateRequest
	) -> OperationResult:
		if not caller.is_admin:
			return OperationResult.declined(_UNAUTHORIZED)
		if not payload.model_fields_set:
			raise ValidationError("no_changes")
		clear_leader = "leader_id" in payload.model_fields_set and payload.leader_id is None
		camp = await self.repo.update_camp(
			camp_id,
			name=payload.name.strip() if payload.name else None,
			leader_id=payload.leader_id,
			clear_leader=clear_leader,
		)
		if camp is None:
			return OperationResult.declined("Camp not found")
		return OperationResult.ok("Camp updated", id=camp.id)

	async def delete_camp(self, caller: Caller, camp_id: UUID) -> OperationResult:
		if not caller.is_admin:
			return OperationResult.declined(_UNAUTHORIZED)
		if await self.repo.get_camp(camp_id) is None:
			return OperationResult.declined("Camp not found")
		if await self.repo.count_camp_members(camp_id) > 0:
			return OperationResult.declined("Cannot delete camp with members. Reassign members first.")
		if not await self.repo.delete_camp(camp_id):
			return OperationResult.declined("Cannot delete camp with members. Reassign members first.")
		return OperationResult.ok("Camp deleted", id=camp_id)

	# ------------------------------------------------------------------
	# Assignments

	async def shepherd_members(
		self, caller: Caller, shepherd_id: Optional[UUID] = None
	) -> list[models.MemberWithCamp]:
		scope = resolve_scope(caller)
		target = shepherd_id or caller.id
		if scope.is_empty or (scope.needs_assignments and target != caller.id):
			return []
		members = await self.repo.list_assigned_members(target)
		return [member for member in members if scope.can_view_member(member) or target == caller.id]

	async def _check_assignment(
		self, caller: Caller, shepherd_id: UUID, member_ids: list[UUID]
	) -> OperationResult | None:
		scope = resolve_scope(caller)
		if scope.is_empty or scope.needs_assignments:
			return OperationResult.declined(_UNAUTHORIZED)
		shepherd = await self.repo.get_account(shepherd_id)
		if shepherd is None or shepherd.role not in _ASSIGNABLE_ROLES:
			return OperationResult.declined("Shepherd not found")
		if not scope.sees_everything and shepherd.camp_id != scope.camp_id:
			return OperationResult.declined("Shepherd not found")
		members = await self.repo.get_members(member_ids)
		if len(members) != len(member_ids):
			return OperationResult.declined("Member not found")
		if any(not scope.can_edit_member(member) for member in members):
			return OperationResult.declined(f"{_UNAUTHORIZED} - {scope.edit_denial()}")
		return None

	async def assign_members(self, caller: Caller, payload: schemas.AssignMembersRequest) -> OperationResult:
		ids = list(dict.fromkeys(payload.member_ids))
		if not ids:
			return OperationResult.declined("No members selected")
		denial = await self._check_assignment(caller, payload.shepherd_id, ids)
		if denial is not None:
			return denial
		added = await self.repo.add_assignments(payload.shepherd_id, ids)
		return OperationResult.ok(f"Assigned {added} new members.", count=added)

	async def reassign_member(self, caller: Caller, payload: schemas.AssignmentRequest) -> OperationResult:
		"""Make ``shepherd_id`` the only shepherd of the member."""
		denial = await self._check_assignment(caller, payload.shepherd_id, [payload.member_id])
		if denial is not None:
			return denial
		await self.repo.replace_assignments(payload.member_id, payload.shepherd_id)
		return OperationResult.ok("Member assigned", count=1)

	async def remove_assignment(self, caller: Caller, payload: schemas.AssignmentRequest) -> OperationResult:
		denial = await self._check_assignment(caller, payload.shepherd_id, [payload.member_id])
		if denial is not None:
			return denial
		if not await self.repo.delete_assignment(payload.member_id, payload.shepherd_id):
			return OperationResult.declined("Assignment not found")
		return OperationResult.ok("Assignment removed", count=1)

	async def list_shepherds(self, caller: Caller) -> list[schemas.AccountSummary]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		accounts = await self.repo.list_accounts([models.AccountRole.SHEPHERD], camp_id=scope.camp_filter)
		return [self._summary(account) for account in accounts]

	async def list_leaders(self, caller: Caller) -> list[schemas.AccountSummary]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		accounts = await self.repo.list_accounts([models.AccountRole.LEADER, models.AccountRole.ADMIN])
		return [self._summary(account) for account in accounts]

	async def available_members(self, caller: Caller) -> list[models.MemberWithCamp]:
		return await self.list_members(caller)


__all__ = ["AfterCommitHook", "DirectoryService"]
