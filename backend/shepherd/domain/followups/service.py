"""Follow-up logging, listing and the needs-attention feed."""

from __future__ import annotations

import logging
import math
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID

from shepherd.directory.repo import DirectoryRepository
from shepherd.directory.results import OperationResult
from shepherd.directory.scope import resolve_scope
from shepherd.domain.followups import models, schemas
from shepherd.domain.followups.repo import FollowUpRepository
from shepherd.infra.auth import Caller

_LOG = logging.getLogger(__name__)

INACTIVE_AFTER = timedelta(weeks=4)
SNOOZE_FOR = timedelta(weeks=1)
ATTENTION_LIMIT = 5
DISMISS_NOTE = "Alert dismissed from dashboard (System Check-in)"


def _now() -> datetime:
	return datetime.now(timezone.utc)


class FollowUpService:
	def __init__(
		self,
		repository: FollowUpRepository | None = None,
		*,
		directory: DirectoryRepository | None = None,
	) -> None:
		self.repo = repository or FollowUpRepository()
		self.directory = directory or DirectoryRepository()

	async def list_follow_ups(self, caller: Caller, filters: schemas.FollowUpFilters) -> schemas.FollowUpPage:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return schemas.FollowUpPage(data=[], total=0, total_pages=0, page=filters.page)
		end_of_range = None
		if filters.end_date is not None:
			# The end date is inclusive to the end of that day.
			end_of_range = datetime.combine(filters.end_date, time.max, tzinfo=timezone.utc)
		rows, total = await self.repo.list_follow_ups(filters, camp_id=scope.camp_filter, end_of_range=end_of_range)
		return schemas.FollowUpPage(
			data=rows,
			total=total,
			total_pages=math.ceil(total / filters.limit),
			page=filters.page,
		)

	async def stats(self, caller: Caller, *, now: Optional[datetime] = None) -> schemas.FollowUpStats:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return schemas.FollowUpStats()
		since = (now or _now()) - timedelta(days=7)
		data = await self.repo.stats(camp_id=scope.camp_filter, since=since)
		return schemas.FollowUpStats(**data)

	async def member_follow_ups(self, caller: Caller, member_id: UUID) -> list[models.FollowUpView]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		member = await self.directory.get_member(member_id)
		if member is None or not scope.can_view_member(member):
			return []
		return await self.repo.member_follow_ups(member_id)

	async def create_follow_up(self, caller: Caller, payload: schemas.FollowUpCreateRequest) -> OperationResult:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return OperationResult.declined("Unauthorized")
		member = await self.directory.get_member(payload.member_id)
		if member is None or not scope.can_view_member(member):
			return OperationResult.declined("Member not found")
		values = payload.model_dump()
		values["account_id"] = caller.id
		follow_up = await self.repo.insert_follow_up(values)
		_LOG.info(
			"followups.created",
			extra={"follow_up_id": str(follow_up.id), "member_id": str(payload.member_id), "type": payload.type.value},
		)
		return OperationResult.ok("Follow-up logged", id=follow_up.id)

	async def delete_follow_up(self, caller: Caller, follow_up_id: UUID) -> OperationResult:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return OperationResult.declined("Follow-up not found")
		follow_up = await self.repo.get_follow_up(follow_up_id)
		if follow_up is None or not scope.can_view_member(follow_up.member):
			return OperationResult.declined("Follow-up not found")
		if not await self.repo.delete_follow_up(follow_up_id):
			return OperationResult.declined("Follow-up not found")
		return OperationResult.ok("Follow-up deleted", id=follow_up_id)

	async def members_needing_attention(
		self, caller: Caller, *, now: Optional[datetime] = None
	) -> list[models.AttentionItem]:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return []
		member_ids: list[UUID] | None = None
		if scope.needs_assignments:
			member_ids = list(await self.directory.assigned_member_ids(caller.id))
			if not member_ids:
				return []
		now = now or _now()

		inactive = await self.repo.inactive_members(
			camp_id=scope.camp_filter,
			member_ids=member_ids,
			attended_since=now - INACTIVE_AFTER,
			contacted_since=now - SNOOZE_FOR,
			limit=ATTENTION_LIMIT,
		)
		overdue = await self.repo.overdue_follow_ups(
			camp_id=scope.camp_filter,
			member_ids=member_ids,
			now=now,
			limit=ATTENTION_LIMIT,
		)

		items: list[models.AttentionItem] = []
		for row in inactive:
			items.append(
				models.AttentionItem(
					member_id=row["id"],
					kind=models.AttentionKind.INACTIVE,
					reference_id=row["id"],
					first_name=row["first_name"],
					last_name=row["last_name"],
					reason="No attendance in the last 4 weeks",
					days_overdue=row.get("days_overdue"),
				)
			)
		for row in overdue:
			items.append(
				models.AttentionItem(
					member_id=row["member_id"],
					kind=models.AttentionKind.OVERDUE,
					reference_id=row["follow_up_id"],
					first_name=row["first_name"],
					last_name=row["last_name"],
					reason="Scheduled follow-up is overdue",
					days_overdue=row.get("days_overdue"),
				)
			)
		return items

	async def dismiss_action_item(
		self, caller: Caller, payload: schemas.DismissRequest, *, now: Optional[datetime] = None
	) -> OperationResult:
		kind = payload.kind
		if kind == models.AttentionKind.OVERDUE:
			result = await self.delete_follow_up(caller, payload.reference_id)
			if not result.success:
				return result
			return OperationResult.ok("Follow-up removed", id=payload.reference_id)
		if kind == models.AttentionKind.INACTIVE:
			scope = resolve_scope(caller)
			member = await self.directory.get_member(payload.reference_id)
			if scope.is_empty or member is None or not scope.can_view_member(member):
				return OperationResult.declined("Member not found")
			follow_up = await self.repo.insert_follow_up(
				{
					"member_id": member.id,
					"account_id": caller.id,
					"type": models.FollowUpType.OTHER,
					"outcome": models.FollowUpOutcome.REACHED,
					"notes": DISMISS_NOTE,
					"completed_at": now or _now(),
				}
			)
			return OperationResult.ok("Alert snoozed for 1 week", id=follow_up.id)
		return OperationResult.declined("Invalid type")


__all__ = ["FollowUpService"]
