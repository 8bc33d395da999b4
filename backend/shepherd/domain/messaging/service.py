"""Outbound member messaging: event reminders, birthday texts and wishes.

Every send is budgeted per caller through Redis counters. Gateway failures
are counted in the report; they never fail the request.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from shepherd.directory import models as directory_models
from shepherd.directory.repo import DirectoryRepository
from shepherd.directory.scope import resolve_scope
from shepherd.domain.messaging.sms import Recipient, SmsGateway, SmsTemplates
from shepherd.domain.messaging.wishes import WishGenerator, WishRequest, WishResult
from shepherd.infra import rate_limit
from shepherd.infra.auth import Caller
from shepherd.obs import metrics as obs_metrics
from shepherd.settings import settings

_LOG = logging.getLogger(__name__)


class EventNotificationRequest(BaseModel):
	event_id: UUID


class MemberMessageRequest(BaseModel):
	member_id: UUID
	message: str = Field(..., min_length=1, max_length=918)


class AnnouncementRequest(BaseModel):
	member_ids: List[UUID] = Field(..., min_length=1, max_length=1000)
	message: str = Field(..., min_length=1, max_length=800)


class SendReport(BaseModel):
	success: bool
	message: Optional[str] = None
	sent: int = 0
	failed: int = 0
	total_recipients: int = 0


def _event_date(value) -> str:
	return f"{value.strftime('%A')}, {value.day} {value.strftime('%B %Y')}"


def _with_phones(members: List[directory_models.MemberWithCamp]) -> List[Recipient]:
	return [Recipient(phone=member.phone, name=member.first_name) for member in members if member.phone]


class MessagingService:
	def __init__(
		self,
		gateway: SmsGateway,
		wishes: WishGenerator,
		*,
		directory: DirectoryRepository | None = None,
	) -> None:
		self.gateway = gateway
		self.wishes = wishes
		self.directory = directory or DirectoryRepository()

	async def _spend_sms_budget(self, caller: Caller) -> None:
		try:
			await rate_limit.enforce(
				"sms", str(caller.id), limit=settings.sms_rate_limit_per_hour, window_seconds=3600
			)
		except rate_limit.RateLimitExceeded:
			_LOG.warning("messaging.rate_limited", extra={"kind": "sms", "account_id": str(caller.id)})
			raise

	async def send_event_notification(self, caller: Caller, payload: EventNotificationRequest) -> SendReport:
		scope = resolve_scope(caller)
		event = await self.directory.get_event(payload.event_id) if not scope.is_empty else None
		if event is None or not scope.can_view_event(event):
			return SendReport(success=False, message="Event not found")
		if not self.gateway.configured:
			return SendReport(success=False, message="SMS not configured")
		await self._spend_sms_budget(caller)
		members = await self.directory.list_active_members(camp_id=scope.camp_filter)
		recipients = _with_phones(members)
		event_date = _event_date(event.date)
		report = await self.gateway.send_bulk(
			recipients,
			lambda name: SmsTemplates.event_reminder(name, event.name, event_date),
		)
		_LOG.info(
			"messaging.event_notified",
			extra={"event_id": str(event.id), "sent": report.sent, "failed": report.failed},
		)
		return SendReport(success=True, sent=report.sent, failed=report.failed, total_recipients=len(members))

	async def send_birthday_messages(self, caller: Caller, *, today: Optional[date] = None) -> SendReport:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return SendReport(success=False, message="Unauthorized")
		if not self.gateway.configured:
			return SendReport(success=False, message="SMS not configured")
		today = today or date.today()
		members = [
			member
			for member in await self.directory.list_active_members(camp_id=scope.camp_filter)
			if member.birthday is not None
			and (member.birthday.month, member.birthday.day) == (today.month, today.day)
		]
		if not members:
			return SendReport(success=True, message="No birthdays today")
		await self._spend_sms_budget(caller)
		report = await self.gateway.send_bulk(_with_phones(members), SmsTemplates.birthday_wish)
		return SendReport(success=True, sent=report.sent, failed=report.failed, total_recipients=len(members))

	async def send_member_message(self, caller: Caller, payload: MemberMessageRequest) -> SendReport:
		scope = resolve_scope(caller)
		member = await self.directory.get_member(payload.member_id) if not scope.is_empty else None
		if member is None or not scope.can_view_member(member):
			return SendReport(success=False, message="Member not found")
		if not member.phone:
			return SendReport(success=False, message="Member has no phone number")
		await self._spend_sms_budget(caller)
		result = await self.gateway.send(member.phone, payload.message)
		obs_metrics.inc_sms("sent" if result.success else "failed")
		if not result.success:
			return SendReport(success=False, message=result.error, failed=1, total_recipients=1)
		return SendReport(success=True, sent=1, total_recipients=1)

	async def send_announcement(self, caller: Caller, payload: AnnouncementRequest) -> SendReport:
		scope = resolve_scope(caller)
		if scope.is_empty:
			return SendReport(success=False, message="Unauthorized")
		ids = list(dict.fromkeys(payload.member_ids))
		members = await self.directory.get_members(ids)
		if len(members) != len(ids) or any(not scope.can_view_member(member) for member in members):
			return SendReport(success=False, message="Member not found")
		if not self.gateway.configured:
			return SendReport(success=False, message="SMS not configured")
		await self._spend_sms_budget(caller)
		report = await self.gateway.send_bulk(_with_phones(members), SmsTemplates.announcement(payload.message))
		return SendReport(success=True, sent=report.sent, failed=report.failed, total_recipients=len(members))

	async def generate_wish(self, caller: Caller, request: WishRequest) -> WishResult:
		try:
			await rate_limit.enforce(
				"wish", str(caller.id), limit=settings.wish_rate_limit_per_minute, window_seconds=60
			)
		except rate_limit.RateLimitExceeded:
			_LOG.warning("messaging.rate_limited", extra={"kind": "wish", "account_id": str(caller.id)})
			raise
		return await self.wishes.generate(request)


__all__ = [
	"AnnouncementRequest",
	"EventNotificationRequest",
	"MemberMessageRequest",
	"MessagingService",
	"SendReport",
]
