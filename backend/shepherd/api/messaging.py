"""Outbound messaging endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from shepherd.api.deps import get_messaging_service
from shepherd.domain.messaging.service import (
	AnnouncementRequest,
	EventNotificationRequest,
	MemberMessageRequest,
	MessagingService,
	SendReport,
)
from shepherd.domain.messaging.wishes import WishRequest, WishResult
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(prefix="/messaging", tags=["messaging"])


@router.post("/event-notification", response_model=SendReport)
async def send_event_notification(
	payload: EventNotificationRequest,
	caller: Caller = Depends(get_current_caller),
	service: MessagingService = Depends(get_messaging_service),
) -> SendReport:
	return await service.send_event_notification(caller, payload)


@router.post("/birthdays", response_model=SendReport)
async def send_birthday_messages(
	caller: Caller = Depends(get_current_caller),
	service: MessagingService = Depends(get_messaging_service),
) -> SendReport:
	return await service.send_birthday_messages(caller)


@router.post("/member", response_model=SendReport)
async def send_member_message(
	payload: MemberMessageRequest,
	caller: Caller = Depends(get_current_caller),
	service: MessagingService = Depends(get_messaging_service),
) -> SendReport:
	return await service.send_member_message(caller, payload)


@router.post("/announcement", response_model=SendReport)
async def send_announcement(
	payload: AnnouncementRequest,
	caller: Caller = Depends(get_current_caller),
	service: MessagingService = Depends(get_messaging_service),
) -> SendReport:
	return await service.send_announcement(caller, payload)


@router.post("/birthday-wish", response_model=WishResult)
async def generate_birthday_wish(
	payload: WishRequest,
	caller: Caller = Depends(get_current_caller),
	service: MessagingService = Depends(get_messaging_service),
) -> WishResult:
	return await service.generate_wish(caller, payload)
