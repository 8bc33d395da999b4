"""Follow-up endpoints."""

from __future__ import annotations

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shepherd.api.deps import get_followup_service
from shepherd.directory.results import OperationResult
from shepherd.domain.followups import models, schemas
from shepherd.domain.followups.service import FollowUpService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(tags=["follow-ups"])


@router.get("/follow-ups", response_model=schemas.FollowUpPage)
async def list_follow_ups(
	filters: Annotated[schemas.FollowUpFilters, Query()],
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> schemas.FollowUpPage:
	return await service.list_follow_ups(caller, filters)


@router.get("/follow-ups/stats", response_model=schemas.FollowUpStats)
async def follow_up_stats(
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> schemas.FollowUpStats:
	return await service.stats(caller)


@router.get("/follow-ups/attention", response_model=List[models.AttentionItem])
async def members_needing_attention(
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> List[models.AttentionItem]:
	return await service.members_needing_attention(caller)


@router.post("/follow-ups/attention/dismiss", response_model=OperationResult)
async def dismiss_action_item(
	payload: schemas.DismissRequest,
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> OperationResult:
	return await service.dismiss_action_item(caller, payload)


@router.post("/follow-ups", response_model=OperationResult)
async def create_follow_up(
	payload: schemas.FollowUpCreateRequest,
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> OperationResult:
	return await service.create_follow_up(caller, payload)


@router.delete("/follow-ups/{follow_up_id}", response_model=OperationResult)
async def delete_follow_up(
	follow_up_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> OperationResult:
	return await service.delete_follow_up(caller, follow_up_id)


@router.get("/members/{member_id}/follow-ups", response_model=List[models.FollowUpView])
async def member_follow_ups(
	member_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: FollowUpService = Depends(get_followup_service),
) -> List[models.FollowUpView]:
	return await service.member_follow_ups(caller, member_id)
