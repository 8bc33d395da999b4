"""Member directory endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from shepherd.api.deps import get_directory_service
from shepherd.directory import models, schemas
from shepherd.directory.results import MemberWriteResult, OperationResult
from shepherd.directory.service import DirectoryService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(prefix="/members", tags=["members"])


@router.get("", response_model=List[models.MemberWithCamp])
async def list_members(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[models.MemberWithCamp]:
	return await service.list_members(caller)


@router.get("/category-stats", response_model=schemas.CategoryStats)
async def category_stats(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> schemas.CategoryStats:
	return await service.category_stats(caller)


@router.get("/category/{category}", response_model=List[models.MemberWithCamp])
async def list_members_by_category(
	category: models.MemberCategory,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[models.MemberWithCamp]:
	return await service.list_members_by_category(caller, category)


@router.get("/{member_id}", response_model=models.MemberWithCamp)
async def get_member(
	member_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> models.MemberWithCamp:
	member = await service.get_member(caller, member_id)
	if member is None:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail="member_not_found")
	return member


@router.post("", response_model=MemberWriteResult)
async def create_member(
	payload: schemas.MemberCreateRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> MemberWriteResult:
	return await service.create_member(caller, payload)


@router.patch("/{member_id}", response_model=MemberWriteResult)
async def update_member(
	member_id: UUID,
	payload: schemas.MemberUpdateRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> MemberWriteResult:
	return await service.update_member(caller, member_id, payload)


@router.post("/bulk-delete", response_model=OperationResult)
async def delete_members(
	payload: schemas.BulkDeleteRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.delete_members(caller, payload.ids)
