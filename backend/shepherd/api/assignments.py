"""Shepherd assignment endpoints."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shepherd.api.deps import get_directory_service
from shepherd.directory import models, schemas
from shepherd.directory.results import OperationResult
from shepherd.directory.service import DirectoryService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.get("/members", response_model=List[models.MemberWithCamp])
async def shepherd_members(
	shepherd_id: Optional[UUID] = Query(default=None),
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[models.MemberWithCamp]:
	return await service.shepherd_members(caller, shepherd_id)


@router.get("/available", response_model=List[models.MemberWithCamp])
async def available_members(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[models.MemberWithCamp]:
	return await service.available_members(caller)


@router.get("/shepherds", response_model=List[schemas.AccountSummary])
async def list_shepherds(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[schemas.AccountSummary]:
	return await service.list_shepherds(caller)


@router.get("/leaders", response_model=List[schemas.AccountSummary])
async def list_leaders(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[schemas.AccountSummary]:
	return await service.list_leaders(caller)


@router.post("", response_model=OperationResult)
async def assign_members(
	payload: schemas.AssignMembersRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.assign_members(caller, payload)


@router.put("", response_model=OperationResult)
async def reassign_member(
	payload: schemas.AssignmentRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.reassign_member(caller, payload)


@router.post("/remove", response_model=OperationResult)
async def remove_assignment(
	payload: schemas.AssignmentRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.remove_assignment(caller, payload)
