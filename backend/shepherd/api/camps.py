"""Camp endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from shepherd.api.deps import get_directory_service
from shepherd.directory import models, schemas
from shepherd.directory.results import OperationResult
from shepherd.directory.service import DirectoryService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(prefix="/camps", tags=["camps"])


@router.get("", response_model=List[models.CampSummary])
async def list_camps(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[models.CampSummary]:
	return await service.list_camps(caller)


@router.get("/{camp_id}", response_model=schemas.CampDetails)
async def camp_details(
	camp_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> schemas.CampDetails:
	details = await service.camp_details(caller, camp_id)
	if details is None:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail="camp_not_found")
	return details


@router.get("/{camp_id}/dashboard", response_model=schemas.CampDashboard)
async def camp_dashboard(
	camp_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> schemas.CampDashboard:
	dashboard = await service.camp_dashboard(caller, camp_id)
	if dashboard is None:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail="camp_not_found")
	return dashboard


@router.post("", response_model=OperationResult)
async def create_camp(
	payload: schemas.CampCreateRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.create_camp(caller, payload)


@router.patch("/{camp_id}", response_model=OperationResult)
async def update_camp(
	camp_id: UUID,
	payload: schemas.CampUpdateRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.update_camp(caller, camp_id, payload)


@router.delete("/{camp_id}", response_model=OperationResult)
async def delete_camp(
	camp_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.delete_camp(caller, camp_id)
