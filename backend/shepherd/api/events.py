"""Event and attendance endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from shepherd.api.deps import get_directory_service
from shepherd.directory import models, schemas
from shepherd.directory.results import OperationResult
from shepherd.directory.service import DirectoryService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(tags=["events"])


@router.get("/events", response_model=List[models.EventSummary])
async def list_events(
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[models.EventSummary]:
	return await service.list_events(caller)


@router.post("/events", response_model=OperationResult)
async def create_event(
	payload: schemas.EventCreateRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.create_event(caller, payload)


@router.delete("/events/{event_id}", response_model=OperationResult)
async def delete_event(
	event_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.delete_event(caller, event_id)


@router.get("/events/{event_id}/roster", response_model=List[schemas.RosterEntry])
async def event_roster(
	event_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> List[schemas.RosterEntry]:
	return await service.get_roster(caller, event_id)


@router.post("/attendance", response_model=OperationResult)
async def mark_attendance(
	payload: schemas.MarkAttendanceRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.mark_attendance(caller, payload)


@router.post("/attendance/bulk", response_model=OperationResult)
async def bulk_mark_attendance(
	payload: schemas.BulkAttendanceRequest,
	caller: Caller = Depends(get_current_caller),
	service: DirectoryService = Depends(get_directory_service),
) -> OperationResult:
	return await service.bulk_mark_attendance(caller, payload)
