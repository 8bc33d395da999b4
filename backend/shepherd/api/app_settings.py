"""Ministry settings endpoints. Writes are limited to Admin accounts."""

from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends

from shepherd.api.deps import get_settings_service
from shepherd.directory.models import AccountRole
from shepherd.directory.results import OperationResult
from shepherd.domain.app_settings.service import SettingsBulkWrite, SettingsService, SettingWrite
from shepherd.infra.auth import Caller, get_current_caller, require_roles

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=Dict[str, str])
async def get_settings(
	caller: Caller = Depends(get_current_caller),
	service: SettingsService = Depends(get_settings_service),
) -> Dict[str, str]:
	return await service.get_settings()


@router.put("", response_model=OperationResult)
async def save_all_settings(
	payload: SettingsBulkWrite,
	caller: Caller = Depends(require_roles(AccountRole.ADMIN)),
	service: SettingsService = Depends(get_settings_service),
) -> OperationResult:
	return await service.save_all(caller, payload)


@router.post("", response_model=OperationResult)
async def save_setting(
	payload: SettingWrite,
	caller: Caller = Depends(require_roles(AccountRole.ADMIN)),
	service: SettingsService = Depends(get_settings_service),
) -> OperationResult:
	return await service.save_setting(caller, payload)
