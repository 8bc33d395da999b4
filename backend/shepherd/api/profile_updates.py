"""Profile update links.

Generating a link needs an authenticated caller. Checking and using a link
only needs the token itself.
"""

from __future__ import annotations

from typing import Annotated, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Path

from shepherd.api.deps import get_profile_link_service
from shepherd.directory.results import OperationResult
from shepherd.domain.profile_links import schemas
from shepherd.domain.profile_links.service import ProfileLinkService
from shepherd.infra.auth import Caller, get_current_caller

router = APIRouter(tags=["profile-updates"])

_Token = Annotated[str, Path(min_length=8, max_length=128)]


@router.post("/members/{member_id}/update-link", response_model=Union[schemas.UpdateLink, OperationResult])
async def generate_update_link(
	member_id: UUID,
	caller: Caller = Depends(get_current_caller),
	service: ProfileLinkService = Depends(get_profile_link_service),
) -> Union[schemas.UpdateLink, OperationResult]:
	return await service.generate_update_token(caller, member_id)


@router.get("/profile-updates/{token}", response_model=schemas.TokenCheck)
async def validate_update_token(
	token: _Token,
	service: ProfileLinkService = Depends(get_profile_link_service),
) -> schemas.TokenCheck:
	return await service.validate_token(token)


@router.post("/profile-updates/{token}", response_model=OperationResult)
async def apply_profile_update(
	payload: schemas.ProfileUpdateRequest,
	token: _Token,
	service: ProfileLinkService = Depends(get_profile_link_service),
) -> OperationResult:
	return await service.apply_profile_update(token, payload)
