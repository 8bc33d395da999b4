"""Self-service profile update links.

A leader or shepherd generates a random token for a member and shares the
link. Whoever holds the link may update that member's contact details once,
until the token expires.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import asyncpg

from shepherd.directory.repo import DirectoryRepository
from shepherd.directory.results import OperationResult
from shepherd.directory.scope import resolve_scope
from shepherd.domain.profile_links import schemas
from shepherd.infra.auth import Caller
from shepherd.infra.postgres import get_pool
from shepherd.settings import settings

_LOG = logging.getLogger(__name__)

_INVALID = "Invalid or expired link"


def sms_text(name: str, url: str, days: int) -> str:
	return (
		f"Hi {name}! 👋\nAgape Ministries invites you to update your profile.\n"
		f"Tap here: {url}\nLink expires in {days} days."
	)


def whatsapp_text(name: str, url: str, days: int) -> str:
	return (
		f"Hi {name}! 👋\n\n"
		"Agape Incorporated Ministries invites you to update your profile information.\n\n"
		f"📝 Tap to update: {url}\n\n"
		f"This link expires in {days} days."
	)


class ProfileLinkService:
	def __init__(self, directory: DirectoryRepository | None = None) -> None:
		self.directory = directory or DirectoryRepository()

	async def _get_pool(self) -> asyncpg.Pool:
		return await get_pool()

	async def generate_update_token(
		self, caller: Caller, member_id: UUID, *, now: Optional[datetime] = None
	) -> schemas.UpdateLink | OperationResult:
		scope = resolve_scope(caller)
		member = await self.directory.get_member(member_id) if not scope.is_empty else None
		if member is None or not scope.can_view_member(member):
			return OperationResult.declined("Member not found")
		assigned = frozenset()
		if scope.needs_assignments:
			assigned = frozenset(await self.directory.assigned_member_ids(caller.id))
		if not scope.can_edit_member(member, assigned):
			return OperationResult.declined(f"Unauthorized - {scope.edit_denial()}")

		token = secrets.token_urlsafe(32)
		days = settings.profile_token_ttl_days
		expires_at = (now or datetime.now(timezone.utc)) + timedelta(days=days)
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			await conn.execute(
				"UPDATE members SET update_token = $2, token_expires_at = $3 WHERE id = $1",
				member_id,
				token,
				expires_at,
			)
		url = f"{settings.app_url.rstrip('/')}/update/{token}"
		_LOG.info("profile_links.generated", extra={"member_id": str(member_id)})
		return schemas.UpdateLink(
			token=token,
			url=url,
			expires_at=expires_at,
			member_name=member.first_name,
			member_phone=member.phone,
			sms_text=sms_text(member.first_name, url, days),
			whatsapp_text=whatsapp_text(member.first_name, url, days),
		)

	async def validate_token(self, token: str) -> schemas.TokenCheck:
		if not token:
			return schemas.TokenCheck(valid=False, message=_INVALID)
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"SELECT id, {', '.join(schemas.PROFILE_FIELDS)} FROM members "
				"WHERE update_token = $1 AND token_expires_at > NOW()",
				token,
			)
		if row is None:
			return schemas.TokenCheck(valid=False, message=_INVALID)
		return schemas.TokenCheck(valid=True, member=schemas.EditableProfile(**dict(row)))

	async def apply_profile_update(self, token: str, payload: schemas.ProfileUpdateRequest) -> OperationResult:
		"""Write the changes and burn the token in one guarded statement."""
		if not token:
			return OperationResult.declined(_INVALID)
		changes = payload.changes()
		columns = [column for column in schemas.PROFILE_FIELDS if column in changes]
		assignments = [f"{column} = ${idx}" for idx, column in enumerate(columns, start=2)]
		assignments += ["update_token = NULL", "token_expires_at = NULL"]
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			member_id = await conn.fetchval(
				f"""
				UPDATE members SET {', '.join(assignments)}
				WHERE update_token = $1 AND token_expires_at > NOW()
				RETURNING id
				""",
				token,
				*[changes[column] for column in columns],
			)
		if member_id is None:
			return OperationResult.declined(_INVALID)
		_LOG.info("profile_links.applied", extra={"member_id": str(member_id), "fields": columns})
		return OperationResult.ok("Profile updated successfully!", id=member_id)


__all__ = ["ProfileLinkService", "sms_text", "whatsapp_text"]
