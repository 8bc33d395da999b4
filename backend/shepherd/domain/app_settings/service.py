"""Ministry-wide key/value settings merged over built-in defaults."""

from __future__ import annotations

import logging
import re
from typing import Dict

import asyncpg
from pydantic import BaseModel, Field, field_validator

from shepherd.directory.results import OperationResult
from shepherd.infra.auth import Caller
from shepherd.infra.postgres import get_pool

_LOG = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, str] = {
	"ministryName": "Agape Bible Studies",
	"campusName": "CoHK",
	"defaultMeetingUrl": "https://meet.google.com/pqr-wira-sxh",
	"birthdayReminders": "true",
	"attendanceAlerts": "true",
	"newConvertFollowups": "true",
	"theme": "agape-blue",
}

_KEY_PATTERN = r"^[A-Za-z][A-Za-z0-9_]{0,63}$"

_UPSERT = """
	INSERT INTO settings (key, value, updated_at)
	VALUES ($1, $2, NOW())
	ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
"""


class SettingWrite(BaseModel):
	key: str = Field(..., pattern=_KEY_PATTERN)
	value: str = Field(..., max_length=2000)


class SettingsBulkWrite(BaseModel):
	values: Dict[str, str] = Field(..., max_length=50)

	@field_validator("values")
	@classmethod
	def _check_entries(cls, value: Dict[str, str]) -> Dict[str, str]:
		for key, item in value.items():
			if not re.match(_KEY_PATTERN, key):
				raise ValueError(f"invalid setting key: {key}")
			if len(item) > 2000:
				raise ValueError(f"value too long for {key}")
		return value


class SettingsService:
	async def _get_pool(self) -> asyncpg.Pool:
		return await get_pool()

	async def get_settings(self) -> Dict[str, str]:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT key, value FROM settings")
		merged = dict(DEFAULT_SETTINGS)
		merged.update({row["key"]: row["value"] for row in rows})
		return merged

	async def save_setting(self, caller: Caller, payload: SettingWrite) -> OperationResult:
		if not caller.is_admin:
			return OperationResult.declined("Unauthorized")
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			await conn.execute(_UPSERT, payload.key, payload.value)
		_LOG.info("settings.saved", extra={"key": payload.key})
		return OperationResult.ok("Setting saved", count=1)

	async def save_all(self, caller: Caller, payload: SettingsBulkWrite) -> OperationResult:
		if not caller.is_admin:
			return OperationResult.declined("Unauthorized")
		entries = list(payload.values.items())
		if not entries:
			return OperationResult.declined("No settings supplied")
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.executemany(_UPSERT, entries)
		_LOG.info("settings.saved_all", extra={"count": len(entries)})
		return OperationResult.ok("Settings saved successfully!", count=len(entries))


__all__ = ["DEFAULT_SETTINGS", "SettingWrite", "SettingsBulkWrite", "SettingsService"]
