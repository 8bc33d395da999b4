"""Worker that applies queued identity-provider side effects.

Rows are processed in insertion order. Once an event for an account fails,
later events for the same account wait for the next pass so that, for
example, a ban is never applied before the create it depends on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from uuid import UUID

import asyncpg

from shepherd.directory import models
from shepherd.directory.repo import DirectoryRepository
from shepherd.infra.identity import (
	EmailAlreadyRegistered,
	IdentityProviderClient,
	IdentityProviderError,
	IdentityUserNotFound,
)
from shepherd.obs import metrics as obs_metrics
from shepherd.settings import settings

_LOG = logging.getLogger(__name__)


class IdentityOutboxDispatcher:
	"""Drains ``identity_outbox`` into the identity provider."""

	def __init__(
		self,
		client: IdentityProviderClient,
		*,
		repository: DirectoryRepository | None = None,
		batch_size: Optional[int] = None,
		max_attempts: Optional[int] = None,
		poll_interval: Optional[float] = None,
	) -> None:
		self.client = client
		self.repo = repository or DirectoryRepository()
		self.batch_size = batch_size or settings.identity_outbox_batch_size
		self.max_attempts = max_attempts or settings.identity_outbox_max_attempts
		self.poll_interval = poll_interval if poll_interval is not None else settings.identity_outbox_poll_seconds
		self._running = False
		self._lock = asyncio.Lock()

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			try:
				processed = await self.process_once()
			except Exception:  # pragma: no cover - keep polling after store outages
				_LOG.exception("identity_outbox.pass_failed")
				processed = 0
			if processed == 0:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False

	async def process_once(self) -> int:
		"""Run one pass and return how many events were applied."""
		async with self._lock:
			async with self.repo.transaction() as conn:
				events = await self.repo.claim_identity_events(self.batch_size, conn=conn)
				if not events:
					return 0
				blocked: set[UUID] = set()
				applied = 0
				for event in events:
					if event.account_id in blocked:
						continue
					try:
						rebound = await self._apply(event, conn)
					except IdentityProviderError as exc:
						blocked.add(event.account_id)
						await self._record_failure(event, exc, conn)
						continue
					await self.repo.mark_identity_event_done(event.id, conn=conn)
					obs_metrics.inc_identity_event(event.action.value, "done")
					applied += 1
					if rebound is not None:
						# Queued rows now carry the adopted id; pick them up next pass.
						blocked.add(event.account_id)
		return applied

	async def _record_failure(
		self, event: models.IdentityEvent, exc: IdentityProviderError, conn: asyncpg.Connection
	) -> None:
		attempts = event.attempts + 1
		final = attempts >= self.max_attempts
		await self.repo.mark_identity_event_failed(
			event.id,
			attempts=attempts,
			error=str(exc),
			final=final,
			conn=conn,
		)
		obs_metrics.inc_identity_event(event.action.value, "failed" if final else "retry")
		_LOG.warning(
			"identity_outbox.event_failed",
			extra={
				"event_id": event.id,
				"account_id": str(event.account_id),
				"action": event.action.value,
				"attempts": attempts,
				"final": final,
				"error": str(exc),
			},
		)

	async def _apply(self, event: models.IdentityEvent, conn: asyncpg.Connection) -> UUID | None:
		"""Apply one event. Returns the adopted identity id when a create was rebound."""
		payload = event.payload
		action = event.action
		if action is models.OutboxAction.CREATE:
			return await self._create(event, conn)
		elif action is models.OutboxAction.UPDATE:
			await self.client.update_user(event.account_id, email=payload.get("email"), role=payload.get("role"))
		elif action is models.OutboxAction.DELETE:
			try:
				await self.client.delete_user(event.account_id)
			except IdentityUserNotFound:
				_LOG.info("identity_outbox.delete_missing", extra={"account_id": str(event.account_id)})
		elif action in (models.OutboxAction.BAN, models.OutboxAction.UNBAN):
			await self.client.update_user(event.account_id, ban_duration=payload["ban_duration"])
		return None

	async def _create(self, event: models.IdentityEvent, conn: asyncpg.Connection) -> UUID | None:
		email = str(event.payload.get("email") or "")
		role = event.payload.get("role")
		try:
			await self.client.create_user(event.account_id, email, role)
			return None
		except EmailAlreadyRegistered:
			existing = await self.client.find_user_by_email(email)
			if existing is None:
				raise
		if existing.id != event.account_id:
			# Adopt the identity that already owns this email.
			await self.repo.rebind_account_id(event.account_id, existing.id, conn=conn)
			_LOG.info(
				"identity_outbox.account_rebound",
				extra={"account_id": str(event.account_id), "identity_id": str(existing.id)},
			)
		await self.client.update_user(existing.id, role=role)
		return existing.id if existing.id != event.account_id else None


__all__ = ["IdentityOutboxDispatcher"]
