"""Keep login accounts in step with the member they are bound to.

Runs inside the member write transaction. Local account rows change
immediately; identity-provider work is only recorded in the outbox and is
applied after commit by :mod:`shepherd.directory.outbox`.

Demoting a member to a role without system access deletes the bound account
outright. Any role edit can therefore revoke a person's login.
An email already held by another member's account raises
:class:`~shepherd.directory.exceptions.EmailInUse` so the write rolls back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import asyncpg

from shepherd.directory import models
from shepherd.directory.exceptions import EmailInUse
from shepherd.directory.repo import DirectoryRepository
from shepherd.directory.results import AccountSyncOutcome, SuspensionChange
from shepherd.infra.identity import BAN_FOREVER, BAN_NONE
from shepherd.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncReport:
	account: Optional[AccountSyncOutcome] = None
	suspension: Optional[SuspensionChange] = None
	enqueued: int = 0


def _account_role(role: models.MemberRole) -> models.AccountRole:
	return models.AccountRole(role.value)


async def sync_member_account(
	repo: DirectoryRepository,
	member: models.Member,
	*,
	previous: models.Member | None,
	role_supplied: bool,
	status_supplied: bool,
	conn: asyncpg.Connection | None,
) -> SyncReport:
	"""Apply role and status synchronisation for one freshly written member."""
	report = SyncReport()
	bound = await repo.get_account_by_member(member.id, conn=conn)

	if role_supplied:
		if member.role in models.ACCOUNT_ROLES:
			bound = await _promote(repo, member, bound, report, conn=conn)
		else:
			bound = await _demote(repo, member, bound, report, conn=conn)
		obs_metrics.inc_account_sync(report.account.value if report.account else "none")

	status_changed = status_supplied and previous is not None and previous.status != member.status
	if (
		status_changed
		and bound is not None
		and bound.role is not models.AccountRole.ADMIN
		and report.account is not AccountSyncOutcome.CREATED
	):
		await _apply_status(repo, member, previous, bound, report, conn=conn)
	return report


async def _promote(
	repo: DirectoryRepository,
	member: models.Member,
	bound: models.Account | None,
	report: SyncReport,
	*,
	conn: asyncpg.Connection | None,
) -> models.Account | None:
	account = bound
	if account is None and member.email:
		account = await repo.get_account_by_email(member.email, conn=conn)
		if account is not None and account.member_id not in (None, member.id):
			# Bound to someone else; taking it over would orphan that member
			raise EmailInUse()
	if account is not None and account.role is models.AccountRole.ADMIN:
		report.account = AccountSyncOutcome.SKIPPED_ADMIN
		return account
	if not member.email:
		# An account needs a login email; keep whatever is bound untouched.
		report.account = AccountSyncOutcome.SKIPPED_NO_EMAIL
		return account

	role = _account_role(member.role)
	if account is None:
		account_id = uuid4()
		archived = member.status is models.MemberStatus.ARCHIVED
		account = await repo.insert_account(
			account_id=account_id,
			email=member.email,
			role=role,
			member_id=member.id,
			camp_id=member.camp_id,
			first_name=member.first_name,
			last_name=member.last_name,
			is_suspended=archived,
			conn=conn,
		)
		await repo.enqueue_identity_event(
			account_id,
			models.OutboxAction.CREATE,
			{"email": member.email, "role": role.value},
			conn=conn,
		)
		report.enqueued += 1
		if archived:
			await repo.enqueue_identity_event(
				account_id, models.OutboxAction.BAN, {"ban_duration": BAN_FOREVER}, conn=conn
			)
			report.enqueued += 1
		report.account = AccountSyncOutcome.CREATED
		_LOG.info("account_sync.created", extra={"member_id": str(member.id), "account_id": str(account_id)})
		return account

	email_changed = account.email.lower() != member.email.lower()
	if email_changed:
		holder = await repo.get_account_by_email(member.email, conn=conn)
		if holder is not None and holder.id != account.id:
			raise EmailInUse()
	identity_changed = email_changed or account.role is not role
	account = await repo.update_account(
		account.id,
		email=member.email,
		role=role,
		member_id=member.id,
		camp_id=member.camp_id,
		first_name=member.first_name,
		last_name=member.last_name,
		conn=conn,
	)
	if identity_changed:
		await repo.enqueue_identity_event(
			account.id,
			models.OutboxAction.UPDATE,
			{"email": member.email, "role": role.value},
			conn=conn,
		)
		report.enqueued += 1
	report.account = AccountSyncOutcome.LINKED
	return account


async def _demote(
	repo: DirectoryRepository,
	member: models.Member,
	bound: models.Account | None,
	report: SyncReport,
	*,
	conn: asyncpg.Connection | None,
) -> models.Account | None:
	if bound is None:
		report.account = AccountSyncOutcome.NO_ACCOUNT
		return None
	if bound.role is models.AccountRole.ADMIN:
		report.account = AccountSyncOutcome.SKIPPED_ADMIN
		return bound
	await repo.delete_account(bound.id, conn=conn)
	await repo.enqueue_identity_event(
		bound.id, models.OutboxAction.DELETE, {"email": bound.email}, conn=conn
	)
	report.enqueued += 1
	report.account = AccountSyncOutcome.REMOVED
	_LOG.info("account_sync.removed", extra={"member_id": str(member.id), "account_id": str(bound.id)})
	return None


async def _apply_status(
	repo: DirectoryRepository,
	member: models.Member,
	previous: models.Member,
	account: models.Account,
	report: SyncReport,
	*,
	conn: asyncpg.Connection | None,
) -> None:
	archived_now = member.status is models.MemberStatus.ARCHIVED
	archived_before = previous.status is models.MemberStatus.ARCHIVED
	if archived_now and not archived_before:
		await repo.set_account_suspended(account.id, True, conn=conn)
		await repo.enqueue_identity_event(
			account.id, models.OutboxAction.BAN, {"ban_duration": BAN_FOREVER}, conn=conn
		)
		report.suspension = SuspensionChange.SUSPENDED
	elif archived_before and not archived_now:
		await repo.set_account_suspended(account.id, False, conn=conn)
		await repo.enqueue_identity_event(
			account.id, models.OutboxAction.UNBAN, {"ban_duration": BAN_NONE}, conn=conn
		)
		report.suspension = SuspensionChange.RESTORED
	else:
		return
	report.enqueued += 1
