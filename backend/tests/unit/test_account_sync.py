import asyncio

import pytest

from shepherd.directory import models, schemas
from shepherd.directory.results import AccountSyncOutcome, SuspensionChange
from shepherd.directory.service import DirectoryService
from shepherd.infra.identity import BAN_FOREVER


@pytest.fixture
def camp(directory_repo):
	return directory_repo.add_camp("Legon")


@pytest.fixture
def admin(make_caller):
	return make_caller("Admin")


def _bound_accounts(repo, member_id):
	return [a for a in repo.accounts.values() if a.member_id == member_id]


@pytest.mark.asyncio
async def test_promotion_creates_exactly_one_account(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Ama", camp_id=camp.id, email="ama@agape.org")

	first = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	again = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))

	assert first.account_sync is AccountSyncOutcome.CREATED
	assert again.account_sync is AccountSyncOutcome.LINKED
	accounts = _bound_accounts(directory_repo, member.id)
	assert len(accounts) == 1
	assert accounts[0].role is models.AccountRole.SHEPHERD
	assert accounts[0].camp_id == camp.id
	assert directory_repo.pending_actions(accounts[0].id) == [models.OutboxAction.CREATE]


@pytest.mark.asyncio
async def test_promotion_reuses_account_with_same_email(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	existing = directory_repo.add_account(models.AccountRole.SHEPHERD, email="Kojo@Agape.org")
	member = directory_repo.add_member("Kojo", camp_id=camp.id, email="kojo@agape.org")

	result = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Leader"))

	assert result.account_sync is AccountSyncOutcome.LINKED
	assert list(directory_repo.accounts) == [existing.id]
	account = directory_repo.accounts[existing.id]
	assert account.member_id == member.id
	assert account.role is models.AccountRole.LEADER
	assert directory_repo.pending_actions(existing.id) == [models.OutboxAction.UPDATE]


@pytest.mark.asyncio
async def test_demotion_removes_account_and_repromotion_creates_fresh_one(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Esi", camp_id=camp.id, email="esi@agape.org")
	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	original = _bound_accounts(directory_repo, member.id)[0]

	demoted = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Member"))
	assert demoted.account_sync is AccountSyncOutcome.REMOVED
	assert _bound_accounts(directory_repo, member.id) == []
	assert directory_repo.members[member.id].role is models.MemberRole.MEMBER
	assert models.OutboxAction.DELETE in directory_repo.pending_actions(original.id)

	promoted = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	assert promoted.account_sync is AccountSyncOutcome.CREATED
	fresh = _bound_accounts(directory_repo, member.id)
	assert len(fresh) == 1
	assert fresh[0].id != original.id


@pytest.mark.asyncio
async def test_archiving_suspends_without_changing_role(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Yaw", camp_id=camp.id, email="yaw@agape.org")
	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Leader"))
	account_id = _bound_accounts(directory_repo, member.id)[0].id

	archived = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(status="Archived"))
	assert archived.suspension is SuspensionChange.SUSPENDED
	assert directory_repo.accounts[account_id].is_suspended is True
	assert directory_repo.accounts[account_id].role is models.AccountRole.LEADER
	ban = directory_repo.outbox[-1]
	assert ban.action is models.OutboxAction.BAN
	assert ban.payload == {"ban_duration": BAN_FOREVER}

	restored = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(status="Active"))
	assert restored.suspension is SuspensionChange.RESTORED
	assert directory_repo.accounts[account_id].is_suspended is False
	assert directory_repo.outbox[-1].action is models.OutboxAction.UNBAN


@pytest.mark.asyncio
async def test_status_change_between_live_states_leaves_account_alone(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Abena", camp_id=camp.id, email="abena@agape.org")
	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	queued = len(directory_repo.outbox)

	result = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(status="Inactive"))
	assert result.suspension is None
	assert len(directory_repo.outbox) == queued


@pytest.mark.asyncio
async def test_promotion_without_email_is_skipped(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Kwesi", camp_id=camp.id)
	result = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	assert result.success is True
	assert result.account_sync is AccountSyncOutcome.SKIPPED_NO_EMAIL
	assert directory_repo.accounts == {}
	assert directory_repo.outbox == []


@pytest.mark.asyncio
async def test_admin_accounts_are_never_touched(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Nana", camp_id=camp.id, email="nana@agape.org")
	admin_account = directory_repo.add_account(
		models.AccountRole.ADMIN, email="nana@agape.org", member_id=member.id
	)

	demoted = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Member"))
	archived = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(status="Archived"))

	assert demoted.account_sync is AccountSyncOutcome.SKIPPED_ADMIN
	assert archived.suspension is None
	account = directory_repo.accounts[admin_account.id]
	assert account.role is models.AccountRole.ADMIN
	assert account.is_suspended is False
	assert directory_repo.outbox == []


@pytest.mark.asyncio
async def test_new_account_for_archived_member_starts_suspended(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	payload = schemas.MemberCreateRequest(
		first_name="Adwoa",
		last_name="Asante",
		email="adwoa@agape.org",
		role="Shepherd",
		status="Archived",
		camp_id=camp.id,
	)
	result = await svc.create_member(admin, payload)

	assert result.account_sync is AccountSyncOutcome.CREATED
	account = _bound_accounts(directory_repo, result.member.id)[0]
	assert account.is_suspended is True
	assert directory_repo.pending_actions(account.id) == [models.OutboxAction.CREATE, models.OutboxAction.BAN]


@pytest.mark.asyncio
async def test_member_write_and_sync_share_one_transaction(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	member = directory_repo.add_member("Fiifi", camp_id=camp.id, email="fiifi@agape.org")
	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	assert directory_repo.transactions == 1


@pytest.mark.asyncio
async def test_after_commit_hook_runs_only_when_events_were_queued(directory_repo, camp, admin):
	calls = []

	async def _flush():
		calls.append("flush")

	svc = DirectoryService(directory_repo, after_commit=_flush)
	member = directory_repo.add_member("Kobby", camp_id=camp.id, email="kobby@agape.org")

	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(region="Accra"))
	assert calls == []

	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	await svc.drain()
	assert calls == ["flush"]


@pytest.mark.asyncio
async def test_failing_after_commit_hook_does_not_fail_the_write(directory_repo, camp, admin):
	async def _broken():
		raise RuntimeError("identity provider down")

	svc = DirectoryService(directory_repo, after_commit=_broken)
	member = directory_repo.add_member("Akua", camp_id=camp.id, email="akua@agape.org")
	result = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Leader"))
	assert result.success is True
	assert result.account_sync is AccountSyncOutcome.CREATED
	await svc.drain()


@pytest.mark.asyncio
async def test_shepherd_cannot_promote_assigned_member(directory_repo, camp, make_caller):
	svc = DirectoryService(directory_repo)
	shepherd = make_caller("Shepherd", camp_id=camp.id)
	member = directory_repo.add_member("Kofi", camp_id=camp.id, email="kofi@agape.org")
	directory_repo.assign(member.id, shepherd.id)

	result = await svc.update_member(shepherd, member.id, schemas.MemberUpdateRequest(role="Leader"))
	assert result.success is False
	assert directory_repo.accounts == {}
	assert directory_repo.members[member.id].role is models.MemberRole.MEMBER


@pytest.mark.asyncio
async def test_slow_after_commit_hook_does_not_hold_the_write(directory_repo, camp, admin):
	release = asyncio.Event()
	calls = []

	async def _slow():
		await release.wait()
		calls.append("flush")

	svc = DirectoryService(directory_repo, after_commit=_slow)
	member = directory_repo.add_member("Adjoa", camp_id=camp.id, email="adjoa@agape.org")

	result = await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	assert result.success is True
	assert calls == []

	release.set()
	await svc.drain()
	assert calls == ["flush"]


@pytest.mark.asyncio
async def test_second_member_with_same_email_is_declined(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	first = await svc.create_member(
		admin,
		schemas.MemberCreateRequest(first_name="Ama", last_name="Owusu", email="dup@agape.org", role="Shepherd", camp_id=camp.id),
	)
	second = await svc.create_member(
		admin,
		schemas.MemberCreateRequest(first_name="Abena", last_name="Owusu", email="DUP@agape.org", role="Shepherd", camp_id=camp.id),
	)

	assert first.success is True
	assert second.success is False
	assert second.message == "Email already in use"
	assert len(directory_repo.members) == 1
	bound = _bound_accounts(directory_repo, first.member.id)
	assert len(bound) == 1
	assert bound[0].role is models.AccountRole.SHEPHERD


@pytest.mark.asyncio
async def test_update_to_another_members_email_is_declined(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	directory_repo.add_member("Ama", camp_id=camp.id, email="ama@agape.org")
	kojo = directory_repo.add_member("Kojo", camp_id=camp.id, email="kojo@agape.org")

	result = await svc.update_member(
		admin, kojo.id, schemas.MemberUpdateRequest(email="ama@agape.org", role="Shepherd")
	)

	assert result.success is False
	assert result.message == "Email already in use"
	assert directory_repo.members[kojo.id].email == "kojo@agape.org"
	assert directory_repo.accounts == {}


@pytest.mark.asyncio
async def test_promotion_never_takes_over_another_members_account(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	owner = directory_repo.add_member("Esi", camp_id=camp.id, email="esi@agape.org", role=models.MemberRole.SHEPHERD)
	account = directory_repo.add_account(
		models.AccountRole.SHEPHERD, email="shared@agape.org", member_id=owner.id, camp_id=camp.id
	)
	other = directory_repo.add_member("Yaa", camp_id=camp.id, email="shared@agape.org")

	result = await svc.update_member(admin, other.id, schemas.MemberUpdateRequest(role="Shepherd"))

	assert result.success is False
	assert result.message == "Email already in use"
	assert directory_repo.accounts[account.id].member_id == owner.id
	assert directory_repo.members[other.id].role is models.MemberRole.MEMBER
	assert directory_repo.pending_actions() == []


@pytest.mark.asyncio
async def test_email_change_onto_existing_login_is_declined(directory_repo, camp, admin):
	svc = DirectoryService(directory_repo)
	directory_repo.add_account(models.AccountRole.ADMIN, email="office@agape.org")
	member = directory_repo.add_member("Kwesi", camp_id=camp.id, email="kwesi@agape.org")
	await svc.update_member(admin, member.id, schemas.MemberUpdateRequest(role="Shepherd"))
	account = _bound_accounts(directory_repo, member.id)[0]

	result = await svc.update_member(
		admin, member.id, schemas.MemberUpdateRequest(email="office@agape.org", role="Shepherd")
	)

	assert result.success is False
	assert result.message == "Email already in use"
	assert directory_repo.members[member.id].email == "kwesi@agape.org"
	assert directory_repo.accounts[account.id].email == "kwesi@agape.org"
	assert directory_repo.pending_actions(account.id) == [models.OutboxAction.CREATE]
