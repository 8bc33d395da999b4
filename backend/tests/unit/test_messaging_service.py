from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from shepherd.domain.messaging.service import (
	AnnouncementRequest,
	EventNotificationRequest,
	MemberMessageRequest,
	MessagingService,
)
from shepherd.domain.messaging.sms import BulkSendReport, SendResult
from shepherd.domain.messaging.wishes import WishRequest, WishResult
from shepherd.infra.rate_limit import RateLimitExceeded
from shepherd.settings import settings


class RecordingGateway:
	def __init__(self, configured=True):
		self.configured = configured
		self.bulk = []
		self.single = []

	async def send(self, to, message):
		self.single.append((to, message))
		return SendResult(True, message_id="m-1")

	async def send_bulk(self, recipients, template):
		recipients = list(recipients)
		texts = [template(r.name) if callable(template) else template for r in recipients]
		self.bulk.append((recipients, texts))
		return BulkSendReport(sent=len(recipients), failed=0)


class StaticWishes:
	def __init__(self):
		self.requests = []

	async def generate(self, request):
		self.requests.append(request)
		return WishResult(success=True, content=f"Happy birthday {request.member_name}", model="test")


@pytest.fixture
def camp(directory_repo):
	return directory_repo.add_camp("Legon")


@pytest.fixture
def gateway():
	return RecordingGateway()


@pytest.fixture
def svc(gateway, directory_repo):
	return MessagingService(gateway, StaticWishes(), directory=directory_repo)


@pytest.mark.asyncio
async def test_event_notification_reaches_active_camp_members_with_phones(svc, gateway, directory_repo, camp, make_caller):
	directory_repo.add_member("Ama", camp_id=camp.id, phone="0241234567")
	directory_repo.add_member("Kojo", camp_id=camp.id)
	directory_repo.add_member("Efua", camp_id=camp.id, phone="0241234568", status="Inactive")
	directory_repo.add_member("Esi", camp_id=directory_repo.add_camp("KNUST").id, phone="0241234569")
	event = directory_repo.add_event("Retreat", camp_id=camp.id, date=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))

	report = await svc.send_event_notification(
		make_caller("Leader", camp_id=camp.id), EventNotificationRequest(event_id=event.id)
	)

	assert report.success is True
	assert report.sent == 1
	assert report.total_recipients == 2
	recipients, texts = gateway.bulk[0]
	assert [r.phone for r in recipients] == ["0241234567"]
	assert texts == ["Hi Ama! Reminder: Retreat on Saturday, 1 March 2025. We hope to see you there! - Agape Ministry"]


@pytest.mark.asyncio
async def test_event_notification_for_foreign_event_is_not_found(svc, gateway, directory_repo, camp, make_caller):
	event = directory_repo.add_event(camp_id=directory_repo.add_camp("KNUST").id)
	report = await svc.send_event_notification(
		make_caller("Leader", camp_id=camp.id), EventNotificationRequest(event_id=event.id)
	)
	assert report.success is False
	assert report.message == "Event not found"
	assert gateway.bulk == []


@pytest.mark.asyncio
async def test_unconfigured_gateway_is_reported(directory_repo, camp, make_caller):
	svc = MessagingService(RecordingGateway(configured=False), StaticWishes(), directory=directory_repo)
	event = directory_repo.add_event(camp_id=camp.id)
	report = await svc.send_event_notification(
		make_caller("Leader", camp_id=camp.id), EventNotificationRequest(event_id=event.id)
	)
	assert report.success is False
	assert report.message == "SMS not configured"


@pytest.mark.asyncio
async def test_birthday_messages_only_for_todays_birthdays(svc, gateway, directory_repo, camp, make_caller):
	directory_repo.add_member("Ama", camp_id=camp.id, phone="0241234567", birthday=date(1999, 3, 29))
	directory_repo.add_member("Kojo", camp_id=camp.id, phone="0241234568", birthday=date(1999, 3, 30))

	report = await svc.send_birthday_messages(make_caller("Admin"), today=date(2025, 3, 29))

	assert report.sent == 1
	recipients, texts = gateway.bulk[0]
	assert [r.name for r in recipients] == ["Ama"]
	assert "Happy Birthday Ama!" in texts[0]

	quiet = await svc.send_birthday_messages(make_caller("Admin"), today=date(2025, 1, 1))
	assert quiet.message == "No birthdays today"


@pytest.mark.asyncio
async def test_member_message_requires_phone(svc, gateway, directory_repo, camp, make_caller):
	silent = directory_repo.add_member("Kojo", camp_id=camp.id)
	reachable = directory_repo.add_member("Ama", camp_id=camp.id, phone="0241234567")
	leader = make_caller("Leader", camp_id=camp.id)

	missing = await svc.send_member_message(leader, MemberMessageRequest(member_id=silent.id, message="Hi"))
	sent = await svc.send_member_message(leader, MemberMessageRequest(member_id=reachable.id, message="Hi"))

	assert missing.message == "Member has no phone number"
	assert sent.success is True
	assert gateway.single == [("0241234567", "Hi")]


@pytest.mark.asyncio
async def test_announcement_refuses_members_outside_scope(svc, gateway, directory_repo, camp, make_caller):
	mine = directory_repo.add_member("Ama", camp_id=camp.id, phone="0241234567")
	theirs = directory_repo.add_member("Esi", camp_id=directory_repo.add_camp("KNUST").id, phone="0241234569")
	leader = make_caller("Leader", camp_id=camp.id)

	refused = await svc.send_announcement(leader, AnnouncementRequest(member_ids=[mine.id, theirs.id], message="Hello"))
	assert refused.success is False
	assert gateway.bulk == []

	unknown = await svc.send_announcement(leader, AnnouncementRequest(member_ids=[uuid4()], message="Hello"))
	assert unknown.message == "Member not found"

	ok = await svc.send_announcement(leader, AnnouncementRequest(member_ids=[mine.id], message="Hello"))
	assert ok.sent == 1
	assert gateway.bulk[0][1] == ["📢 Agape Ministry: Hello"]


@pytest.mark.asyncio
async def test_sms_budget_is_enforced_per_caller(monkeypatch, svc, gateway, directory_repo, camp, make_caller):
	monkeypatch.setattr(settings, "sms_rate_limit_per_hour", 1)
	member = directory_repo.add_member("Ama", camp_id=camp.id, phone="0241234567")
	leader = make_caller("Leader", camp_id=camp.id)
	payload = MemberMessageRequest(member_id=member.id, message="Hi")

	await svc.send_member_message(leader, payload)
	with pytest.raises(RateLimitExceeded):
		await svc.send_member_message(leader, payload)
	assert len(gateway.single) == 1

	other = make_caller("Leader", camp_id=camp.id)
	assert (await svc.send_member_message(other, payload)).success is True


@pytest.mark.asyncio
async def test_wish_generation_is_rate_limited(monkeypatch, svc, make_caller):
	monkeypatch.setattr(settings, "wish_rate_limit_per_minute", 2)
	caller = make_caller("Shepherd", camp_id=uuid4())
	request = WishRequest(member_name="Ama")

	first = await svc.generate_wish(caller, request)
	await svc.generate_wish(caller, request)
	assert first.content == "Happy birthday Ama"
	with pytest.raises(RateLimitExceeded):
		await svc.generate_wish(caller, request)
