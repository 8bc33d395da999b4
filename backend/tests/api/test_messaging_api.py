import pytest

from shepherd.api.deps import get_messaging_service
from shepherd.directory import models
from shepherd.infra.rate_limit import Budget, RateLimitExceeded
from shepherd.main import app


class ExhaustedMessaging:
	async def generate_wish(self, caller, request):
		raise RateLimitExceeded(Budget("wish", 3, 2, 30))


@pytest.mark.asyncio
async def test_spent_budget_maps_to_429(api_client, authed_accounts):
	account = authed_accounts.add_account(models.AccountRole.SHEPHERD)
	app.dependency_overrides[get_messaging_service] = lambda: ExhaustedMessaging()

	resp = await api_client.post(
		"/messaging/birthday-wish",
		json={"member_name": "Ama"},
		headers={"X-Account-Id": str(account.id)},
	)

	assert resp.status_code == 429
	assert resp.headers["Retry-After"] == "30"
	body = resp.json()
	assert body["detail"] == "rate_limited"
	assert body["request_id"]


@pytest.mark.asyncio
async def test_messaging_requires_caller(api_client, authed_accounts):
	app.dependency_overrides[get_messaging_service] = lambda: ExhaustedMessaging()
	resp = await api_client.post("/messaging/birthday-wish", json={"member_name": "Ama"})
	assert resp.status_code == 401
