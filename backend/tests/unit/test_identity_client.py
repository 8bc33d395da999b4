import json
from uuid import uuid4

import httpx
import pytest

from shepherd.infra.identity import (
	EmailAlreadyRegistered,
	IdentityProviderClient,
	IdentityProviderError,
	IdentityProviderReady,
	IdentityProviderUnavailable,
	IdentityUserNotFound,
	connect_identity_provider,
)
from shepherd.settings import settings


def _config(**values):
	return settings.model_copy(update=values)


def _client(handler) -> IdentityProviderClient:
	http = httpx.AsyncClient(base_url="https://id.example.org", transport=httpx.MockTransport(handler))
	return IdentityProviderClient(http=http, service_key="service-key")


@pytest.mark.asyncio
async def test_create_user_sends_admin_headers_and_role_metadata():
	seen = {}
	user_id = uuid4()

	def handler(request: httpx.Request) -> httpx.Response:
		seen["path"] = request.url.path
		seen["auth"] = request.headers["Authorization"]
		seen["apikey"] = request.headers["apikey"]
		seen["body"] = json.loads(request.content)
		return httpx.Response(200, json={"id": str(user_id), "email": "ama@agape.org", "app_metadata": {"role": "Shepherd"}})

	client = _client(handler)
	user = await client.create_user(user_id, "ama@agape.org", "Shepherd")
	await client.aclose()

	assert seen["path"] == "/auth/v1/admin/users"
	assert seen["auth"] == "Bearer service-key"
	assert seen["apikey"] == "service-key"
	assert seen["body"]["id"] == str(user_id)
	assert seen["body"]["email_confirm"] is True
	assert seen["body"]["app_metadata"] == {"role": "Shepherd"}
	assert user.id == user_id
	assert user.role == "Shepherd"


@pytest.mark.asyncio
async def test_email_conflict_maps_to_email_already_registered():
	def handler(request: httpx.Request) -> httpx.Response:
		return httpx.Response(422, json={"code": 422, "error_code": "email_exists", "msg": "exists"})

	client = _client(handler)
	with pytest.raises(EmailAlreadyRegistered):
		await client.create_user(uuid4(), "ama@agape.org", "Leader")


@pytest.mark.asyncio
async def test_not_found_and_server_errors_are_typed():
	def handler(request: httpx.Request) -> httpx.Response:
		if request.method == "DELETE":
			return httpx.Response(404, json={"msg": "User not found"})
		return httpx.Response(503, text="unavailable")

	client = _client(handler)
	with pytest.raises(IdentityUserNotFound):
		await client.delete_user(uuid4())
	with pytest.raises(IdentityProviderError) as exc:
		await client.update_user(uuid4(), ban_duration="none")
	assert exc.value.status_code == 503
	assert not isinstance(exc.value, IdentityUserNotFound)


@pytest.mark.asyncio
async def test_transport_failure_becomes_provider_error():
	def handler(request: httpx.Request) -> httpx.Response:
		raise httpx.ConnectError("refused", request=request)

	client = _client(handler)
	with pytest.raises(IdentityProviderError) as exc:
		await client.delete_user(uuid4())
	assert str(exc.value) == "transport_error:ConnectError"


@pytest.mark.asyncio
async def test_find_user_by_email_matches_case_insensitively():
	match_id = uuid4()

	def handler(request: httpx.Request) -> httpx.Response:
		assert request.url.params["filter"] == "kojo@agape.org"
		return httpx.Response(
			200,
			json={
				"users": [
					{"id": str(uuid4()), "email": "kojo.other@agape.org"},
					{"id": str(match_id), "email": "Kojo@Agape.org"},
				]
			},
		)

	client = _client(handler)
	found = await client.find_user_by_email(" KOJO@agape.org ")
	assert found is not None
	assert found.id == match_id


@pytest.mark.asyncio
async def test_update_user_only_sends_supplied_fields():
	bodies = []
	user_id = uuid4()

	def handler(request: httpx.Request) -> httpx.Response:
		bodies.append(json.loads(request.content))
		return httpx.Response(200, json={"id": str(user_id), "email": None})

	client = _client(handler)
	await client.update_user(user_id, ban_duration="876000h")
	await client.update_user(user_id, email="new@agape.org", role="Leader")
	assert bodies[0] == {"ban_duration": "876000h"}
	assert bodies[1]["email"] == "new@agape.org"
	assert bodies[1]["app_metadata"] == {"role": "Leader"}
	assert "ban_duration" not in bodies[1]


@pytest.mark.asyncio
async def test_get_session_user_uses_caller_token():
	user_id = uuid4()

	def handler(request: httpx.Request) -> httpx.Response:
		assert request.url.path == "/auth/v1/user"
		assert request.headers["Authorization"] == "Bearer user-access-token"
		return httpx.Response(200, json={"id": str(user_id), "email": "ama@agape.org"})

	client = _client(handler)
	user = await client.get_session_user("user-access-token")
	assert user.id == user_id


def test_connect_reports_missing_configuration():
	missing_url = connect_identity_provider(_config(identity_url=None, identity_service_key="k"))
	missing_key = connect_identity_provider(_config(identity_url="https://id.example.org", identity_service_key=None))
	bad_url = connect_identity_provider(_config(identity_url="id.example.org", identity_service_key="k"))

	assert isinstance(missing_url, IdentityProviderUnavailable)
	assert missing_url.reason == "identity_url_missing"
	assert missing_key.reason == "identity_service_key_missing"
	assert bad_url.reason == "identity_url_invalid"


@pytest.mark.asyncio
async def test_connect_returns_ready_client():
	config = _config(identity_url="https://id.example.org/", identity_service_key="k")
	connection = connect_identity_provider(config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
	assert isinstance(connection, IdentityProviderReady)
	assert connection.client.http.base_url.host == "id.example.org"
	await connection.client.aclose()
