"""Client for the identity provider's admin API (GoTrue compatible).

The client is constructed explicitly at startup and handed to whoever needs it.
`connect_identity_provider` reports a typed result instead of raising so the
application can boot without a configured provider and surface the reason.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union
from uuid import UUID

import httpx

from shepherd.settings import Settings

BAN_FOREVER = "876000h"
BAN_NONE = "none"


class IdentityProviderError(Exception):
    """Raised when the identity provider rejects or fails a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmailAlreadyRegistered(IdentityProviderError):
    """Raised when creating a user whose email already has an identity."""


class IdentityUserNotFound(IdentityProviderError):
    """Raised when the referenced identity does not exist."""


@dataclass(frozen=True)
class IdentityUser:
    id: UUID
    email: Optional[str]
    role: Optional[str] = None
    banned_until: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "IdentityUser":
        metadata = payload.get("app_metadata") or {}
        return cls(
            id=UUID(str(payload["id"])),
            email=payload.get("email"),
            role=metadata.get("role") if isinstance(metadata, Mapping) else None,
            banned_until=payload.get("banned_until"),
        )


@dataclass
class IdentityProviderClient:
    """Thin async wrapper over the admin endpoints the directory needs."""

    http: httpx.AsyncClient
    service_key: str
    user_page_size: int = 200

    def _admin_headers(self) -> dict[str, str]:
        return {"apikey": self.service_key, "Authorization": f"Bearer {self.service_key}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = kwargs.pop("headers", None) or self._admin_headers()
        try:
            response = await self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"transport_error:{type(exc).__name__}") from exc
        if response.status_code == 404:
            raise IdentityUserNotFound("user_not_found", status_code=404)
        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    async def create_user(self, user_id: UUID, email: str, role: str) -> IdentityUser:
        body = {
            "id": str(user_id),
            "email": email,
            "email_confirm": True,
            "app_metadata": {"role": role},
            "user_metadata": {"role": role},
        }
        response = await self._request("POST", "/auth/v1/admin/users", json=body)
        return IdentityUser.from_payload(response.json())

    async def find_user_by_email(self, email: str) -> IdentityUser | None:
        target = email.strip().lower()
        response = await self._request(
            "GET",
            "/auth/v1/admin/users",
            params={"filter": target, "page": 1, "per_page": self.user_page_size},
        )
        payload = response.json()
        users = payload.get("users", []) if isinstance(payload, Mapping) else payload
        for item in users or []:
            if str(item.get("email") or "").lower() == target:
                return IdentityUser.from_payload(item)
        return None

    async def update_user(
        self,
        user_id: UUID,
        *,
        email: str | None = None,
        role: str | None = None,
        ban_duration: str | None = None,
    ) -> IdentityUser:
        body: dict[str, Any] = {}
        if email is not None:
            body["email"] = email
            body["email_confirm"] = True
        if role is not None:
            body["app_metadata"] = {"role": role}
            body["user_metadata"] = {"role": role}
        if ban_duration is not None:
            body["ban_duration"] = ban_duration
        response = await self._request("PUT", f"/auth/v1/admin/users/{user_id}", json=body)
        return IdentityUser.from_payload(response.json())

    async def delete_user(self, user_id: UUID) -> None:
        await self._request("DELETE", f"/auth/v1/admin/users/{user_id}")

    async def get_session_user(self, access_token: str) -> IdentityUser:
        headers = {"apikey": self.service_key, "Authorization": f"Bearer {access_token}"}
        response = await self._request("GET", "/auth/v1/user", headers=headers)
        return IdentityUser.from_payload(response.json())

    async def aclose(self) -> None:
        await self.http.aclose()


def _error_from_response(response: httpx.Response) -> IdentityProviderError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, Mapping):
        payload = {}
    code = str(payload.get("error_code") or payload.get("code") or "")
    message = str(payload.get("msg") or payload.get("message") or payload.get("error") or response.text)
    if code == "email_exists" or "already been registered" in message.lower():
        return EmailAlreadyRegistered(message or "email_exists", status_code=response.status_code)
    return IdentityProviderError(
        f"http_{response.status_code}:{code or message}"[:200], status_code=response.status_code
    )


@dataclass(frozen=True)
class IdentityProviderReady:
    client: IdentityProviderClient


@dataclass(frozen=True)
class IdentityProviderUnavailable:
    reason: str
    details: dict[str, str] = field(default_factory=dict)


IdentityProviderConnection = Union[IdentityProviderReady, IdentityProviderUnavailable]


def connect_identity_provider(
    config: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> IdentityProviderConnection:
    """Build the identity client from settings, or explain why it cannot be built."""
    if not config.identity_url:
        return IdentityProviderUnavailable("identity_url_missing")
    if not config.identity_service_key:
        return IdentityProviderUnavailable("identity_service_key_missing")
    base_url = config.identity_url.rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        return IdentityProviderUnavailable("identity_url_invalid", {"url": base_url})
    http = httpx.AsyncClient(
        base_url=base_url,
        timeout=config.identity_timeout_seconds,
        transport=transport,
    )
    return IdentityProviderReady(IdentityProviderClient(http=http, service_key=config.identity_service_key))


__all__ = [
    "BAN_FOREVER",
    "BAN_NONE",
    "EmailAlreadyRegistered",
    "IdentityProviderClient",
    "IdentityProviderConnection",
    "IdentityProviderError",
    "IdentityProviderReady",
    "IdentityProviderUnavailable",
    "IdentityUser",
    "IdentityUserNotFound",
    "connect_identity_provider",
]
