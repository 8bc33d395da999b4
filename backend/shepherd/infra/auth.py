"""Caller resolution for FastAPI endpoints.

The bearer token only proves who the caller is. Role and camp always come from
the local account row so that a role change takes effect on the next request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shepherd.directory.models import Account, AccountRole
from shepherd.directory.repo import DirectoryRepository
from shepherd.infra import jwt as jwt_helper
from shepherd.infra.identity import IdentityProviderClient, IdentityProviderError
from shepherd.obs import logging as obs_logging
from shepherd.settings import settings


@dataclass(slots=True)
class Caller:
	id: UUID
	role: AccountRole
	camp_id: Optional[UUID] = None
	member_id: Optional[UUID] = None
	email: Optional[str] = None

	@property
	def is_admin(self) -> bool:
		return self.role is AccountRole.ADMIN

	def has_role(self, *roles: AccountRole) -> bool:
		return self.role in roles

	@classmethod
	def from_account(cls, account: Account) -> "Caller":
		return cls(
			id=account.id,
			role=account.role,
			camp_id=account.camp_id,
			member_id=account.member_id,
			email=account.email,
		)


_bearer_scheme = HTTPBearer(auto_error=False)
_accounts = DirectoryRepository()


def _unauthorized(detail: str = "invalid_token") -> HTTPException:
	return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _parse_uuid(value: object) -> UUID:
	try:
		return UUID(str(value).strip())
	except (TypeError, ValueError):
		raise _unauthorized()


async def _subject_from_token(request: Request, token: str) -> UUID:
	if settings.identity_jwt_secret:
		try:
			payload = jwt_helper.decode_access(token)
		except Exception:
			# All decode failures look the same to clients
			raise _unauthorized()
		return _parse_uuid(payload.get("sub"))
	client: IdentityProviderClient | None = getattr(request.app.state, "identity_client", None)
	if client is None:
		raise _unauthorized()
	try:
		user = await client.get_session_user(token)
	except IdentityProviderError:
		raise _unauthorized()
	return user.id


async def get_current_caller(
	request: Request,
	x_account_id: Optional[str] = Header(default=None, alias="X-Account-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Caller:
	"""Resolve the caller from a bearer token, or from X-Account-Id in development."""
	if credentials and credentials.scheme.lower() == "bearer":
		account_id = await _subject_from_token(request, credentials.credentials)
	elif settings.is_dev() and x_account_id:
		account_id = _parse_uuid(x_account_id)
	else:
		raise _unauthorized()

	account = await _accounts.get_account(account_id)
	if account is None:
		raise _unauthorized("unknown_account")
	if account.is_suspended:
		raise _unauthorized("account_suspended")
	obs_logging.bind_context(account_id=str(account.id))
	return Caller.from_account(account)


def require_roles(*required: AccountRole | str):
	"""Return a dependency that only lets the given account roles through.

	Usage:
		@router.post("/camps", dependencies=[Depends(require_roles(AccountRole.ADMIN))])
	"""
	required_set = {AccountRole(r) for r in required}

	async def _dep(caller: Caller = Depends(get_current_caller)) -> Caller:
		if not required_set or caller.role in required_set:
			return caller
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")

	return _dep
