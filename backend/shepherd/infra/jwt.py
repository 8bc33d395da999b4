"""Helpers for access tokens issued by the identity provider.

Tokens are HS256-signed with the provider's JWT secret and carry the
provider's audience. Only the subject is trusted; role and camp are always
loaded from the local account row.
"""

from __future__ import annotations

from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from shepherd.settings import settings


def decode_access(token: str) -> Dict[str, Any]:
    """Decode and validate an identity-provider access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    secret = settings.identity_jwt_secret
    if not secret:
        raise InvalidTokenError("jwt_secret_not_configured")
    payload = jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        audience=settings.identity_jwt_audience,
        leeway=5,
        options={"require": ["exp", "sub"]},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload
