"""Utilities for validating the platform's bearer JWTs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import jwt

from ..config import get_settings


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Identity extracted from a verified access token."""

    account_id: str
    tenant_id: str


def issue_access_token(*, subject: str, tenant_id: str) -> tuple[str, int]:
    """Create a signed JWT for an account.

    Session issuance belongs to the identity service; this mirrors its token
    shape so local tooling and tests can mint compatible credentials.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "tenant_id": tenant_id,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256"), expires_in


def decode_access_token(token: str) -> TokenClaims:
    """Decode and verify a JWT returning the caller identity.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, signed by another
        issuer, or missing the ``sub``/``tenant_id`` claims.
    """

    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
    tenant_id = payload.get("tenant_id")
    if not tenant_id:
        raise jwt.MissingRequiredClaimError("tenant_id")
    return TokenClaims(account_id=str(payload["sub"]), tenant_id=str(tenant_id))
