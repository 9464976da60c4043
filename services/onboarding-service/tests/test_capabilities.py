from __future__ import annotations

from datetime import datetime, timezone

import jwt
import pytest

from onboarding.config import get_settings
from onboarding.domain.account import Account, Role
from onboarding.domain.errors import NotACollaborator, PermissionDenied, Unauthenticated
from onboarding.security.capabilities import (
    REQUIRE_ADMIN,
    REQUIRE_APPROVED_COLLABORATOR,
    REQUIRE_AUTHENTICATED,
    authorize,
)
from onboarding.security.tokens import decode_access_token, issue_access_token


def make_account(role: Role, approved: bool = False) -> Account:
    return Account(
        account_id="acct-1",
        tenant_id="tenant-1",
        username="someone",
        email="someone@example.com",
        role=role,
        is_approved=approved,
        created_at=datetime.now(timezone.utc),
    )


@pytest.mark.parametrize(
    "role,approved,capability,error",
    [
        (Role.user, False, REQUIRE_ADMIN, PermissionDenied),
        (Role.collaborator, True, REQUIRE_ADMIN, PermissionDenied),
        (Role.user, False, REQUIRE_APPROVED_COLLABORATOR, NotACollaborator),
        (Role.collaborator, False, REQUIRE_APPROVED_COLLABORATOR, NotACollaborator),
        (Role.admin, False, REQUIRE_APPROVED_COLLABORATOR, NotACollaborator),
    ],
)
def test_capability_denials(role, approved, capability, error):
    with pytest.raises(error) as excinfo:
        authorize(make_account(role, approved), capability)
    assert excinfo.value.code == 403


@pytest.mark.parametrize(
    "role,approved,capability",
    [
        (Role.admin, False, REQUIRE_ADMIN),
        (Role.collaborator, True, REQUIRE_APPROVED_COLLABORATOR),
        (Role.user, False, REQUIRE_AUTHENTICATED),
    ],
)
def test_capability_grants(role, approved, capability):
    account = make_account(role, approved)
    assert authorize(account, capability) is account


def test_missing_account_is_unauthenticated():
    with pytest.raises(Unauthenticated):
        authorize(None, REQUIRE_ADMIN)


def test_token_round_trip_carries_tenant():
    token, ttl = issue_access_token(subject="acct-1", tenant_id="tenant-1")
    claims = decode_access_token(token)
    assert (claims.account_id, claims.tenant_id) == ("acct-1", "tenant-1")
    assert ttl > 0


def test_token_without_tenant_is_rejected():
    settings = get_settings()
    token = jwt.encode(
        {"sub": "acct-1", "iss": settings.jwt_issuer, "exp": 4102444800},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(jwt.PyJWTError):
        decode_access_token(token)
