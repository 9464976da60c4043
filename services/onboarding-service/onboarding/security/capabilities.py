"""Role/approval capability checks evaluated once per operation entry point."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..domain.account import Account, Role
from ..domain.errors import NotACollaborator, OnboardingError, PermissionDenied, Unauthenticated


@dataclass(frozen=True, slots=True)
class Capability:
    """A named predicate over the caller plus the error raised when it does not hold."""

    name: str
    predicate: Callable[[Account], bool]
    error: type[OnboardingError]

    def check(self, account: Account | None) -> Account:
        if account is None:
            raise Unauthenticated()
        if not self.predicate(account):
            raise self.error()
        return account


REQUIRE_AUTHENTICATED = Capability("authenticated", lambda account: True, Unauthenticated)
REQUIRE_ADMIN = Capability("admin", lambda account: account.role == Role.admin, PermissionDenied)
REQUIRE_APPROVED_COLLABORATOR = Capability(
    "approved-collaborator", Account.is_collaborator, NotACollaborator
)


def authorize(account: Account | None, capability: Capability) -> Account:
    """Return ``account`` when it satisfies ``capability``; raise the capability's error otherwise."""
    return capability.check(account)
