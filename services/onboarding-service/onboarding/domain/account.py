from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    user = "user"
    collaborator = "collaborator"
    admin = "admin"


@dataclass(slots=True)
class Account:
    """Projection of a directory account with the fields onboarding relies on."""

    account_id: str
    tenant_id: str
    username: str
    email: str
    role: Role = Role.user
    is_approved: bool = False
    bank_account: str | None = None
    bank_name: str | None = None
    commission_rate: float = 0.0
    approved_at: datetime | None = None
    approved_by: str | None = None
    created_at: datetime | None = None

    def is_collaborator(self) -> bool:
        return self.role == Role.collaborator and self.is_approved
