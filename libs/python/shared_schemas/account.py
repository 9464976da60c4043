"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountProfile(CamelModel):
    account_id: str
    tenant_id: str
    username: str
    email: str
    role: str
    is_approved: bool
    bank_account: str | None = None
    bank_name: str | None = None
    commission_rate: float = 0.0
    approved_at: datetime | None = None
    approved_by: str | None = None
    created_at: datetime | None = None


class AccountRefModel(CamelModel):
    """Display identity of an account referenced from another record."""

    account_id: str
    username: str
    email: str | None = None
