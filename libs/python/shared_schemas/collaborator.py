"""Collaborator onboarding contracts."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .account import AccountProfile, AccountRefModel, CamelModel


class CollaboratorApplication(CamelModel):
    """Settlement terms submitted by an applicant; range checks happen in the domain."""

    bank_account: str | None = None
    bank_name: str | None = None
    commission_rate: float | None = None


class RejectionBody(CamelModel):
    reason: str | None = None


class CollaboratorRequestModel(CamelModel):
    request_id: str
    tenant_id: str
    user_id: str
    status: str
    bank_account: str
    bank_name: str
    commission_rate: float
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    applicant: AccountRefModel | None = None
    resolver: AccountRefModel | None = None


class ResolutionModel(CamelModel):
    request: CollaboratorRequestModel
    user: AccountProfile | None = Field(default=None, description="Elevated account on approval")


class CollaboratorStatsModel(CamelModel):
    account_id: str
    username: str
    email: str
    bank_account: str | None = None
    bank_name: str | None = None
    commission_rate: float
    total_resource_count: int
    total_earnings: float
