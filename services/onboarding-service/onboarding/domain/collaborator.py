"""Collaborator request aggregate and the transition applied when it is resolved."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .account import Account, Role


class RequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"

    @property
    def is_live(self) -> bool:
        """Live requests block a new application from the same user."""
        return self in LIVE_STATUSES


LIVE_STATUSES = frozenset({RequestStatus.pending, RequestStatus.approved})


class Decision(str, Enum):
    approve = "approve"
    reject = "reject"


@dataclass(slots=True)
class CollaboratorRequest:
    """A user's application to become a collaborator."""

    request_id: str
    tenant_id: str
    user_id: str
    bank_account: str
    bank_name: str
    commission_rate: float
    status: RequestStatus = RequestStatus.pending
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class AccountRef:
    """Display identity joined onto request listings."""

    account_id: str
    username: str
    email: str | None = None


@dataclass(slots=True)
class RequestView:
    """A request enriched with applicant and resolver identities."""

    request: CollaboratorRequest
    applicant: AccountRef | None
    resolver: AccountRef | None = None


@dataclass(frozen=True, slots=True)
class Transition:
    """Both halves of a resolution, applied together or not at all.

    ``request_fields`` always holds the resolution stamped onto the request.
    ``account_fields`` is only populated for approvals and carries the role
    elevation plus the settlement terms copied from the request.
    """

    request_id: str
    account_id: str
    decision: Decision
    request_fields: dict[str, Any]
    account_fields: dict[str, Any] = field(default_factory=dict)

    @property
    def touches_account(self) -> bool:
        return bool(self.account_fields)

    @classmethod
    def approve(cls, request: CollaboratorRequest, admin_id: str, now: datetime) -> "Transition":
        _require_pending(request)
        return cls(
            request_id=request.request_id,
            account_id=request.user_id,
            decision=Decision.approve,
            request_fields={
                "status": RequestStatus.approved,
                "approved_by": admin_id,
                "approved_at": now,
            },
            account_fields={
                "role": Role.collaborator,
                "is_approved": True,
                "bank_account": request.bank_account,
                "bank_name": request.bank_name,
                "commission_rate": request.commission_rate,
                "approved_at": now,
                "approved_by": admin_id,
            },
        )

    @classmethod
    def reject(
        cls,
        request: CollaboratorRequest,
        admin_id: str,
        now: datetime,
        reason: str | None,
    ) -> "Transition":
        _require_pending(request)
        return cls(
            request_id=request.request_id,
            account_id=request.user_id,
            decision=Decision.reject,
            request_fields={
                "status": RequestStatus.rejected,
                "approved_by": admin_id,
                "approved_at": now,
                "rejection_reason": reason,
            },
        )


def _require_pending(request: CollaboratorRequest) -> None:
    if request.status != RequestStatus.pending:
        raise ValueError(f"request {request.request_id} is already {request.status.value}")


@dataclass(slots=True)
class Resolution:
    """Outcome of a committed transition."""

    request: CollaboratorRequest
    account: Account | None = None


@dataclass(slots=True)
class CollaboratorStats:
    account_id: str
    username: str
    email: str
    bank_account: str | None
    bank_name: str | None
    commission_rate: float
    total_resource_count: int
    total_earnings: float
