from __future__ import annotations

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from onboarding.api import routes
from onboarding.api.responses import install_error_handlers
from onboarding.domain.account import Account, Role
from onboarding.domain.collaborator import AccountRef, CollaboratorRequest, RequestStatus, Transition
from onboarding.domain.contracts import SubmitApplicationInput
from onboarding.domain.service import CollaboratorService
from onboarding.security.tokens import issue_access_token

TENANT = "tenant-1"
BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class InjectedFailure(RuntimeError):
    pass


@dataclass
class FakeDatabase:
    """Shared in-memory state standing in for the Postgres tables.

    Transactions are serialised with a single lock and restored from a
    snapshot when the block raises, mimicking commit/rollback.
    """

    requests: dict[str, CollaboratorRequest] = field(default_factory=dict)
    accounts: dict[str, Account] = field(default_factory=dict)
    resources: list[tuple[str, str, float]] = field(default_factory=list)
    audit_log: list[dict] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)
    lock: threading.RLock = field(default_factory=threading.RLock)
    _seq: int = 0

    def tick(self) -> datetime:
        self._seq += 1
        return BASE_TIME + timedelta(seconds=self._seq)

    def maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise InjectedFailure(f"injected failure in {operation}")

    def add_account(self, username: str, role: Role = Role.user, *, tenant_id: str = TENANT, **extra) -> Account:
        account = Account(
            account_id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            username=username,
            email=f"{username}@example.com",
            role=role,
            created_at=self.tick(),
            **extra,
        )
        self.accounts[account.account_id] = account
        return copy.deepcopy(account)

    def live_count(self, user_id: str) -> int:
        return sum(
            1
            for request in self.requests.values()
            if request.user_id == user_id and request.status.is_live
        )


class FakeUnitOfWork:
    def __init__(self, db: FakeDatabase, tenant_id: str) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.active = True

    def lock_applicant(self, user_id: str) -> None:
        return None

    def find_live_request(self, user_id: str):
        live = [
            request
            for request in self.db.requests.values()
            if request.tenant_id == self.tenant_id and request.user_id == user_id and request.status.is_live
        ]
        return copy.deepcopy(live[0]) if live else None

    def insert_request(self, user_id: str, payload: SubmitApplicationInput):
        self.db.maybe_fail("insert_request")
        if self.find_live_request(user_id) is not None:
            return None
        now = self.db.tick()
        request = CollaboratorRequest(
            request_id=str(uuid.uuid4()),
            tenant_id=self.tenant_id,
            user_id=user_id,
            bank_account=payload.bank_account,
            bank_name=payload.bank_name,
            commission_rate=payload.commission_rate,
            created_at=now,
            updated_at=now,
        )
        self.db.requests[request.request_id] = request
        return copy.deepcopy(request)

    def get_request_for_update(self, request_id: str):
        request = self.db.requests.get(request_id)
        if request is None or request.tenant_id != self.tenant_id:
            return None
        return copy.deepcopy(request)

    def apply_resolution(self, transition: Transition):
        self.db.maybe_fail("apply_resolution")
        stored = self.db.requests[transition.request_id]
        if stored.status != RequestStatus.pending:
            raise RuntimeError("request left pending state mid-transaction")
        for name, value in transition.request_fields.items():
            setattr(stored, name, value)
        stored.updated_at = self.db.tick()
        return copy.deepcopy(stored)

    def write_audit_event(self, *, request_id, event_type, actor, metadata=None) -> None:
        self.db.maybe_fail("write_audit_event")
        self.db.audit_log.append(
            {
                "tenant_id": self.tenant_id,
                "request_id": request_id,
                "event_type": event_type,
                "actor": actor,
                "metadata": metadata or {},
            }
        )


class FakeRepository:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    @contextmanager
    def transaction(self, tenant_id: str):
        with self.db.lock:
            snapshot = copy.deepcopy((self.db.requests, self.db.accounts, self.db.audit_log))
            tx = FakeUnitOfWork(self.db, tenant_id)
            try:
                yield tx
            except BaseException:
                self.db.requests, self.db.accounts, self.db.audit_log = snapshot
                raise
            finally:
                tx.active = False

    def get_request(self, tenant_id: str, request_id: str):
        self.db.maybe_fail("get_request")
        request = self.db.requests.get(request_id)
        if request is None or request.tenant_id != tenant_id:
            return None
        return copy.deepcopy(request)

    def list_requests(self, tenant_id: str, status=None):
        self.db.maybe_fail("list_requests")
        rows = [
            request
            for request in self.db.requests.values()
            if request.tenant_id == tenant_id and (status is None or request.status == status)
        ]
        rows.sort(key=lambda request: request.created_at, reverse=True)
        return copy.deepcopy(rows)


class FakeAccountDirectory:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    def find_by_id(self, account_id: str, tenant_id: str):
        account = self.db.accounts.get(account_id)
        if account is None or account.tenant_id != tenant_id:
            return None
        return copy.deepcopy(account)

    def update_fields(self, account_id: str, fields: dict, tx: FakeUnitOfWork):
        assert tx.active and tx.db is self.db, "account update must run inside the open transaction"
        self.db.maybe_fail("update_fields")
        account = self.db.accounts.get(account_id)
        if account is None or account.tenant_id != tx.tenant_id:
            return None
        for name, value in fields.items():
            setattr(account, name, value)
        return copy.deepcopy(account)

    def display_refs(self, tenant_id: str, account_ids):
        refs = {}
        for account_id in account_ids:
            account = self.db.accounts.get(account_id)
            if account is not None and account.tenant_id == tenant_id:
                refs[account_id] = AccountRef(account.account_id, account.username, account.email)
        return refs

    def list_approved_collaborators(self, tenant_id: str):
        return [
            copy.deepcopy(account)
            for account in self.db.accounts.values()
            if account.tenant_id == tenant_id and account.is_collaborator()
        ]


class FakeResourceCatalog:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    def totals_by_owner(self, tenant_id: str, owner_ids):
        wanted = set(owner_ids)
        totals: dict[str, tuple[int, float]] = {}
        for resource_tenant, owner, price in self.db.resources:
            if resource_tenant != tenant_id or owner not in wanted:
                continue
            count, total = totals.get(owner, (0, 0.0))
            totals[owner] = (count + 1, total + price)
        return totals


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def service(db: FakeDatabase) -> CollaboratorService:
    return CollaboratorService(
        FakeRepository(db),
        FakeAccountDirectory(db),
        FakeResourceCatalog(db),
        clock=lambda: BASE_TIME + timedelta(days=1),
    )


@pytest.fixture
def applicant(db: FakeDatabase) -> Account:
    return db.add_account("applicant")


@pytest.fixture
def admin(db: FakeDatabase) -> Account:
    return db.add_account("admin", Role.admin)


@pytest.fixture
def api_client(service: CollaboratorService):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    install_error_handlers(app, expose_detail=False)
    app.state.collaborator_service = service

    original_limiter = routes.rate_limiter
    routes.rate_limiter = routes.SlidingWindowRateLimiter(max_requests=3, window_seconds=60)

    with TestClient(app) as client:
        yield client

    routes.rate_limiter = original_limiter


@pytest.fixture
def headers_for():
    """Return a helper building bearer headers for an account."""

    def build(account: Account) -> dict[str, str]:
        token, _ = issue_access_token(subject=account.account_id, tenant_id=account.tenant_id)
        return {"Authorization": f"Bearer {token}"}

    return build
