"""Collaborator workflow orchestrating the request store and the account directory."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterator

from .account import Account
from .collaborator import (
    CollaboratorRequest,
    CollaboratorStats,
    Decision,
    RequestStatus,
    RequestView,
    Resolution,
    Transition,
)
from .contracts import SubmitApplicationInput, clean_reason, parse_decision, parse_status_filter
from .errors import (
    AlreadyProcessed,
    DuplicateRequest,
    Message,
    NotACollaborator,
    NotFound,
    OnboardingError,
    ServerError,
)
from .. import metrics

if TYPE_CHECKING:
    from ..accounts import AccountDirectory, ResourceCatalog
    from ..repository import CollaboratorRepository

logger = logging.getLogger(__name__)

ACCOUNT_NOT_FOUND = Message(vi="Không tìm thấy người dùng", en="Account not found")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollaboratorService:
    """Collaborator onboarding workflows backed by Postgres storage."""

    def __init__(
        self,
        repository: "CollaboratorRepository",
        directory: "AccountDirectory",
        catalog: "ResourceCatalog",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._directory = directory
        self._catalog = catalog
        self._clock = clock

    def submit_application(
        self,
        applicant: Account,
        *,
        bank_account: str | None,
        bank_name: str | None,
        commission_rate: object,
    ) -> CollaboratorRequest:
        """Persist a pending request unless the applicant already has a live one.

        Raises
        ------
        ValidationError
            When the settlement terms are malformed. Nothing is written.
        DuplicateRequest
            When a pending or approved request exists; ``data["request"]`` holds it.
        ServerError
            When storage fails. The transaction is rolled back.
        """
        try:
            payload = SubmitApplicationInput.parse(bank_account, bank_name, commission_rate)
            with self._storage_boundary(
                "submit collaborator application",
                Message(vi="Đã xảy ra lỗi khi gửi yêu cầu", en="An error occurred while processing your request"),
            ):
                with self._repository.transaction(applicant.tenant_id) as tx:
                    tx.lock_applicant(applicant.account_id)
                    existing = tx.find_live_request(applicant.account_id)
                    created = None
                    if existing is None:
                        created = tx.insert_request(applicant.account_id, payload)
                        if created is None:
                            existing = tx.find_live_request(applicant.account_id)
                    if created is None:
                        raise DuplicateRequest(data={"request": existing})
                    tx.write_audit_event(
                        request_id=created.request_id,
                        event_type="collaborator.request.submitted",
                        actor=applicant.account_id,
                        metadata={"commission_rate": created.commission_rate},
                    )
        except OnboardingError as exc:
            metrics.SUBMISSIONS.labels(outcome=exc.type).inc()
            logger.info("collaborator application by %s refused: %s", applicant.account_id, exc.type)
            raise

        metrics.SUBMISSIONS.labels(outcome="created").inc()
        logger.info("collaborator request %s submitted by %s", created.request_id, applicant.account_id)
        return created

    def resolve_request(
        self,
        request_id: str,
        admin: Account,
        decision: Decision | str,
        rejection_reason: str | None = None,
    ) -> Resolution:
        """Approve or reject a pending request in a single transaction.

        Approval writes the request resolution and elevates the applicant's
        account in the same transaction; rejection touches the request only.
        The request row is locked before its status is checked, so a second
        concurrent resolver observes the committed terminal status and fails
        with ``AlreadyProcessed``.
        """
        if not isinstance(decision, Decision):
            decision = parse_decision(decision)
        reason = clean_reason(rejection_reason) if decision is Decision.reject else None

        verb = "duyệt" if decision is Decision.approve else "từ chối"
        failure = Message(
            vi=f"Đã xảy ra lỗi khi {verb} yêu cầu",
            en=f"An error occurred while {'approving' if decision is Decision.approve else 'rejecting'} the request",
        )
        try:
            with self._storage_boundary(f"{decision.value} collaborator request {request_id}", failure):
                with self._repository.transaction(admin.tenant_id) as tx:
                    request = tx.get_request_for_update(request_id)
                    if request is None:
                        raise NotFound()
                    if request.status != RequestStatus.pending:
                        raise AlreadyProcessed(data={"status": request.status.value})

                    now = self._clock()
                    if decision is Decision.approve:
                        transition = Transition.approve(request, admin.account_id, now)
                    else:
                        transition = Transition.reject(request, admin.account_id, now, reason)

                    resolved = tx.apply_resolution(transition)
                    account = None
                    if transition.touches_account:
                        account = self._directory.update_fields(
                            transition.account_id, transition.account_fields, tx
                        )
                        if account is None:
                            raise NotFound(ACCOUNT_NOT_FOUND)

                    tx.write_audit_event(
                        request_id=request_id,
                        event_type=f"collaborator.request.{resolved.status.value}",
                        actor=admin.account_id,
                        metadata={"reason": reason} if reason else {},
                    )
        except OnboardingError as exc:
            metrics.RESOLUTIONS.labels(decision=decision.value, outcome=exc.type).inc()
            logger.info("%s of collaborator request %s refused: %s", decision.value, request_id, exc.type)
            raise

        metrics.RESOLUTIONS.labels(decision=decision.value, outcome="committed").inc()
        logger.info(
            "collaborator request %s %s by %s", request_id, resolved.status.value, admin.account_id
        )
        return Resolution(request=resolved, account=account)

    def get_requests(self, tenant_id: str, status_filter: str | None = None) -> list[RequestView]:
        """Return tenant requests newest first, joined to applicant and resolver identities."""
        status = parse_status_filter(status_filter)
        with self._storage_boundary(
            "list collaborator requests",
            Message(vi="Đã xảy ra lỗi khi lấy danh sách yêu cầu", en="An error occurred while retrieving requests"),
        ):
            requests = self._repository.list_requests(tenant_id, status)
            return self._enrich(tenant_id, requests)

    def get_request(self, tenant_id: str, request_id: str) -> RequestView:
        with self._storage_boundary(
            f"load collaborator request {request_id}",
            Message(vi="Đã xảy ra lỗi khi lấy yêu cầu", en="An error occurred while retrieving the request"),
        ):
            request = self._repository.get_request(tenant_id, request_id)
            if request is None:
                raise NotFound()
            return self._enrich(tenant_id, [request])[0]

    def lookup_account(self, account_id: str, tenant_id: str) -> Account | None:
        """Load the caller's account from the directory."""
        with self._storage_boundary(
            "load caller account",
            Message(vi="Đã xảy ra lỗi khi xác thực", en="An error occurred while authenticating"),
        ):
            return self._directory.find_by_id(account_id, tenant_id)

    def get_my_collaborator_info(self, caller: Account) -> Account:
        """Return the caller's fresh account snapshot if it is an approved collaborator."""
        with self._storage_boundary(
            "load collaborator profile",
            Message(
                vi="Đã xảy ra lỗi khi lấy thông tin cộng tác viên",
                en="An error occurred while retrieving collaborator information",
            ),
        ):
            account = self._directory.find_by_id(caller.account_id, caller.tenant_id)
        if account is None or not account.is_collaborator():
            raise NotACollaborator()
        return account

    def get_collaborator_stats(self, tenant_id: str) -> list[CollaboratorStats]:
        """Aggregate resource counts and commission earnings per approved collaborator."""
        with self._storage_boundary(
            "aggregate collaborator stats",
            Message(
                vi="Đã xảy ra lỗi khi lấy thống kê cộng tác viên",
                en="An error occurred while retrieving collaborator statistics",
            ),
        ):
            collaborators = self._directory.list_approved_collaborators(tenant_id)
            totals = self._catalog.totals_by_owner(
                tenant_id, [account.account_id for account in collaborators]
            )

        stats = []
        for account in collaborators:
            count, price_total = totals.get(account.account_id, (0, 0.0))
            stats.append(
                CollaboratorStats(
                    account_id=account.account_id,
                    username=account.username,
                    email=account.email,
                    bank_account=account.bank_account,
                    bank_name=account.bank_name,
                    commission_rate=account.commission_rate,
                    total_resource_count=count,
                    total_earnings=price_total * account.commission_rate / 100,
                )
            )
        stats.sort(key=lambda row: (-row.total_earnings, row.username))
        return stats

    def _enrich(self, tenant_id: str, requests: list[CollaboratorRequest]) -> list[RequestView]:
        ids = [request.user_id for request in requests]
        ids.extend(request.approved_by for request in requests if request.approved_by)
        refs = self._directory.display_refs(tenant_id, ids)
        return [
            RequestView(
                request=request,
                applicant=refs.get(request.user_id),
                resolver=refs.get(request.approved_by) if request.approved_by else None,
            )
            for request in requests
        ]

    @contextmanager
    def _storage_boundary(self, operation: str, failure: Message) -> Iterator[None]:
        """Translate unexpected storage failures into ``ServerError`` after logging them."""
        try:
            yield
        except OnboardingError:
            raise
        except Exception as exc:
            logger.exception("%s failed", operation)
            raise ServerError(failure, detail=str(exc)) from exc
