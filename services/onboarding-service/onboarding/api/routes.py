"""HTTP route definitions for collaborator onboarding."""

from __future__ import annotations

import logging
from typing import Callable

import jwt
import redis
from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared_schemas import CollaboratorApplication, RejectionBody, ResolutionModel

from ..config import get_settings
from ..domain.account import Account
from ..domain.collaborator import Decision
from ..domain.errors import Message, RateLimited, Unauthenticated
from ..domain.service import CollaboratorService
from ..security.capabilities import (
    REQUIRE_ADMIN,
    REQUIRE_APPROVED_COLLABORATOR,
    REQUIRE_AUTHENTICATED,
    Capability,
    authorize,
)
from ..security.rate_limiter import SlidingWindowRateLimiter, SubmissionLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter
from ..security.tokens import decode_access_token
from .responses import account_profile, request_model, success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/collaborators", tags=["collaborators"])

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


def _build_rate_limiter() -> SubmissionLimiter:
    """Instantiate the configured submission limiter, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            # ensure connectivity early to fail fast and fall back
            client.ping()
            logger.info("submission limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.submit_rate_limit_requests,
                window_seconds=settings.submit_rate_limit_window_seconds,
            )
        except redis.RedisError as exc:
            logger.warning("redis submission limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("submission limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.submit_rate_limit_requests,
        window_seconds=settings.submit_rate_limit_window_seconds,
    )


rate_limiter: SubmissionLimiter = _build_rate_limiter()


def get_service(request: Request) -> CollaboratorService:
    """Resolve the `CollaboratorService` stored on the FastAPI application state."""
    service: CollaboratorService = request.app.state.collaborator_service
    return service


def current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: CollaboratorService = Depends(get_service),
) -> Account:
    """Resolve the bearer token to a live directory account."""
    if credentials is None:
        raise Unauthenticated()
    try:
        claims = decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        logger.info("rejected bearer token: %s", exc)
        raise Unauthenticated(Message(vi="Token không hợp lệ", en="Invalid token")) from exc

    account = service.lookup_account(claims.account_id, claims.tenant_id)
    if account is None:
        raise Unauthenticated(Message(vi="Người dùng không tồn tại", en="Account does not exist"))
    return account


def require(capability: Capability) -> Callable[..., Account]:
    """Build a dependency that authorises the caller against ``capability``."""

    def dependency(account: Account = Depends(current_account)) -> Account:
        return authorize(account, capability)

    dependency.__name__ = f"require_{capability.name.replace('-', '_')}"
    return dependency


@router.post("/apply", status_code=status.HTTP_201_CREATED)
def apply_as_collaborator(
    payload: CollaboratorApplication,
    caller: Account = Depends(require(REQUIRE_AUTHENTICATED)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    """Submit the caller's application to become a collaborator."""
    decision = rate_limiter.check(f"{caller.tenant_id}:{caller.account_id}")
    if not decision.allowed:
        raise RateLimited(decision.retry_after)
    created = service.submit_application(
        caller,
        bank_account=payload.bank_account,
        bank_name=payload.bank_name,
        commission_rate=payload.commission_rate,
    )
    return success(
        Message(
            vi="Đã gửi yêu cầu trở thành cộng tác viên thành công",
            en="Request to become a collaborator has been submitted successfully",
        ),
        created,
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/me")
def get_my_collaborator_info(
    caller: Account = Depends(require(REQUIRE_APPROVED_COLLABORATOR)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    account = service.get_my_collaborator_info(caller)
    return success(
        Message(
            vi="Lấy thông tin cộng tác viên thành công",
            en="Successfully retrieved collaborator information",
        ),
        account,
    )


@router.get("/requests")
def list_collaborator_requests(
    status_filter: str | None = Query(default=None, alias="status"),
    admin: Account = Depends(require(REQUIRE_ADMIN)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    """List the tenant's requests newest first, optionally filtered by status."""
    views = service.get_requests(admin.tenant_id, status_filter)
    return success(
        Message(vi="Lấy danh sách yêu cầu thành công", en="Successfully retrieved collaborator requests"),
        views,
    )


@router.get("/requests/{request_id}")
def get_collaborator_request(
    request_id: str,
    admin: Account = Depends(require(REQUIRE_ADMIN)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    view = service.get_request(admin.tenant_id, request_id)
    return success(Message(vi="Lấy yêu cầu thành công", en="Successfully retrieved the request"), view)


@router.put("/requests/{request_id}/approve")
def approve_collaborator_request(
    request_id: str,
    admin: Account = Depends(require(REQUIRE_ADMIN)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    """Approve a pending request and elevate the applicant in one transaction."""
    resolution = service.resolve_request(request_id, admin, Decision.approve)
    return success(
        Message(vi="Đã duyệt yêu cầu thành công", en="Request approved successfully"),
        ResolutionModel(
            request=request_model(resolution.request),
            user=account_profile(resolution.account) if resolution.account else None,
        ),
    )


@router.put("/requests/{request_id}/reject")
def reject_collaborator_request(
    request_id: str,
    body: RejectionBody | None = Body(default=None),
    admin: Account = Depends(require(REQUIRE_ADMIN)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    resolution = service.resolve_request(
        request_id, admin, Decision.reject, body.reason if body else None
    )
    return success(
        Message(vi="Đã từ chối yêu cầu thành công", en="Request rejected successfully"),
        ResolutionModel(request=request_model(resolution.request)),
    )


@router.get("/stats")
def get_collaborator_stats(
    admin: Account = Depends(require(REQUIRE_ADMIN)),
    service: CollaboratorService = Depends(get_service),
) -> JSONResponse:
    """Return earnings per approved collaborator, highest first."""
    stats = service.get_collaborator_stats(admin.tenant_id)
    return success(
        Message(
            vi="Lấy thống kê cộng tác viên thành công",
            en="Successfully retrieved collaborator statistics",
        ),
        stats,
    )
