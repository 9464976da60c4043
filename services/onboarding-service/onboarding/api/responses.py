"""Construction of the bilingual response envelope used by every endpoint."""

from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Iterable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared_schemas import (
    AccountProfile,
    AccountRefModel,
    CollaboratorRequestModel,
    CollaboratorStatsModel,
    Envelope,
    EnvelopeStatus,
    LocalizedMessage,
    ViolationModel,
)

from ..domain.account import Account
from ..domain.collaborator import (
    AccountRef,
    CollaboratorRequest,
    CollaboratorStats,
    RequestView,
)
from ..domain.errors import Message, OnboardingError, RateLimited, ServerError, ValidationError, Violation

logger = logging.getLogger(__name__)

_HTTP_ERROR_TYPES = {
    404: ("NotFound", "Không tìm thấy đường dẫn"),
    405: ("MethodNotAllowed", "Phương thức không được hỗ trợ"),
}


def envelope(
    status_code: int,
    message: Message,
    *,
    status: EnvelopeStatus,
    data: Any = None,
    violations: Iterable[Violation] = (),
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = Envelope(
        message=message.vi,
        message_en=message.en,
        status=status,
        data=dump(data),
        violations=[
            ViolationModel(
                message=LocalizedMessage(vi=item.message.vi, en=item.message.en),
                type=item.type,
                code=item.code,
            )
            for item in violations
        ],
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def success(message: Message, data: Any = None, status_code: int = 200) -> JSONResponse:
    return envelope(status_code, message, status=EnvelopeStatus.success, data=data)


def error_response(exc: OnboardingError, *, expose_detail: bool = False) -> JSONResponse:
    data = exc.data
    if isinstance(exc, ServerError):
        data = {"error": exc.detail} if expose_detail and exc.detail else None
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
    return envelope(
        exc.code,
        exc.message,
        status=EnvelopeStatus(exc.envelope_status),
        data=data,
        violations=exc.violations,
        headers=headers,
    )


def request_model(request: CollaboratorRequest, view: RequestView | None = None) -> CollaboratorRequestModel:
    model = CollaboratorRequestModel(
        request_id=request.request_id,
        tenant_id=request.tenant_id,
        user_id=request.user_id,
        status=request.status.value,
        bank_account=request.bank_account,
        bank_name=request.bank_name,
        commission_rate=request.commission_rate,
        approved_by=request.approved_by,
        approved_at=request.approved_at,
        rejection_reason=request.rejection_reason,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )
    if view is not None:
        model.applicant = _ref_model(view.applicant)
        model.resolver = _ref_model(view.resolver)
    return model


def account_profile(account: Account) -> AccountProfile:
    return AccountProfile(
        account_id=account.account_id,
        tenant_id=account.tenant_id,
        username=account.username,
        email=account.email,
        role=account.role.value,
        is_approved=account.is_approved,
        bank_account=account.bank_account,
        bank_name=account.bank_name,
        commission_rate=account.commission_rate,
        approved_at=account.approved_at,
        approved_by=account.approved_by,
        created_at=account.created_at,
    )


def dump(value: Any) -> Any:
    """Render payloads (domain objects included) as camelCase JSON-compatible data."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, RequestView):
        return dump(request_model(value.request, value))
    if isinstance(value, CollaboratorRequest):
        return dump(request_model(value))
    if isinstance(value, Account):
        return dump(account_profile(value))
    if isinstance(value, CollaboratorStats):
        return dump(CollaboratorStatsModel(**asdict(value)))
    if isinstance(value, dict):
        return {key: dump(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [dump(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return jsonable_encoder(asdict(value))
    return jsonable_encoder(value)


def install_error_handlers(app: FastAPI, *, expose_detail: bool) -> None:
    """Route every failure through the envelope so clients always get the violation triple."""

    @app.exception_handler(OnboardingError)
    async def _onboarding_error(request: Request, exc: OnboardingError) -> JSONResponse:
        return error_response(exc, expose_detail=expose_detail)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error_type, vi = _HTTP_ERROR_TYPES.get(exc.status_code, ("HTTPError", "Yêu cầu không hợp lệ"))
        message = Message(vi=vi, en=str(exc.detail))
        return envelope(
            exc.status_code,
            message,
            status=EnvelopeStatus.error,
            violations=[Violation(message=message, type=error_type, code=exc.status_code)],
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        violations = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            violations.append(
                Violation(
                    message=Message(vi=f"Giá trị không hợp lệ: {field}", en=f"{field}: {error.get('msg')}"),
                    type=ValidationError.type,
                    code=ValidationError.code,
                )
            )
        return error_response(ValidationError(violations=violations))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return error_response(ServerError(detail=str(exc)), expose_detail=expose_detail)


def _ref_model(ref: AccountRef | None) -> AccountRefModel | None:
    if ref is None:
        return None
    return AccountRefModel(account_id=ref.account_id, username=ref.username, email=ref.email)
