"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .collaborator import Decision, RequestStatus
from .errors import Message, ValidationError, Violation

MAX_TEXT_LENGTH = 255


@dataclass(slots=True)
class SubmitApplicationInput:
    """Validated settlement terms proposed by an applicant."""

    bank_account: str
    bank_name: str
    commission_rate: float

    @classmethod
    def parse(cls, bank_account: str | None, bank_name: str | None, commission_rate: object) -> "SubmitApplicationInput":
        """Trim and range-check raw input, collecting every violation before failing."""
        violations: list[Violation] = []
        account = _clean_text(bank_account)
        name = _clean_text(bank_name)

        if not account:
            violations.append(_invalid("Số tài khoản ngân hàng là bắt buộc", "Bank account is required"))
        elif len(account) > MAX_TEXT_LENGTH:
            violations.append(_invalid("Số tài khoản ngân hàng quá dài", "Bank account is too long"))
        if not name:
            violations.append(_invalid("Tên ngân hàng là bắt buộc", "Bank name is required"))
        elif len(name) > MAX_TEXT_LENGTH:
            violations.append(_invalid("Tên ngân hàng quá dài", "Bank name is too long"))

        rate = _coerce_rate(commission_rate)
        if rate is None or not 0 <= rate <= 100:
            violations.append(
                _invalid("Tỷ lệ hoa hồng phải từ 0 đến 100", "Commission rate must be between 0 and 100")
            )

        if violations:
            raise ValidationError(violations=violations)
        return cls(bank_account=account, bank_name=name, commission_rate=rate)


def parse_decision(value: str) -> Decision:
    try:
        return Decision(value)
    except ValueError as exc:
        raise ValidationError(
            Message(vi="Quyết định không hợp lệ", en=f"Unknown decision: {value}")
        ) from exc


def parse_status_filter(value: str | None) -> RequestStatus | None:
    if value is None or value == "":
        return None
    try:
        return RequestStatus(value)
    except ValueError as exc:
        raise ValidationError(
            Message(vi="Trạng thái không hợp lệ", en=f"Unknown request status: {value}")
        ) from exc


def clean_reason(reason: str | None) -> str | None:
    cleaned = _clean_text(reason)
    return cleaned or None


def _clean_text(value: str | None) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _coerce_rate(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        rate = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(rate):
        return None
    return rate


def _invalid(vi: str, en: str) -> Violation:
    return Violation(message=Message(vi=vi, en=en), type=ValidationError.type, code=ValidationError.code)
