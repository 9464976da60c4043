"""Error taxonomy for the onboarding workflow.

Each error carries the stable ``(message, type, code)`` triple surfaced to API
consumers, with the message in Vietnamese and English.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True, slots=True)
class Message:
    vi: str
    en: str


@dataclass(frozen=True, slots=True)
class Violation:
    message: Message
    type: str
    code: int


class OnboardingError(Exception):
    """Base class for workflow failures that map onto the response envelope."""

    type: ClassVar[str] = "ServerError"
    code: ClassVar[int] = 500
    default_message: ClassVar[Message] = Message(
        vi="Đã xảy ra lỗi khi xử lý yêu cầu",
        en="An error occurred while processing your request",
    )
    envelope_status: ClassVar[str] = "error"

    def __init__(
        self,
        message: Message | None = None,
        *,
        data: Any = None,
        violations: list[Violation] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.data = data
        self._violations = violations
        super().__init__(self.message.en)

    @property
    def violations(self) -> list[Violation]:
        if self._violations:
            return self._violations
        return [Violation(message=self.message, type=self.type, code=self.code)]


class ValidationError(OnboardingError):
    type = "ValidationError"
    code = 400
    default_message = Message(vi="Dữ liệu không hợp lệ", en="Invalid input")
    envelope_status = "fail"


class DuplicateRequest(OnboardingError):
    type = "DuplicateRequest"
    code = 400
    default_message = Message(
        vi="Bạn đã gửi yêu cầu trước đó",
        en="You have already submitted a request",
    )


class NotFound(OnboardingError):
    type = "NotFound"
    code = 404
    default_message = Message(vi="Không tìm thấy yêu cầu", en="Request not found")


class AlreadyProcessed(OnboardingError):
    type = "AlreadyProcessed"
    code = 400
    default_message = Message(
        vi="Yêu cầu đã được xử lý trước đó",
        en="Request has already been processed",
    )


class PermissionDenied(OnboardingError):
    type = "PermissionDenied"
    code = 403
    default_message = Message(
        vi="Chỉ có admin mới có quyền thực hiện thao tác này",
        en="Only admin can perform this action",
    )


class NotACollaborator(OnboardingError):
    type = "NotACollaborator"
    code = 403
    default_message = Message(
        vi="Bạn không phải là cộng tác viên",
        en="You are not a collaborator",
    )


class Unauthenticated(OnboardingError):
    type = "Unauthenticated"
    code = 401
    default_message = Message(
        vi="Vui lòng đăng nhập để tiếp tục",
        en="Please sign in to continue",
    )


class RateLimited(OnboardingError):
    type = "RateLimited"
    code = 429
    default_message = Message(
        vi="Bạn đã gửi quá nhiều yêu cầu, vui lòng thử lại sau",
        en="Too many requests, please try again later",
    )

    def __init__(self, retry_after: int, message: Message | None = None) -> None:
        super().__init__(message, data={"retry_after": retry_after})
        self.retry_after = retry_after


class ServerError(OnboardingError):
    """Storage or unexpected failure; ``detail`` is only exposed outside production."""

    def __init__(self, message: Message | None = None, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail
