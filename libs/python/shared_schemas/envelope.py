"""Bilingual response envelope shared by every platform service."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EnvelopeStatus(str, Enum):
    success = "success"
    error = "error"
    fail = "fail"


class LocalizedMessage(BaseModel):
    vi: str
    en: str


class ViolationModel(BaseModel):
    """One entry of the stable ``(message, type, code)`` error contract."""

    message: LocalizedMessage
    type: str
    code: int


class Envelope(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    message: str
    message_en: str
    status: EnvelopeStatus
    data: Any = None
    violations: list[ViolationModel] = Field(default_factory=list)
