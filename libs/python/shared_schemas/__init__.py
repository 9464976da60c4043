"""Shared schema exports."""

from .account import AccountProfile, AccountRefModel
from .collaborator import (
    CollaboratorApplication,
    CollaboratorRequestModel,
    CollaboratorStatsModel,
    RejectionBody,
    ResolutionModel,
)
from .envelope import Envelope, EnvelopeStatus, LocalizedMessage, ViolationModel

__all__ = [
    "AccountProfile",
    "AccountRefModel",
    "CollaboratorApplication",
    "CollaboratorRequestModel",
    "CollaboratorStatsModel",
    "Envelope",
    "EnvelopeStatus",
    "LocalizedMessage",
    "RejectionBody",
    "ResolutionModel",
    "ViolationModel",
]
