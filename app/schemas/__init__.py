"""
Pydantic schemas for request/response models.
"""

from app.schemas.progress import ProgressEvent, ProgressStatus
from app.schemas.requests import JobCallbackRequest
from app.schemas.responses import (
    CallbackAcceptedResponse,
    HealthResponse,
    ProgressAcceptedResponse,
    ReadinessResponse,
    SocialAccountStatus,
    TokenErrorResponse,
)

__all__ = [
    "ProgressEvent",
    "ProgressStatus",
    "JobCallbackRequest",
    "HealthResponse",
    "ReadinessResponse",
    "ProgressAcceptedResponse",
    "CallbackAcceptedResponse",
    "SocialAccountStatus",
    "TokenErrorResponse",
]
