"""
Response schemas for the HTTP API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Service version")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool = Field(..., description="Whether the service can accept requests")
    database: str = Field(..., description="Database status")
    active_progress_jobs: int = Field(..., description="Jobs with live progress subscribers")


class ProgressAcceptedResponse(BaseModel):
    """Acknowledgment for a posted progress update."""

    success: bool = True
    delivered: bool = Field(..., description="False when the update was dropped as stale")
    subscribers: int = Field(0, description="Live subscribers at the time of the update")


class CallbackAcceptedResponse(BaseModel):
    """Acknowledgment for a job result callback."""

    message: str
    job_id: str = Field(..., alias="jobId")

    class Config:
        populate_by_name = True


class SocialAccountStatus(BaseModel):
    """A connected social account with a usable token."""

    provider: str
    connected: bool
    open_id: Optional[str] = Field(None, description="Account id on the provider")
    expires_at: Optional[datetime] = Field(
        None, description="Token expiry (UTC); absent when upstream never reported one"
    )
    connected_at: Optional[datetime] = Field(None, description="When the account was first connected")
    updated_at: Optional[datetime] = Field(None, description="Last token change")


class TokenErrorResponse(BaseModel):
    """Body returned when a provider token cannot be obtained."""

    error: str = Field(..., description="Machine-readable remediation, e.g. tiktok_reconnect_required")
    code: str = Field(..., description="NOT_CONNECTED, TOKEN_EXPIRED, TOKEN_REVOKED or REFRESH_FAILED")
    message: str
