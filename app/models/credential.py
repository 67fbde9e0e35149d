from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import AutoString, Field, SQLModel

from app.models.common import utc_timestamp_column, utcnow


class OAuthCredential(SQLModel, table=True):
    """OAuth tokens for one user on one third-party provider."""

    __tablename__ = "oauth_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_oauth_credentials_user_provider"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    provider: str = Field(index=True)  # ex: "tiktok"

    access_token: str = Field(sa_type=AutoString)
    refresh_token: Optional[str] = Field(default=None, sa_type=AutoString)

    # None means upstream never reported an expiry
    expires_at: Optional[datetime] = Field(default=None, sa_type=utc_timestamp_column())

    open_id: Optional[str] = None  # Upstream account id

    created_at: datetime = Field(default_factory=utcnow, sa_type=utc_timestamp_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=utc_timestamp_column())
