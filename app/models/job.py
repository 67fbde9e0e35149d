from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import AutoString, Field, SQLModel

from app.models.common import utc_timestamp_column, utcnow


class JobStatus(str, Enum):
    """Persisted lifecycle of a processing job."""

    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


class Job(SQLModel, table=True):
    """A video-processing job run by the external workflow engine."""

    __tablename__ = "jobs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    status: JobStatus = Field(default=JobStatus.UPLOADED)

    error_message: Optional[str] = Field(default=None, sa_type=AutoString)
    output_url: Optional[str] = Field(default=None, sa_type=AutoString)

    created_at: datetime = Field(default_factory=utcnow, sa_type=utc_timestamp_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=utc_timestamp_column())
