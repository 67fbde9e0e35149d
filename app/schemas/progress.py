"""
Progress event schema shared by the broker, the stream and the HTTP layer.

Events travel as NDJSON, one compact JSON object per line:

    {"status":"rendering","progress":42,"clipIndex":2,"totalClips":3}
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProgressStatus(str, Enum):
    """Processing stages reported by the workflow engine."""

    DOWNLOADING = "downloading"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    RENDERING = "rendering"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressStatus.COMPLETED, ProgressStatus.ERROR)


class ProgressEvent(BaseModel):
    """A single status update about a job."""

    status: ProgressStatus = Field(..., description="Current processing stage")
    progress: int = Field(0, ge=0, le=100, description="Overall progress percentage")
    message: Optional[str] = Field(None, description="Human readable detail")
    clip_index: Optional[int] = Field(None, ge=0, alias="clipIndex", description="Clip being processed")
    total_clips: Optional[int] = Field(None, ge=0, alias="totalClips", description="Number of clips planned")
    error: Optional[str] = Field(None, description="Failure reason when status is error")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "status": "rendering",
                "progress": 42,
                "clipIndex": 2,
                "totalClips": 3,
            }
        }

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_ndjson(self) -> str:
        """Serialize as one NDJSON line (unset optional fields omitted)."""
        return self.model_dump_json(by_alias=True, exclude_none=True) + "\n"

    @classmethod
    def connected(cls) -> "ProgressEvent":
        """Acknowledgment sent as the first line of a fresh stream."""
        return cls(
            status=ProgressStatus.DOWNLOADING,
            progress=0,
            message="Connected to progress stream",
        )

    @classmethod
    def completed(cls) -> "ProgressEvent":
        return cls(status=ProgressStatus.COMPLETED, progress=100)

    @classmethod
    def failed(cls, error: str) -> "ProgressEvent":
        return cls(status=ProgressStatus.ERROR, progress=0, error=error)
