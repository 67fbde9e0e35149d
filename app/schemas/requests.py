"""
Request schemas for the workflow-engine facing endpoints.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, model_validator


class JobCallbackRequest(BaseModel):
    """Final result of a job, posted once by the workflow engine."""

    status: Literal["completed", "error"] = Field(..., description="Processing outcome")
    output_url: Optional[HttpUrl] = Field(
        default=None,
        alias="outputUrl",
        description="URL of the processed video (required when completed)",
    )
    error_message: Optional[str] = Field(
        default=None,
        alias="errorMessage",
        description="Failure reason (required when error)",
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "status": "completed",
                "outputUrl": "https://cdn.example.com/clips/550e8400/final.mp4",
            }
        }

    @model_validator(mode="after")
    def validate_outcome_fields(self) -> "JobCallbackRequest":
        """Ensure each outcome carries the field that describes it."""
        if self.status == "completed" and self.output_url is None:
            raise ValueError('outputUrl is required when status is "completed"')
        if self.status == "error" and not self.error_message:
            raise ValueError('errorMessage is required when status is "error"')
        return self
