"""
SQLModel tables persisted by the service.
"""

from app.models.credential import OAuthCredential
from app.models.job import Job, JobStatus

__all__ = ["OAuthCredential", "Job", "JobStatus"]
