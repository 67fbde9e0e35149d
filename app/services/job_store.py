"""
Job Store - persisted state of processing jobs.
"""

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from app.db.session import get_engine
from app.models.common import utcnow
from app.models.job import Job, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    """SQLModel-backed storage for Job rows."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine or get_engine()

    def find_job(self, job_id: str) -> Optional[Job]:
        with Session(self._engine) as session:
            return session.get(Job, job_id)

    def create_job(self, user_id: str, status: JobStatus = JobStatus.UPLOADED) -> Job:
        with Session(self._engine) as session:
            job = Job(user_id=user_id, status=status)
            session.add(job)
            session.commit()
            session.refresh(job)
            return job

    def mark_job_finished(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> Optional[Job]:
        """
        Move a job into a terminal state.

        The update is committed before this returns, so anything that
        observes the job afterwards sees the terminal status.

        Args:
            job_id: Job to update
            status: DONE or FAILED
            error_message: Failure reason (FAILED only)
            output_url: Result location (DONE only)

        Returns:
            The updated job, or None if it does not exist
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal job status")

        with Session(self._engine) as session:
            job = session.get(Job, job_id)
            if job is None:
                return None

            job.status = status
            if error_message is not None:
                job.error_message = error_message
            if output_url is not None:
                job.output_url = output_url
            job.updated_at = utcnow()

            session.add(job)
            session.commit()
            session.refresh(job)

        logger.info(f"Job {job_id} marked {status.value}")
        return job
