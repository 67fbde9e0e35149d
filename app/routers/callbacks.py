"""
Callback Router - final job results posted by the workflow engine.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth import verify_api_key
from app.db.session import run_blocking
from app.dependencies import get_broker, get_job_store
from app.models.job import JobStatus
from app.schemas.progress import ProgressEvent
from app.schemas.requests import JobCallbackRequest
from app.schemas.responses import CallbackAcceptedResponse
from app.services.job_store import JobStore
from app.services.progress_broker import ProgressBroker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Callbacks"])


@router.post("/{job_id}/callback", response_model=CallbackAcceptedResponse)
async def receive_job_callback(
    job_id: str,
    callback: JobCallbackRequest,
    _: None = Depends(verify_api_key),
    job_store: JobStore = Depends(get_job_store),
    broker: ProgressBroker = Depends(get_broker),
) -> CallbackAcceptedResponse:
    """
    Record a job's outcome and notify everyone watching its progress.

    The job record is committed before the terminal event is published.
    """
    if callback.status == "completed":
        job = await run_blocking(
            job_store.mark_job_finished, job_id, JobStatus.DONE, output_url=str(callback.output_url)
        )
        event = ProgressEvent.completed()
    else:
        job = await run_blocking(
            job_store.mark_job_finished, job_id, JobStatus.FAILED, error_message=callback.error_message
        )
        event = ProgressEvent.failed(callback.error_message)

    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    broker.offer(job_id, event)
    logger.info(f"Callback for job {job_id}: {callback.status}")

    return CallbackAcceptedResponse(message="Callback received", job_id=job_id)
