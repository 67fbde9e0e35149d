"""
Progress API Router - NDJSON progress streams and progress ingestion.

GET  /jobs/{job_id}/progress  client stream (one JSON object per line)
POST /jobs/{job_id}/progress  progress update from the workflow engine
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.auth import get_current_user_id, verify_api_key
from app.config import get_settings
from app.db.session import run_blocking
from app.dependencies import get_broker, get_job_store
from app.models.job import JobStatus
from app.schemas.progress import ProgressEvent, ProgressStatus
from app.schemas.responses import ProgressAcceptedResponse
from app.services.job_store import JobStore
from app.services.progress_broker import ProgressBroker
from app.services.progress_stream import iter_progress_lines

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Progress"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"


@router.get(
    "/{job_id}/progress",
    response_class=StreamingResponse,
    responses={200: {"content": {NDJSON_MEDIA_TYPE: {}}}},
)
async def stream_job_progress(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    job_store: JobStore = Depends(get_job_store),
    broker: ProgressBroker = Depends(get_broker),
) -> StreamingResponse:
    """
    Stream a job's progress as newline-delimited JSON.

    Finished jobs answer with a single line. Running jobs first get a
    "connected" line, then every update until the job completes or fails.
    """
    job = await run_blocking(job_store.find_job, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    settings = get_settings()
    lines = iter_progress_lines(
        job_id,
        broker,
        load_job=lambda: job_store.find_job(job_id),
        timeout_seconds=settings.progress_stream_timeout_seconds,
    )
    return StreamingResponse(
        lines,
        media_type=NDJSON_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable proxy buffering (nginx)
        },
    )


@router.post("/{job_id}/progress", response_model=ProgressAcceptedResponse)
async def post_job_progress(
    job_id: str,
    event: ProgressEvent,
    _: None = Depends(verify_api_key),
    job_store: JobStore = Depends(get_job_store),
    broker: ProgressBroker = Depends(get_broker),
) -> ProgressAcceptedResponse:
    """
    Receive a progress update from the workflow engine and fan it out.

    Terminal updates are written to the job record before they are
    broadcast, so clients connecting afterwards resolve from the record.
    """
    subscribers = broker.subscriber_count(job_id)
    logger.info(
        f"Progress for job {job_id}: {event.status.value} {event.progress}% "
        f"({subscribers} subscribers)"
    )

    if event.is_terminal:
        if event.status == ProgressStatus.COMPLETED:
            job = await run_blocking(job_store.mark_job_finished, job_id, JobStatus.DONE)
        else:
            job = await run_blocking(
                job_store.mark_job_finished,
                job_id,
                JobStatus.FAILED,
                error_message=event.error or event.message or "Unknown error",
            )
        if job is None:
            logger.warning(f"Terminal progress for unknown job {job_id}")

    delivered = broker.offer(job_id, event)
    return ProgressAcceptedResponse(delivered=delivered, subscribers=subscribers)
