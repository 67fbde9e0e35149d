"""
Progress Stream - the per-connection side of the progress broker.

iter_progress_lines() yields the NDJSON lines for one client watching a job:
- a job already DONE/FAILED resolves immediately with one synthesized line
- otherwise the client is subscribed and first receives a "connected" line,
  then every published event until a terminal one, the connection closes,
  or the stream ceiling elapses (which ends it with a timeout error line)
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from app.db.session import run_blocking
from app.models.job import Job, JobStatus
from app.schemas.progress import ProgressEvent
from app.services.progress_broker import ProgressBroker

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Timeout - processing took too long"


def terminal_event_for_job(job: Optional[Job]) -> Optional[ProgressEvent]:
    """Synthesize the final event for a job already in a terminal state."""
    if job is None:
        return None
    if job.status == JobStatus.DONE:
        return ProgressEvent.completed()
    if job.status == JobStatus.FAILED:
        return ProgressEvent.failed(job.error_message or "Unknown error")
    return None


async def iter_progress_lines(
    job_id: str,
    broker: ProgressBroker,
    load_job: Callable[[], Optional[Job]],
    timeout_seconds: float,
) -> AsyncIterator[str]:
    """
    Yield NDJSON progress lines for one client connection.

    Args:
        job_id: Job to observe
        broker: Broker to subscribe to
        load_job: Reads the persisted job record (blocking; run on an executor thread)
        timeout_seconds: Hard ceiling on the connection's lifetime

    Yields:
        Newline-terminated JSON lines
    """
    final = terminal_event_for_job(await run_blocking(load_job))
    if final is not None:
        yield final.to_ndjson()
        return

    subscription = broker.subscribe(job_id)
    try:
        # Terminal updates are committed before they are published, so a job
        # that finished between the first read and subscribe() shows up here
        final = terminal_event_for_job(await run_blocking(load_job))
        if final is not None:
            yield final.to_ndjson()
            return

        yield ProgressEvent.connected().to_ndjson()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()

            event = await subscription.next_event(timeout=remaining)
            if event is None:
                break

            yield event.to_ndjson()
            if event.is_terminal:
                break

    except asyncio.TimeoutError:
        logger.warning(f"Progress stream for job {job_id} timed out after {timeout_seconds:.0f}s")
        yield ProgressEvent.failed(TIMEOUT_MESSAGE).to_ndjson()

    finally:
        broker.unsubscribe(job_id, subscription)
