"""
Tests for the per-connection progress stream.
"""

import json

from app.models.job import Job, JobStatus
from app.schemas.progress import ProgressEvent, ProgressStatus
from app.services.progress_stream import TIMEOUT_MESSAGE, iter_progress_lines


def job_loader(*statuses: JobStatus, error_message: str | None = None):
    """Return a loader yielding a job with each status in turn (last one repeats)."""
    remaining = list(statuses)

    def load():
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return Job(id="j1", user_id="u1", status=status, error_message=error_message)

    return load


async def collect(lines) -> list[dict]:
    return [json.loads(line) async for line in lines]


class TestFinishedJobs:
    async def test_done_job_yields_single_completed_line(self, broker):
        lines = iter_progress_lines("j1", broker, job_loader(JobStatus.DONE), timeout_seconds=5)

        assert await collect(lines) == [{"status": "completed", "progress": 100}]
        assert broker.subscriber_count("j1") == 0

    async def test_failed_job_yields_error_line(self, broker):
        loader = job_loader(JobStatus.FAILED, error_message="ffmpeg exited with 1")
        lines = iter_progress_lines("j1", broker, loader, timeout_seconds=5)

        assert await collect(lines) == [
            {"status": "error", "progress": 0, "error": "ffmpeg exited with 1"}
        ]

    async def test_job_finishing_while_subscribing(self, broker):
        loader = job_loader(JobStatus.PROCESSING, JobStatus.DONE)
        lines = iter_progress_lines("j1", broker, loader, timeout_seconds=5)

        assert await collect(lines) == [{"status": "completed", "progress": 100}]
        assert broker.subscriber_count("j1") == 0


class TestLiveJobs:
    async def test_acknowledgment_then_events(self, broker):
        lines = iter_progress_lines("j1", broker, job_loader(JobStatus.PROCESSING), timeout_seconds=5)

        first = json.loads(await lines.__anext__())
        assert first == {
            "status": "downloading",
            "progress": 0,
            "message": "Connected to progress stream",
        }
        assert broker.subscriber_count("j1") == 1

        broker.publish(
            "j1",
            ProgressEvent(status=ProgressStatus.RENDERING, progress=42, clip_index=2, total_clips=3),
        )
        broker.publish("j1", ProgressEvent.completed())

        assert await collect(lines) == [
            {"status": "rendering", "progress": 42, "clipIndex": 2, "totalClips": 3},
            {"status": "completed", "progress": 100},
        ]
        assert broker.subscriber_count("j1") == 0

    async def test_timeout_ends_with_error_line(self, broker):
        lines = iter_progress_lines("j1", broker, job_loader(JobStatus.PROCESSING), timeout_seconds=0.05)

        events = await collect(lines)

        assert events[0]["status"] == "downloading"
        assert events[-1] == {"status": "error", "progress": 0, "error": TIMEOUT_MESSAGE}
        assert broker.subscriber_count("j1") == 0

    async def test_client_disconnect_unsubscribes(self, broker):
        lines = iter_progress_lines("j1", broker, job_loader(JobStatus.PROCESSING), timeout_seconds=5)
        await lines.__anext__()
        other = broker.subscribe("j1")

        await lines.aclose()

        assert broker.subscriber_count("j1") == 1
        broker.publish("j1", ProgressEvent(status=ProgressStatus.UPLOADING, progress=95))
        assert other.pending == 1
