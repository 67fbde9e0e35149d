"""
Progress Broker - in-memory fan-out of job progress events.

Live client connections subscribe per job id; the workflow engine's progress
updates are published to every subscriber of that job. A terminal event
(completed/error) is delivered and then closes every subscription of the job.

State lives in process memory only. Subscriptions are lost on restart and
clients reconnect; the persisted Job record stays the source of truth. Running
several replicas needs a shared pub/sub layer instead of this registry.
"""

import asyncio
import logging
import uuid
from typing import Optional

from app.config import get_settings
from app.schemas.progress import ProgressEvent

logger = logging.getLogger(__name__)

# Queued after the last event of a closed subscription
_CLOSED = object()


class SubscriptionClosed(Exception):
    """Delivery attempted on a closed subscription."""


class SubscriptionBacklogFull(Exception):
    """The subscriber is not draining its events."""


class Subscription:
    """
    One live subscriber of a job.

    The subscription is both the handle passed back to unsubscribe() and the
    channel the consumer drains with next_event().
    """

    def __init__(self, job_id: str, max_pending: int):
        self.id = uuid.uuid4().hex
        self.job_id = job_id
        self.max_pending = max_pending
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, event: ProgressEvent) -> None:
        """
        Queue an event without blocking.

        The backlog cap applies to intermediate updates only; a terminal event
        is always queued so the consumer learns how the job ended.
        """
        if self._closed:
            raise SubscriptionClosed(f"Subscription {self.id} is closed")
        if not event.is_terminal and self._queue.qsize() >= self.max_pending:
            raise SubscriptionBacklogFull(
                f"Subscription {self.id} has {self.max_pending} undelivered events"
            )
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop accepting events; already queued events can still be read."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def next_event(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """
        Wait for the next event.

        Args:
            timeout: Seconds to wait; None waits forever

        Returns:
            The next event, or None once the subscription is closed and drained

        Raises:
            asyncio.TimeoutError: If no event arrives in time
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)

        if item is _CLOSED:
            # Keep answering None on later calls
            self._queue.put_nowait(_CLOSED)
            return None
        return item


class ProgressBroker:
    """Registry of live subscriptions keyed by job id."""

    def __init__(self, max_pending_events: Optional[int] = None):
        settings = get_settings()
        self.max_pending_events = max_pending_events or settings.progress_max_pending_events

        self._subscribers: dict[str, dict[str, Subscription]] = {}
        # Highest progress accepted by offer(), per job with live subscribers
        self._last_progress: dict[str, int] = {}

    def subscribe(self, job_id: str) -> Subscription:
        """Register a new subscriber for a job."""
        subscription = Subscription(job_id, self.max_pending_events)
        subscribers = self._subscribers.setdefault(job_id, {})
        subscribers[subscription.id] = subscription
        logger.info(f"Progress subscriber connected to job {job_id} ({len(subscribers)} active)")
        return subscription

    def unsubscribe(self, job_id: str, subscription: Subscription) -> bool:
        """
        Remove one subscriber, leaving the others untouched.

        Returns:
            True if the subscription was registered
        """
        subscription.close()
        subscribers = self._subscribers.get(job_id)
        if not subscribers or subscribers.pop(subscription.id, None) is None:
            return False

        if not subscribers:
            del self._subscribers[job_id]
            self._last_progress.pop(job_id, None)
        logger.info(f"Progress subscriber left job {job_id} ({len(subscribers)} active)")
        return True

    def publish(self, job_id: str, event: ProgressEvent) -> int:
        """
        Deliver an event to every subscriber of a job.

        Delivery to each subscriber is independent: one closed or backlogged
        subscriber does not affect the others and never fails the call.
        Terminal events close every subscription of the job afterwards.

        Returns:
            Number of subscribers the event was delivered to
        """
        subscribers = self._subscribers.get(job_id, {})
        delivered = 0

        for subscription in list(subscribers.values()):
            try:
                subscription.deliver(event)
                delivered += 1
            except SubscriptionClosed:
                subscribers.pop(subscription.id, None)
                logger.debug(f"Dropped closed subscriber {subscription.id} of job {job_id}")
            except SubscriptionBacklogFull as e:
                logger.warning(f"Progress event for job {job_id} not delivered: {e}")

        if event.is_terminal:
            for subscription in self._subscribers.pop(job_id, {}).values():
                subscription.close()
            self._last_progress.pop(job_id, None)
            logger.info(
                f"Job {job_id} reached {event.status.value}; "
                f"delivered to {delivered} subscribers and closed"
            )
        elif not subscribers:
            self._subscribers.pop(job_id, None)
            self._last_progress.pop(job_id, None)

        return delivered

    def offer(self, job_id: str, event: ProgressEvent) -> bool:
        """
        Publish an update only if it moves the job's progress forward.

        The first event for a job and terminal events always pass; other
        events must carry a strictly higher progress than the last one
        accepted, so late or duplicated updates never move the bar back.
        The last accepted value is kept only while the job has subscribers.

        Returns:
            True if the event was published
        """
        if event.is_terminal:
            self.publish(job_id, event)
            return True

        previous = self._last_progress.get(job_id)
        if previous is not None and event.progress <= previous:
            logger.debug(
                f"Ignoring stale progress for job {job_id}: {event.progress}% (last {previous}%)"
            )
            return False

        self._last_progress[job_id] = event.progress
        self.publish(job_id, event)
        return True

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, {}))

    def active_jobs(self) -> list[str]:
        """Job ids that currently have at least one subscriber."""
        return list(self._subscribers)


# Global singleton instance
_progress_broker: Optional[ProgressBroker] = None


def get_progress_broker() -> ProgressBroker:
    """Get or create the global progress broker instance."""
    global _progress_broker
    if _progress_broker is None:
        _progress_broker = ProgressBroker()
    return _progress_broker
