from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from typing import Any, AsyncIterator, Dict, Optional, Union

from common_schemas.models import JobEvent

logger = logging.getLogger("subburn.events")


class Subscriber:
    """A live client waiting for job events.

    Events are queued and drained by exactly one streaming response. ``send``
    may be called from any task on the owning loop, or from another thread.
    """

    def __init__(self, subscriber_id: str) -> None:
        self.subscriber_id = subscriber_id
        self.closed = False
        self._queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue()
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    def send(self, event: Dict[str, Any]) -> None:
        if self.closed:
            return
        self._put(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._put(None)

    def _put(self, item: Optional[Dict[str, Any]]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None or running is self._loop or self._loop.is_closed():
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    async def stream(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event


class SubscriberRegistry:
    def __init__(self) -> None:
        self._subscribers: Dict[str, Subscriber] = {}

    def open(self) -> Subscriber:
        subscriber = Subscriber(uuid.uuid4().hex)
        self._subscribers[subscriber.subscriber_id] = subscriber
        subscriber.send(JobEvent(type="subscribed", subscriber_id=subscriber.subscriber_id).wire())
        logger.info("Subscriber connected: %s", subscriber.subscriber_id)
        return subscriber

    def get(self, subscriber_id: Optional[str]) -> Optional[Subscriber]:
        if not subscriber_id:
            return None
        return self._subscribers.get(subscriber_id.strip())

    def close(self, subscriber_id: str) -> None:
        subscriber = self._subscribers.pop(subscriber_id, None)
        if subscriber is None:
            return
        subscriber.close()
        logger.info("Subscriber disconnected: %s", subscriber_id)

    def __len__(self) -> int:
        return len(self._subscribers)


SubscriberRef = Union[None, Subscriber, "weakref.ReferenceType[Subscriber]"]


def _resolve(subscriber: SubscriberRef) -> Optional[Subscriber]:
    if isinstance(subscriber, weakref.ReferenceType):
        subscriber = subscriber()
    if subscriber is None or getattr(subscriber, "closed", False):
        return None
    return subscriber


def build_event(kind: str, payload: Any, job_id: Optional[str] = None) -> JobEvent:
    if kind == "log":
        return JobEvent(type="log", job_id=job_id, message=str(payload))
    if kind == "progress":
        return JobEvent(type="progress", job_id=job_id, percent=int(payload))
    if kind == "complete":
        url = payload.get("downloadUrl") if isinstance(payload, dict) else payload
        return JobEvent(type="complete", job_id=job_id, download_url=str(url))
    if kind == "error":
        return JobEvent(type="error", job_id=job_id, message=str(payload))
    raise ValueError(f"Unknown event kind: {kind}")


def emit(subscriber: SubscriberRef, kind: str, payload: Any = None, *, job_id: Optional[str] = None) -> None:
    target = _resolve(subscriber)
    if target is None:
        return
    try:
        event = build_event(kind, payload, job_id)
    except (TypeError, ValueError):
        logger.warning("Dropping malformed %s event for job %s: %r", kind, job_id, payload, exc_info=True)
        return
    try:
        target.send(event.wire())
    except Exception:  # noqa: BLE001
        logger.debug("Subscriber delivery failed for %s", event, exc_info=True)


class JobPublisher:
    """Routes one job's events to the subscriber that uploaded it.

    Holds only a weak reference, so a disconnected client never keeps a
    subscriber alive and never fails the job.
    """

    def __init__(self, job_id: str, subscriber: Optional[Subscriber] = None) -> None:
        self.job_id = job_id
        self._ref = weakref.ref(subscriber) if subscriber is not None else None
        self.last_progress: Optional[int] = None

    @property
    def attached(self) -> bool:
        return _resolve(self._ref) is not None

    def log(self, message: str) -> None:
        emit(self._ref, "log", message, job_id=self.job_id)

    def progress(self, percent: int) -> None:
        if self.last_progress is not None and percent < self.last_progress:
            logger.debug("Ignoring regressing progress %s < %s for job %s", percent, self.last_progress, self.job_id)
            return
        self.last_progress = percent
        emit(self._ref, "progress", percent, job_id=self.job_id)

    def complete(self, download_url: str) -> None:
        emit(self._ref, "complete", {"downloadUrl": download_url}, job_id=self.job_id)

    def error(self, message: str) -> None:
        emit(self._ref, "error", message, job_id=self.job_id)
