import asyncio
import gc
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.registry import JobPublisher, SubscriberRegistry, emit  # noqa: E402


class RecordingSubscriber:
    def __init__(self):
        self.events = []
        self.closed = False

    def send(self, event):  # noqa: ANN001
        self.events.append(event)


class BrokenSubscriber:
    closed = False

    def send(self, event):  # noqa: ANN001
        raise ConnectionResetError("client went away")


async def drain(subscriber):  # noqa: ANN001
    return [event async for event in subscriber.stream()]


@pytest.mark.asyncio
async def test_open_announces_subscriber_id():
    registry = SubscriberRegistry()
    sub = registry.open()

    assert registry.get(sub.subscriber_id) is sub
    registry.close(sub.subscriber_id)
    events = await drain(sub)

    assert events == [{"type": "subscribed", "subscriberId": sub.subscriber_id}]
    assert registry.get(sub.subscriber_id) is None
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_get_unknown_or_blank_ids():
    registry = SubscriberRegistry()

    assert registry.get(None) is None
    assert registry.get("") is None
    assert registry.get("does-not-exist") is None


@pytest.mark.asyncio
async def test_send_from_worker_thread_is_delivered():
    registry = SubscriberRegistry()
    sub = registry.open()

    await asyncio.to_thread(sub.send, {"type": "log", "message": "from thread"})
    registry.close(sub.subscriber_id)
    events = await drain(sub)

    assert events[-1] == {"type": "log", "message": "from thread"}


@pytest.mark.asyncio
async def test_closed_subscriber_drops_events():
    registry = SubscriberRegistry()
    sub = registry.open()
    registry.close(sub.subscriber_id)

    emit(sub, "log", "too late")
    events = await drain(sub)

    assert [e["type"] for e in events] == ["subscribed"]


def test_emit_without_subscriber_is_noop():
    emit(None, "log", "nobody listening")
    emit(None, "progress", 50)


def test_emit_to_collected_subscriber_is_noop():
    sub = RecordingSubscriber()
    publisher = JobPublisher("job-1", sub)
    del sub
    gc.collect()

    assert publisher.attached is False
    publisher.log("hello")
    publisher.progress(10)
    publisher.error("boom")


def test_emit_swallows_delivery_errors():
    emit(BrokenSubscriber(), "log", "hello", job_id="job-1")


def test_emit_drops_out_of_range_progress():
    sub = RecordingSubscriber()

    emit(sub, "progress", 150, job_id="job-1")
    emit(sub, "unknown-kind", "x", job_id="job-1")

    assert sub.events == []


def test_publisher_stamps_job_id_and_shapes_payloads():
    sub = RecordingSubscriber()
    publisher = JobPublisher("1700000000000-movie", sub)

    publisher.log("working")
    publisher.progress(30)
    publisher.complete("/download/subtitled_1700000000000-movie.mp4")
    publisher.error("bad")

    assert sub.events == [
        {"type": "log", "jobId": "1700000000000-movie", "message": "working"},
        {"type": "progress", "jobId": "1700000000000-movie", "percent": 30},
        {
            "type": "complete",
            "jobId": "1700000000000-movie",
            "downloadUrl": "/download/subtitled_1700000000000-movie.mp4",
        },
        {"type": "error", "jobId": "1700000000000-movie", "message": "bad"},
    ]


def test_publisher_progress_never_decreases():
    sub = RecordingSubscriber()
    publisher = JobPublisher("job-1", sub)

    for value in (10, 30, 20, 30, 60):
        publisher.progress(value)

    assert [e["percent"] for e in sub.events] == [10, 30, 30, 60]
    assert publisher.last_progress == 60
