import asyncio
import json

import pytest

from conftest import task_json
from examportal.context import build_portal
from examportal.routes import tasks as task_routes
from examportal.schemas import Task
from examportal.services.sse_manager import SSEConnectionManager
from examportal.services.task_feed import (
    TaskFeedHub,
    TaskPoller,
    feed_key,
    filter_tasks,
    snapshot_payload,
)


def make_task(task_id, **extra):
    return Task.model_validate(task_json(task_id, **extra))


class CountingFetch:
    def __init__(self, tasks=None, fail_first=0):
        self.calls = 0
        self.tasks = tasks or []
        self.fail_first = fail_first

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.fail_first:
            raise RuntimeError("backend down")
        return list(self.tasks)


def test_filter_tasks_by_status():
    tasks = [make_task("1"), make_task("2", status="completed"), make_task("3", status="in-progress")]
    assert filter_tasks(tasks) == tasks
    assert [t.id for t in filter_tasks(tasks, "completed")] == ["2"]
    assert [t.id for t in filter_tasks(tasks, "in-progress")] == ["3"]


def test_feed_keys():
    assert feed_key() == "tasks"
    assert feed_key(assigned_to="s-1") == "tasks:s-1"
    assert feed_key(assigned_to="s-1", task_id="t-1") == "task:t-1"


def test_snapshot_payload_uses_wire_names():
    payload = snapshot_payload([make_task("t-1")])
    assert payload[0]["_id"] == "t-1"
    assert payload[0]["assignedTo"] == "s-1"
    assert snapshot_payload(None) is None


@pytest.mark.asyncio
async def test_poller_fetches_once_immediately():
    fetch = CountingFetch([make_task("1")])
    poller = TaskPoller(fetch, interval=60)
    poller.start()
    await asyncio.sleep(0.05)
    await poller.stop()
    assert fetch.calls == 1
    assert [t.id for t in poller.snapshot] == ["1"]


@pytest.mark.asyncio
async def test_poller_keeps_ticking():
    fetch = CountingFetch()
    poller = TaskPoller(fetch, interval=0.02)
    poller.start()
    await asyncio.sleep(0.2)
    await poller.stop()
    assert fetch.calls >= 4


@pytest.mark.asyncio
async def test_poller_survives_errors():
    fetch = CountingFetch([make_task("1")], fail_first=2)
    poller = TaskPoller(fetch, interval=0.02)
    poller.start()
    await asyncio.sleep(0.2)
    await poller.stop()
    assert poller.error_count == 2
    assert fetch.calls > 2
    assert [t.id for t in poller.snapshot] == ["1"]


@pytest.mark.asyncio
async def test_no_fetch_after_stop():
    fetch = CountingFetch()
    poller = TaskPoller(fetch, interval=0.02)
    poller.start()
    await asyncio.sleep(0.05)
    await poller.stop()
    stopped_at = fetch.calls
    await asyncio.sleep(0.1)
    assert fetch.calls == stopped_at
    assert not poller.running


@pytest.mark.asyncio
async def test_listeners_receive_snapshots():
    fetch = CountingFetch([make_task("1")])
    poller = TaskPoller(fetch, interval=60)
    seen = []
    unsubscribe = poller.subscribe(seen.append)
    await poller.refresh()
    unsubscribe()
    await poller.refresh()
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_apply_and_drop_update_snapshot():
    poller = TaskPoller(CountingFetch(), interval=60)
    await poller.publish([make_task("1"), make_task("2")])
    assert await poller.apply(make_task("2", status="completed"))
    assert [t.status for t in poller.snapshot] == ["pending", "completed"]
    assert not await poller.apply(make_task("9"))
    assert await poller.drop("1")
    assert [t.id for t in poller.snapshot] == ["2"]


@pytest.mark.asyncio
async def test_hub_broadcasts_and_stops_with_last_subscriber():
    manager = SSEConnectionManager()
    hub = TaskFeedHub(manager, interval=60)
    fetch = CountingFetch([make_task("1")])
    queue = await manager.connect("tasks")

    await hub.acquire("tasks", fetch)
    await hub.acquire("tasks", fetch)
    frame = await asyncio.wait_for(queue.get(), timeout=1)
    assert frame.startswith("data: ")
    message = json.loads(frame[len("data: "):])
    assert message["type"] == "tasks"
    assert message["feed"] == "tasks"
    assert message["data"][0]["_id"] == "1"

    await hub.release("tasks")
    assert "tasks" in hub.pollers
    await hub.release("tasks")
    assert "tasks" not in hub.pollers
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_hub_pushes_mutations_to_open_feeds():
    manager = SSEConnectionManager()
    hub = TaskFeedHub(manager, interval=60)
    await hub.acquire("tasks", CountingFetch([make_task("1")]))
    await hub.acquire("tasks:s-1", CountingFetch([make_task("1")]))
    await asyncio.sleep(0.05)

    await hub.add(make_task("2"))
    assert [t.id for t in hub.pollers["tasks"].snapshot] == ["1", "2"]
    assert [t.id for t in hub.pollers["tasks:s-1"].snapshot] == ["1", "2"]

    await hub.apply(make_task("1", status="completed"))
    assert hub.pollers["tasks"].snapshot[0].status == "completed"

    await hub.drop("2")
    assert [t.id for t in hub.pollers["tasks:s-1"].snapshot] == ["1"]
    await hub.shutdown()
    assert hub.pollers == {}


@pytest.mark.asyncio
async def test_slow_fetch_does_not_delay_next_tick():
    running = 0
    peak = 0

    async def slow_fetch():
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.1)
        running -= 1
        return []

    poller = TaskPoller(slow_fetch, interval=0.02)
    poller.start()
    await asyncio.sleep(0.09)
    await poller.stop()
    assert peak >= 3
    assert running == 0


def read_frame(frame):
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


@pytest.mark.asyncio
async def test_task_stream_route(settings, backend):
    # Driven through the route's body iterator: TestClient buffers whole
    # responses and would never return from an endless event stream.
    backend.on("GET", "/api/tasks", json=[task_json("t-1")])
    portal = build_portal(settings.model_copy(update={"poll_interval_seconds": 60}), transport=backend.transport)
    portal.session.login("tok", "admin")
    try:
        response = await task_routes.stream_tasks(assigned_to=None, task_id=None,
                                                  session=portal.session, portal=portal)
        assert response.media_type == "text/event-stream"
        stream = response.body_iterator

        first = read_frame(await asyncio.wait_for(stream.__anext__(), timeout=1))
        assert first["feed"] == "tasks"
        assert [t["_id"] for t in first["data"]] == ["t-1"]
        assert "tasks" in portal.feeds.pollers

        await portal.feeds.apply(make_task("t-1", status="completed"))
        update = read_frame(await asyncio.wait_for(stream.__anext__(), timeout=1))
        assert update["data"][0]["status"] == "completed"

        late = (await task_routes.stream_tasks(assigned_to=None, task_id=None,
                                               session=portal.session, portal=portal)).body_iterator
        current = read_frame(await asyncio.wait_for(late.__anext__(), timeout=1))
        assert current["data"][0]["status"] == "completed"
        assert len(backend.calls("GET", "/api/tasks")) == 1

        await late.aclose()
        assert "tasks" in portal.feeds.pollers
        await stream.aclose()
        assert "tasks" not in portal.feeds.pollers
        assert portal.sse_manager.active_connections == {}
    finally:
        await portal.close()


@pytest.mark.asyncio
async def test_task_stream_pings_when_idle(settings, backend):
    backend.on("GET", "/api/tasks/t-1", json=task_json("t-1"))
    quiet = settings.model_copy(update={"poll_interval_seconds": 60, "sse_ping_seconds": 0.05})
    portal = build_portal(quiet, transport=backend.transport)
    portal.session.login("tok", "sales")
    portal.session.remember_profile(user_id="s-1")
    try:
        stream = (await task_routes.stream_tasks(assigned_to=None, task_id="t-1",
                                                 session=portal.session, portal=portal)).body_iterator
        first = read_frame(await asyncio.wait_for(stream.__anext__(), timeout=1))
        assert first["feed"] == "task:t-1"
        assert first["data"]["_id"] == "t-1"
        assert await asyncio.wait_for(stream.__anext__(), timeout=1) == ": ping\n\n"
        await stream.aclose()
    finally:
        await portal.close()
