"""
Task feeds: fixed-interval polling of the backend, pushed to subscribers.

A TaskPoller fetches once as soon as it starts and then fires a new fetch
every `interval` seconds until stopped. Ticks are fixed-rate: a slow fetch
does not delay the next one, so requests may overlap. A failed fetch is
logged and the schedule carries on.

TaskFeedHub keeps one poller per feed (all tasks, one assignee's tasks, or
a single task), starts it when the first subscriber arrives, stops it when
the last one leaves, and broadcasts every snapshot over SSE.
"""
import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Union

from examportal.schemas import Task
from examportal.services.sse_manager import SSEConnectionManager

logger = logging.getLogger(__name__)

Snapshot = Union[List[Task], Task]
Fetcher = Callable[[], Awaitable[Snapshot]]
Listener = Callable[[Snapshot], object]

ALL_STATUSES = "all"
NO_USER_ID_MESSAGE = "Cannot fetch tasks - no user ID available"


def filter_tasks(tasks: List[Task], status: str = ALL_STATUSES) -> List[Task]:
    return [task for task in tasks if status == ALL_STATUSES or task.status == status]


def feed_key(assigned_to: Optional[str] = None, task_id: Optional[str] = None) -> str:
    if task_id:
        return f"task:{task_id}"
    if assigned_to:
        return f"tasks:{assigned_to}"
    return "tasks"


def snapshot_payload(snapshot: Optional[Snapshot]) -> Union[list, dict, None]:
    if snapshot is None:
        return None
    if isinstance(snapshot, list):
        return [task.to_wire() for task in snapshot]
    return snapshot.to_wire()


class TaskPoller:
    """Re-fetches one feed on a fixed interval for as long as it runs."""

    def __init__(self, fetch: Fetcher, interval: float, name: str = "tasks"):
        self._fetch = fetch
        self.interval = interval
        self.name = name
        self.snapshot: Optional[Snapshot] = None
        self.last_updated: Optional[float] = None
        self.fetch_count = 0
        self.error_count = 0
        self._listeners: List[Listener] = []
        self._ticker: Optional[asyncio.Task] = None
        self._in_flight: set = set()

    @property
    def running(self) -> bool:
        return self._ticker is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> None:
        if self._ticker is not None:
            return
        self._ticker = asyncio.create_task(self._tick())
        logger.info(f"🔄 Polling {self.name} every {self.interval}s")

    async def stop(self) -> None:
        """Clear the interval; fetches already in flight finish but are discarded."""
        ticker, self._ticker = self._ticker, None
        if ticker is None:
            return
        ticker.cancel()
        try:
            await ticker
        except asyncio.CancelledError:
            pass
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info(f"⏹️ Stopped polling {self.name}")

    async def refresh(self) -> Optional[Snapshot]:
        """Fetch once outside the schedule."""
        await self._fetch_once()
        return self.snapshot

    async def _tick(self) -> None:
        while True:
            task = asyncio.create_task(self._fetch_once(scheduled=True))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            await asyncio.sleep(self.interval)

    async def _fetch_once(self, scheduled: bool = False) -> None:
        self.fetch_count += 1
        try:
            snapshot = await self._fetch()
        except Exception as e:
            self.error_count += 1
            logger.error(f"❌ Error fetching {self.name}: {e}")
            return
        if scheduled and self._ticker is None:
            return
        await self.publish(snapshot)

    async def publish(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        self.last_updated = time.time()
        for listener in list(self._listeners):
            result = listener(snapshot)
            if inspect.isawaitable(result):
                await result

    async def apply(self, task: Task) -> bool:
        """Swap in the server's copy of a task; True when this feed held it."""
        if isinstance(self.snapshot, Task):
            if self.snapshot.id != task.id:
                return False
            await self.publish(task)
            return True
        if isinstance(self.snapshot, list) and any(t.id == task.id for t in self.snapshot):
            await self.publish([task if t.id == task.id else t for t in self.snapshot])
            return True
        return False

    async def drop(self, task_id: str) -> bool:
        if isinstance(self.snapshot, list) and any(t.id == task_id for t in self.snapshot):
            await self.publish([t for t in self.snapshot if t.id != task_id])
            return True
        return False


class TaskFeedHub:
    """One poller per feed key, shared by all of that feed's subscribers."""

    def __init__(self, sse_manager: SSEConnectionManager, interval: float):
        self.sse_manager = sse_manager
        self.interval = interval
        self.pollers: Dict[str, TaskPoller] = {}
        self._subscribers: Dict[str, int] = {}

    async def acquire(self, key: str, fetch: Fetcher) -> TaskPoller:
        poller = self.pollers.get(key)
        if poller is None:
            poller = TaskPoller(fetch, self.interval, name=key)
            poller.subscribe(lambda snapshot, key=key: self._broadcast(key, snapshot))
            self.pollers[key] = poller
            poller.start()
        self._subscribers[key] = self._subscribers.get(key, 0) + 1
        return poller

    async def release(self, key: str) -> None:
        remaining = self._subscribers.get(key, 0) - 1
        if remaining > 0:
            self._subscribers[key] = remaining
            return
        self._subscribers.pop(key, None)
        poller = self.pollers.pop(key, None)
        if poller is not None:
            await poller.stop()

    async def apply(self, task: Task) -> None:
        """Push a mutated task to every feed currently showing it."""
        for poller in list(self.pollers.values()):
            await poller.apply(task)

    async def drop(self, task_id: str) -> None:
        for poller in list(self.pollers.values()):
            await poller.drop(task_id)

    async def add(self, task: Task) -> None:
        """Append a new task to the feeds it belongs to."""
        for key in {feed_key(), feed_key(assigned_to=task.assigned_to)}:
            poller = self.pollers.get(key)
            if poller is not None and isinstance(poller.snapshot, list):
                await poller.publish(poller.snapshot + [task])

    async def shutdown(self) -> None:
        for key in list(self.pollers):
            poller = self.pollers.pop(key)
            await poller.stop()
        self._subscribers.clear()

    async def _broadcast(self, key: str, snapshot: Snapshot) -> None:
        await self.sse_manager.publish(key, "tasks", snapshot_payload(snapshot))
