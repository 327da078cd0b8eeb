"""
SSE fan-out for task feeds.

Each open stream gets its own queue under a feed key ("tasks",
"tasks:<id>", "task:<id>"). Messages are framed here so the route
only writes what it reads off its queue.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

PING = ": ping\n\n"


def feed_event(feed_key: str, kind: str, data: Any) -> Dict[str, Any]:
    return {"type": kind, "feed": feed_key, "data": data}


def format_event(message: Dict[str, Any]) -> str:
    """One SSE `data:` frame."""
    return f"data: {json.dumps(message)}\n\n"


class SSEConnectionManager:
    """Queues of the streams open on each feed."""

    def __init__(self):
        self.active_connections: Dict[str, List[asyncio.Queue]] = {}

    async def connect(self, feed_key: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self.active_connections.setdefault(feed_key, []).append(queue)
        logger.info(f"📡 Stream opened on {feed_key} ({len(self.active_connections[feed_key])} open)")
        return queue

    def disconnect(self, feed_key: str, queue: asyncio.Queue) -> None:
        queues = self.active_connections.get(feed_key)
        if queues is None:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            del self.active_connections[feed_key]
        logger.info(f"📴 Stream closed on {feed_key}")

    async def publish(self, feed_key: str, kind: str, data: Any) -> None:
        """Queue one framed event for every stream open on `feed_key`."""
        frame = format_event(feed_event(feed_key, kind, data))
        for queue in list(self.active_connections.get(feed_key, [])):
            await queue.put(frame)
