from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncIterator, DefaultDict

logger = logging.getLogger(__name__)

# Topic names shared by publishers and the web UI
TOPIC_GPS = "sensor.gps"
TOPIC_NAV_STATE = "nav.state"
TOPIC_NAV_CAMERA = "nav.camera"
TOPIC_NAV_ERROR = "nav.error"
TOPIC_NAV_COMMAND = "nav.command"

UI_TOPICS = (TOPIC_NAV_STATE, TOPIC_NAV_CAMERA, TOPIC_NAV_ERROR, TOPIC_GPS)


class EventBus:
    def __init__(self) -> None:
        self._topic_to_queues: DefaultDict[str, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        async with self._lock:
            queues = list(self._topic_to_queues.get(topic, []))
        for queue in queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Dropping event on %s; subscriber queue full", topic)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topic_to_queues.get(topic, []))

    async def subscribe(self, topic: str, max_queue_size: int = 100) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max_queue_size)
        async with self._lock:
            self._topic_to_queues[topic].append(queue)
        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            async with self._lock:
                if queue in self._topic_to_queues.get(topic, []):
                    self._topic_to_queues[topic].remove(queue)
