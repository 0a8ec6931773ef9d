"""Live viewer count for the city, fanned out to Server-Sent Event streams."""
import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class PresenceHub:
    def __init__(self) -> None:
        self._viewers: dict[str, datetime] = {}
        self._queues: dict[str, asyncio.Queue[int]] = {}

    @property
    def count(self) -> int:
        # The viewer asking is always in the city
        return max(1, len(self._viewers))

    def join(self) -> tuple[str, asyncio.Queue[int]]:
        key = uuid.uuid4().hex
        queue: asyncio.Queue[int] = asyncio.Queue()
        self._viewers[key] = datetime.now(timezone.utc)
        self._queues[key] = queue
        self._broadcast()
        return key, queue

    def leave(self, key: str) -> None:
        self._viewers.pop(key, None)
        self._queues.pop(key, None)
        self._broadcast()

    def _broadcast(self) -> None:
        count = self.count
        for queue in self._queues.values():
            queue.put_nowait(count)

    async def stream(self, is_disconnected=None) -> AsyncIterator[str]:
        """Yield the viewer count now and after every join or leave."""
        key, queue = self.join()
        try:
            while True:
                count = await queue.get()
                # Drop stale counts queued while we were waiting
                while not queue.empty():
                    count = queue.get_nowait()
                yield json.dumps({"count": count, "status": "connected"})
                if is_disconnected is not None and await is_disconnected():
                    break
        finally:
            self.leave(key)


presence_hub = PresenceHub()
