from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import AsyncIterator

TERMINAL_EVENTS = frozenset({"done", "error", "cancelled"})


class EventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue[dict]]] = defaultdict(set)

    async def publish(self, session_id: str, event: dict) -> None:
        for queue in list(self._subscribers.get(session_id, set())):
            await queue.put(event)

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    async def subscribe(self, session_id: str) -> AsyncIterator[dict]:
        """Yield events for one run; the stream ends after a terminal event."""
        queue: asyncio.Queue[dict] = asyncio.Queue()
        self._subscribers[session_id].add(queue)
        try:
            while True:
                event = await queue.get()
                yield event
                if event.get("type") in TERMINAL_EVENTS:
                    break
        finally:
            self._subscribers[session_id].discard(queue)
            if not self._subscribers[session_id]:
                self._subscribers.pop(session_id, None)
