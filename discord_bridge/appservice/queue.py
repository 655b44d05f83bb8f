"""Per-room event queue.

Events for the same room are handled one after another in arrival order;
events for different rooms are handled concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

from discord_bridge.appservice.request import BridgeRequest
from discord_bridge.errors import CallbackNotBoundError

logger = logging.getLogger(__name__)

Consumer = Callable[[BridgeRequest, Dict[str, Any]], Awaitable[Any]]
FatalHandler = Callable[[BaseException], None]

_NO_ROOM = "<no room>"


class RoomQueue:
    """Serialises consumption of requests per ``room_id``.

    *on_fatal* is told about errors that must end the process, such as a
    dispatch before callbacks were bound.
    """

    def __init__(self, consumer: Consumer, on_fatal: Optional[FatalHandler] = None) -> None:
        self._consumer = consumer
        self._on_fatal = on_fatal
        self._pending: Dict[str, Deque[Tuple[BridgeRequest, Dict[str, Any]]]] = {}
        self._workers: Dict[str, asyncio.Task[None]] = {}

    @property
    def active_rooms(self) -> int:
        return len(self._workers)

    def push(self, request: BridgeRequest, context: Dict[str, Any]) -> None:
        key = request.room_id or _NO_ROOM
        self._pending.setdefault(key, deque()).append((request, context))
        if key not in self._workers:
            self._workers[key] = asyncio.create_task(
                self._drain(key), name=f"room-queue:{key}"
            )

    async def _drain(self, key: str) -> None:
        items = self._pending[key]
        try:
            while items:
                request, context = items.popleft()
                try:
                    await self._consumer(request, context)
                except CallbackNotBoundError as exc:
                    logger.critical("Event %s dispatched before callbacks were bound.", request.id)
                    if self._on_fatal is not None:
                        self._on_fatal(exc)
                    raise
                except Exception:
                    logger.exception("Unhandled error consuming request %s.", request.id)
        finally:
            self._workers.pop(key, None)
            if not items:
                self._pending.pop(key, None)

    async def join(self) -> None:
        """Wait until every queued request has been consumed."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding work and drop queued requests."""
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        dropped = sum(len(q) for q in self._pending.values())
        if dropped:
            logger.warning("Dropped %d queued request(s) on shutdown.", dropped)
        self._pending.clear()
        self._workers.clear()
