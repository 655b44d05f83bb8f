"""Inbound event request with an outcome-reporting contract."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Dict, Optional

logger = logging.getLogger(__name__)


class BridgeRequest:
    """One homeserver event travelling through the bridge.

    A request starts pending and is settled exactly once, either resolved
    with a value or rejected with an exception.  The SDK awaits
    :meth:`outcome` to learn which.

    Attributes:
        id: Unique identifier for this request.
        data: The raw Matrix event.
        start_time: High-resolution monotonic timestamp.
    """

    def __init__(self, data: Dict[str, Any], request_id: Optional[str] = None) -> None:
        self.id = request_id or uuid.uuid4().hex[:12]
        self.data = data
        self.start_time = time.monotonic()
        self._settled = False
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._done = asyncio.Event()

    @property
    def room_id(self) -> Optional[str]:
        return self.data.get("room_id")

    @property
    def is_pending(self) -> bool:
        return not self._settled

    @property
    def done(self) -> bool:
        return self._settled

    @property
    def value(self) -> Any:
        return self._value

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since request creation."""
        return (time.monotonic() - self.start_time) * 1000.0

    def resolve(self, value: Any = None) -> None:
        if self._settled:
            logger.debug("Request %s already settled; ignoring resolve.", self.id)
            return
        self._settled = True
        self._value = value
        self._done.set()

    def reject(self, error: BaseException) -> None:
        if self._settled:
            logger.debug("Request %s already settled; ignoring reject.", self.id)
            return
        self._settled = True
        self._error = error
        self._done.set()

    async def outcome_from(self, awaitable: Awaitable[Any]) -> None:
        """Await *awaitable* and settle this request with its result.

        The handler's exception is recorded, not re-raised.
        """
        if self._settled:
            raise RuntimeError(f"Request {self.id} has already been settled.")
        try:
            value = await awaitable
        except Exception as exc:
            self.reject(exc)
        else:
            self.resolve(value)

    async def outcome(self) -> Any:
        """Wait until the request settles; return its value or raise its error."""
        await self._done.wait()
        if self._error is not None:
            raise self._error
        return self._value

    def __repr__(self) -> str:
        state = "pending" if not self._settled else ("rejected" if self._error else "resolved")
        return f"<BridgeRequest {self.id} {self.data.get('type', '?')} {state}>"
