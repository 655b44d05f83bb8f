"""Dispatch controller handed to the application-service SDK.

Every hook except ``onLog`` runs its handler inside an isolation wrapper:
an exception raised by the handler is logged with the hook name and turned
into a failed :class:`DispatchOutcome` instead of reaching the SDK.  For
``onEvent`` the failure is also reported to the originating request so the
SDK's acknowledgement bookkeeping stays correct.

Dispatching before :meth:`DispatchController.bind` is a programming error
and raises :class:`CallbackNotBoundError`, which is never isolated.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from discord_bridge.bridge.callbacks import (
    BridgeCallbacks,
    DispatchOutcome,
    OutcomeReporter,
)
from discord_bridge.constants import SDK_LOGGER_NAME
from discord_bridge.display.logging_config import VERBOSE
from discord_bridge.errors import CallbackNotBoundError, CallbackWiringError

logger = logging.getLogger(__name__)
sdk_logger = logging.getLogger(SDK_LOGGER_NAME)


class DispatchController:
    """Routes SDK hooks to the bound :class:`BridgeCallbacks`."""

    def __init__(self) -> None:
        self._callbacks: Optional[BridgeCallbacks] = None

    @property
    def is_bound(self) -> bool:
        return self._callbacks is not None

    def bind(self, callbacks: BridgeCallbacks) -> None:
        """Install the callback table.  Allowed exactly once."""
        if not isinstance(callbacks, BridgeCallbacks):
            raise CallbackWiringError(
                f"Expected BridgeCallbacks, got {type(callbacks).__name__}."
            )
        if self._callbacks is not None:
            raise CallbackWiringError("Callbacks are already bound.")
        self._callbacks = callbacks
        logger.info("Dispatch controller callbacks bound.")

    def _require(self, hook: str) -> BridgeCallbacks:
        if self._callbacks is None:
            raise CallbackNotBoundError(hook)
        return self._callbacks

    async def _isolate(
        self,
        hook: str,
        handler: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> DispatchOutcome:
        try:
            value = await handler(*args)
        except Exception as exc:
            _log_failure(hook, exc)
            return DispatchOutcome.failure(hook, exc)
        return DispatchOutcome.success(hook, value)

    # ── Hooks ───────────────────────────────────────────────────────────

    async def on_alias_queried(self, alias: str, room_id: str) -> DispatchOutcome:
        callbacks = self._require("onAliasQueried")
        return await self._isolate("onAliasQueried", callbacks.on_alias_queried, alias, room_id)

    async def on_alias_query(self, alias: str, alias_localpart: str) -> DispatchOutcome:
        callbacks = self._require("onAliasQuery")
        return await self._isolate("onAliasQuery", callbacks.on_alias_query, alias, alias_localpart)

    async def on_event(self, request: OutcomeReporter, context: Dict[str, Any]) -> DispatchOutcome:
        """Run the event handler and report its outcome to *request*."""
        hook = "onEvent"
        callbacks = self._require(hook)
        if not request.is_pending:
            exc = RuntimeError("Request has already been settled.")
            _log_failure(hook, exc)
            return DispatchOutcome.failure(hook, exc)
        try:
            pending = callbacks.on_event(request, context)
        except Exception as exc:
            _log_failure(hook, exc)
            request.reject(exc)
            return DispatchOutcome.failure(hook, exc)

        try:
            await request.outcome_from(pending)
        except Exception as exc:
            if inspect.iscoroutine(pending):
                pending.close()
            _log_failure(hook, exc)
            return DispatchOutcome.failure(hook, exc)
        if request.error is not None:
            _log_failure(hook, request.error)
            return DispatchOutcome.failure(hook, request.error)
        return DispatchOutcome.success(hook, request.value)

    def on_log(self, line: str, is_error: bool = False) -> None:
        sdk_logger.log(VERBOSE, "%s", line)

    async def third_party_lookup(self) -> DispatchOutcome:
        callbacks = self._require("thirdPartyLookup")
        return await self._isolate("thirdPartyLookup", callbacks.third_party_lookup)

    async def on_user_query(self, user_id: str) -> None:
        """Reserved; users are not provisioned on query."""
        return None


def _log_failure(hook: str, exc: BaseException) -> None:
    logger.error(
        'Exception thrown while handling "%s" event: %s',
        hook,
        exc,
        exc_info=exc,
    )
