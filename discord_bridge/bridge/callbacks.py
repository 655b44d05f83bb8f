"""Callback table and dispatch result types.

The callback table is a closed structure: one slot per dispatchable hook,
all of which must be supplied when it is built.  Once built it cannot be
changed.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from discord_bridge.errors import CallbackWiringError

# ── Handler protocols ────────────────────────────────────────────────────


class OutcomeReporter(Protocol):
    """A request that can be told how its handling ended.

    ``outcome_from`` awaits the handler and settles the request with its
    value or exception without re-raising; ``value`` and ``error`` expose
    how it settled.
    """

    @property
    def value(self) -> Any: ...

    @property
    def error(self) -> Optional[BaseException]: ...

    @property
    def is_pending(self) -> bool: ...

    async def outcome_from(self, awaitable: Awaitable[Any]) -> None: ...

    def reject(self, error: BaseException) -> None: ...


AliasQueriedHandler = Callable[[str, str], Awaitable[Any]]
AliasQueryHandler = Callable[[str, str], Awaitable[Optional[Dict[str, Any]]]]
EventHandler = Callable[[Any, Dict[str, Any]], Awaitable[Any]]
ThirdPartyLookupHandler = Callable[[], Awaitable[Dict[str, Any]]]


# Slot name → hook name used by the application-service SDK.
HOOK_NAMES: Dict[str, str] = {
    "on_alias_queried": "onAliasQueried",
    "on_alias_query": "onAliasQuery",
    "on_event": "onEvent",
    "third_party_lookup": "thirdPartyLookup",
}

ON_LOG = "onLog"
ON_USER_QUERY = "onUserQuery"


@dataclass(frozen=True)
class BridgeCallbacks:
    """The four isolated hooks, each bound to its handler.

    ``onLog`` is not part of the table: it goes straight to the logger.
    """

    on_alias_queried: AliasQueriedHandler
    on_alias_query: AliasQueryHandler
    on_event: EventHandler
    third_party_lookup: ThirdPartyLookupHandler

    def __post_init__(self) -> None:
        unset = [
            HOOK_NAMES[f.name] for f in fields(self) if not callable(getattr(self, f.name))
        ]
        if unset:
            raise CallbackWiringError(f"Callback(s) left unset: {', '.join(unset)}")

    @classmethod
    def from_handler(cls, handler: Any) -> "BridgeCallbacks":
        """Bind the table from *handler*'s methods of the same names.

        Raises:
            CallbackWiringError: If *handler* lacks one of the methods.
        """
        bound: Dict[str, Any] = {}
        missing = []
        for slot, hook in HOOK_NAMES.items():
            method = getattr(handler, slot, None)
            if method is None:
                missing.append(hook)
            bound[slot] = method
        if missing:
            raise CallbackWiringError(
                f"{type(handler).__name__} does not provide: {', '.join(missing)}"
            )
        return cls(**bound)


# ── Dispatch result ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one isolated dispatch.

    Attributes:
        hook: SDK hook name that was dispatched.
        ok: ``True`` if the handler completed without raising.
        value: The handler's return value (``None`` on failure).
        error: The exception raised by the handler, if any.
    """

    hook: str
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, hook: str, value: Any) -> "DispatchOutcome":
        return cls(hook=hook, ok=True, value=value)

    @classmethod
    def failure(cls, hook: str, error: BaseException) -> "DispatchOutcome":
        return cls(hook=hook, ok=False, error=error)

    @property
    def answered(self) -> bool:
        """True when the handler succeeded and produced a value."""
        return self.ok and self.value is not None
