"""Pydantic models for the bridge's startup state.

These models serve two purposes:
1. Internal state representation for :class:`StartupSequencer`
2. A JSON-friendly status snapshot for logging and diagnostics
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class StartupState(str, Enum):
    """Lifecycle states of the bridge process.

    Startup is strictly linear::

        PENDING → CONFIG_LOADED → REGISTRATION_LOADED → CLIENT_FACTORY_BUILT
          → CONTROLLER_WIRED → STORE_INITIALIZED → LISTENER_STARTED
          → REMOTE_CLIENT_STARTED → RUNNING

    Any startup state may move to FAILED.  RUNNING and FAILED move to
    STOPPING, and STOPPING to STOPPED.
    """

    PENDING = "pending"
    CONFIG_LOADED = "config_loaded"
    REGISTRATION_LOADED = "registration_loaded"
    CLIENT_FACTORY_BUILT = "client_factory_built"
    CONTROLLER_WIRED = "controller_wired"
    STORE_INITIALIZED = "store_initialized"
    LISTENER_STARTED = "listener_started"
    REMOTE_CLIENT_STARTED = "remote_client_started"
    RUNNING = "running"
    FAILED = "failed"
    STOPPING = "stopping"
    STOPPED = "stopped"


# The eight states entered by a successful start, in order.
STARTUP_ORDER: List[StartupState] = [
    StartupState.CONFIG_LOADED,
    StartupState.REGISTRATION_LOADED,
    StartupState.CLIENT_FACTORY_BUILT,
    StartupState.CONTROLLER_WIRED,
    StartupState.STORE_INITIALIZED,
    StartupState.LISTENER_STARTED,
    StartupState.REMOTE_CLIENT_STARTED,
    StartupState.RUNNING,
]


def _build_transitions() -> Dict[StartupState, frozenset[StartupState]]:
    table: Dict[StartupState, frozenset[StartupState]] = {}
    previous = StartupState.PENDING
    for state in STARTUP_ORDER:
        table[previous] = frozenset({state, StartupState.FAILED})
        previous = state
    table[StartupState.RUNNING] = frozenset({StartupState.STOPPING})
    table[StartupState.FAILED] = frozenset({StartupState.STOPPING})
    table[StartupState.STOPPING] = frozenset({StartupState.STOPPED})
    table[StartupState.STOPPED] = frozenset()
    return table


# Valid state transitions: current_state → set of allowed next states
_VALID_TRANSITIONS = _build_transitions()


def is_valid_transition(current: StartupState, target: StartupState) -> bool:
    """Check whether a state transition is allowed."""
    return target in _VALID_TRANSITIONS.get(current, frozenset())


class StartupRecord(BaseModel):
    """A timestamped entry in the startup history."""

    state: StartupState
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StartupStatus(BaseModel):
    """Overall bridge status snapshot."""

    state: StartupState = StartupState.PENDING
    failed_state: Optional[StartupState] = None
    error_message: Optional[str] = None
    bot_user_id: Optional[str] = None
    port: Optional[int] = None
    started_at: Optional[datetime] = None
    uptime_seconds: Optional[float] = None
    history: List[StartupRecord] = Field(default_factory=list)

    def compute_uptime(self) -> None:
        """Update uptime_seconds based on started_at."""
        if self.started_at is not None:
            delta = datetime.now(timezone.utc) - self.started_at
            self.uptime_seconds = delta.total_seconds()
