"""Runtime layer of the bridge.

Re-exports the key symbols so callers can write::

    from discord_bridge.runtime import StartupSequencer, StartupState
"""

from discord_bridge.runtime.models import (
    STARTUP_ORDER,
    StartupRecord,
    StartupState,
    StartupStatus,
    is_valid_transition,
)
from discord_bridge.runtime.sequencer import StartupSequencer

__all__ = [
    "STARTUP_ORDER",
    "StartupRecord",
    "StartupSequencer",
    "StartupState",
    "StartupStatus",
    "is_valid_transition",
]
