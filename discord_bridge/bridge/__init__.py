"""Callback table and dispatch controller."""

from discord_bridge.bridge.callbacks import (
    HOOK_NAMES,
    BridgeCallbacks,
    DispatchOutcome,
    OutcomeReporter,
)
from discord_bridge.bridge.controller import DispatchController

__all__ = [
    "HOOK_NAMES",
    "BridgeCallbacks",
    "DispatchController",
    "DispatchOutcome",
    "OutcomeReporter",
]
