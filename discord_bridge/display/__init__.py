"""Logging setup for the Matrix Discord bridge."""

from discord_bridge.display.logging_config import (
    VERBOSE,
    configure_from_config,
    secret_redaction_filter,
    setup_logging,
)

__all__ = [
    "VERBOSE",
    "configure_from_config",
    "secret_redaction_filter",
    "setup_logging",
]
