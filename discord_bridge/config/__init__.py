"""Configuration loading and validation for the Matrix Discord bridge."""

from discord_bridge.config.loader import (
    apply_file_config,
    expand_env_vars,
    load_bridge_config,
    read_config_file,
)
from discord_bridge.config.schema import (
    AuthSettings,
    BridgeConfig,
    BridgeSettings,
    ChannelSettings,
    DatabaseSettings,
    LogFileSettings,
    LoggingSettings,
)

__all__ = [
    "AuthSettings",
    "BridgeConfig",
    "BridgeSettings",
    "ChannelSettings",
    "DatabaseSettings",
    "LogFileSettings",
    "LoggingSettings",
    "apply_file_config",
    "expand_env_vars",
    "load_bridge_config",
    "read_config_file",
]
