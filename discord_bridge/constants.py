"""Shared constants for the Matrix Discord bridge."""

SERVER_NAME = "Matrix Discord Bridge"
SERVER_VERSION = "0.1.0"

# Network defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9005

# Application service naming
SENDER_LOCALPART = "_discord_bot"
NAMESPACE_PREFIX = "_discord_"
USER_NAMESPACE_REGEX = "@_discord_.*"
ALIAS_NAMESPACE_REGEX = "#_discord_.*"
PROTOCOL_NAME = "discord"

# Files
DEFAULT_REGISTRATION_PATH = "discord-registration.yaml"
DEFAULT_CONFIG_PATH = "config.yaml"

# Logging defaults
LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "INFO"
SDK_LOGGER_NAME = "discord_bridge.appservice.sdk"

# Discord REST API
DISCORD_API_URL = "https://discord.com/api/v10"
DISCORD_REQUEST_TIMEOUT = 15.0  # seconds

# Transaction ids remembered for de-duplication
TXN_MEMORY_SIZE = 512
