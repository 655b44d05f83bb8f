"""Pydantic configuration models for the Matrix Discord bridge.

Keys in the YAML file use camelCase (``homeserverUrl``, ``roomStorePath``);
the models expose snake_case attributes and accept either spelling.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

LogLevel = Literal["error", "warn", "warning", "info", "verbose", "debug", "silly"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Sections ─────────────────────────────────────────────────────────────


class BridgeSettings(_CamelModel):
    """Homeserver connection and bridge behaviour toggles."""

    domain: str = ""
    homeserver_url: str = Field(default="", alias="homeserverUrl")
    disable_presence: bool = Field(default=False, alias="disablePresence")
    disable_typing_notifications: bool = Field(
        default=False, alias="disableTypingNotifications"
    )
    enable_self_service_bridging: bool = Field(
        default=False, alias="enableSelfServiceBridging"
    )

    @field_validator("domain")
    @classmethod
    def _strip_domain(cls, v: str) -> str:
        return v.strip()

    @field_validator("homeserver_url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"'{v}' does not look like a valid HTTP/HTTPS URL")
        return v


class AuthSettings(_CamelModel):
    """Discord application credentials."""

    client_id: str = Field(default="", alias="clientID")
    bot_token: str = Field(default="", alias="botToken")


class DatabaseSettings(_CamelModel):
    """Locations of the persistent room and user stores."""

    room_store_path: str = Field(default="room-store.db", alias="roomStorePath")
    user_store_path: str = Field(default="user-store.db", alias="userStorePath")


class LogFileSettings(_CamelModel):
    """One extra log file destination."""

    file: str = Field(..., min_length=1)
    level: LogLevel = "info"
    enabled: List[str] = Field(
        default_factory=list,
        description="Logger name prefixes written to this file (empty = all).",
    )


class LoggingSettings(_CamelModel):
    """Runtime logging configuration applied once the config is loaded."""

    console: LogLevel = "info"
    line_date_format: str = Field(default="%b-%d %H:%M:%S", alias="lineDateFormat")
    files: List[LogFileSettings] = Field(default_factory=list)


class ChannelSettings(_CamelModel):
    """Naming of bridged Matrix rooms."""

    name_pattern: str = Field(default="[Discord] :guild :name", alias="namePattern")


# ── Top-level config ─────────────────────────────────────────────────────


class BridgeConfig(_CamelModel):
    """Root configuration model."""

    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    channel: ChannelSettings = Field(default_factory=ChannelSettings)

    def apply_config(self, file_config: Dict[str, Any]) -> "BridgeConfig":
        """Return a new config with *file_config* deep-merged over this one.

        Values present in *file_config* win; sections and keys it omits keep
        their current value.  The merged result is validated again.
        """
        override = _to_aliases(BridgeConfig, file_config)
        merged = _deep_merge(self.model_dump(by_alias=True), override)
        return BridgeConfig.model_validate(merged)

    def missing_required(self) -> List[str]:
        """Return the dotted names of required settings that are still empty."""
        missing: List[str] = []
        if not self.bridge.domain:
            missing.append("bridge.domain")
        if not self.bridge.homeserver_url:
            missing.append("bridge.homeserverUrl")
        return missing


def _to_aliases(model_cls: type[BaseModel], data: Dict[str, Any]) -> Dict[str, Any]:
    """Rename snake_case keys of *data* to the field aliases of *model_cls*.

    Both spellings must collapse to one key before merging, otherwise the
    default stored under the alias would shadow the file value.
    """
    result: Dict[str, Any] = {}
    for key, value in data.items():
        field = model_cls.model_fields.get(key)
        out_key = field.alias if field is not None and field.alias else key
        if field is None:
            field = next(
                (f for f in model_cls.model_fields.values() if f.alias == key), None
            )
        sub_cls = field.annotation if field is not None else None
        if (
            isinstance(value, dict)
            and isinstance(sub_cls, type)
            and issubclass(sub_cls, BaseModel)
        ):
            value = _to_aliases(sub_cls, value)
        result[out_key] = value
    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
