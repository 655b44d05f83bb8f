"""Pydantic model of an application-service registration file."""

from __future__ import annotations

import logging
import re
import secrets
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from discord_bridge.errors import RegistrationError

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """Return a fresh 64 hex character token from the OS CSPRNG."""
    return secrets.token_hex(32)


class RegexPattern(BaseModel):
    """One namespace ownership pattern."""

    model_config = ConfigDict(frozen=True)

    regex: str = Field(..., min_length=1)
    exclusive: bool = False

    @field_validator("regex")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"invalid regex '{v}': {exc}") from exc
        return v

    def matches(self, value: str) -> bool:
        return re.fullmatch(self.regex, value) is not None


class Namespaces(BaseModel):
    """Ownership patterns grouped by entity kind."""

    model_config = ConfigDict(frozen=True)

    users: List[RegexPattern] = Field(default_factory=list)
    aliases: List[RegexPattern] = Field(default_factory=list)
    rooms: List[RegexPattern] = Field(default_factory=list)


class AppServiceRegistration(BaseModel):
    """Credentials and namespace claims presented to the homeserver.

    Instances are immutable: a registration is generated once and then only
    loaded on every start.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    url: Optional[str] = None
    hs_token: str = Field(..., min_length=1)
    as_token: str = Field(..., min_length=1)
    sender_localpart: str = Field(..., min_length=1)
    namespaces: Namespaces = Field(default_factory=Namespaces)
    rate_limited: bool = True
    protocols: List[str] = Field(default_factory=list)

    # ── Namespace checks ────────────────────────────────────────────────

    def is_user_in_namespace(self, user_id: str) -> bool:
        return any(p.matches(user_id) for p in self.namespaces.users)

    def is_alias_in_namespace(self, alias: str) -> bool:
        return any(p.matches(alias) for p in self.namespaces.aliases)

    # ── (De)serialisation ───────────────────────────────────────────────

    @classmethod
    def from_object(cls, data: Any) -> Optional["AppServiceRegistration"]:
        """Build a registration from parsed YAML, or ``None`` if it is invalid."""
        if not isinstance(data, dict):
            return None
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            logger.error("Registration is invalid: %s", exc)
            return None

    def to_object(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_object(), sort_keys=False)

    def save(self, path: str) -> None:
        """Write the registration to *path* as YAML."""
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.to_yaml())
        logger.info("Registration written to %s", path)


def load_registration(path: str) -> AppServiceRegistration:
    """Read and validate the registration file at *path*.

    Raises:
        RegistrationError: If the file is missing, is not valid YAML, or
            does not describe a valid registration.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise RegistrationError(f"Registration file does not exist: {path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise RegistrationError(f"Unable to read registration file: {path}\n  {exc}") from exc

    registration = AppServiceRegistration.from_object(raw)
    if registration is None:
        raise RegistrationError("Failed to parse registration file")
    return registration
