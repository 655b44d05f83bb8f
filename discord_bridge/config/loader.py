"""Configuration file loading and validation.

Loads a YAML configuration file, expands ``${ENV_VAR}`` placeholders,
merges it over the defaults and validates against the Pydantic models in
:mod:`schema`.
"""

import logging
import os
import re
from typing import Any, Dict, List

import yaml
from pydantic import ValidationError

from discord_bridge.config.schema import BridgeConfig
from discord_bridge.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Recognised config file extensions.
_YAML_EXTS = frozenset({".yaml", ".yml"})

# Regex for ${VAR_NAME}
_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ``${VAR}`` references in string values.

    Unset variables are left as the literal placeholder.
    """
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a YAML config file from *cfg_fpath*.

    An empty file yields an empty mapping.  Raises
    :class:`ConfigurationError` on I/O or parse errors.
    """
    if not os.path.exists(cfg_fpath):
        raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")

    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _YAML_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML files (.yaml, .yml) are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except Exception as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            "Top-level configuration content must be a YAML mapping (dictionary)."
        )
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


# ── Public API ───────────────────────────────────────────────────────────


def apply_file_config(file_config: Dict[str, Any], base: BridgeConfig | None = None) -> BridgeConfig:
    """Merge an already parsed *file_config* over *base* (or the defaults).

    Raises:
        ConfigurationError: On validation failures or when required
            settings (``bridge.domain``, ``bridge.homeserverUrl``) are empty.
    """
    base = base if base is not None else BridgeConfig()
    try:
        config = base.apply_config(expand_env_vars(file_config))
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc

    missing = config.missing_required()
    if missing:
        raise ConfigurationError(
            f"Missing required configuration value(s): {', '.join(missing)}"
        )
    return config


def load_bridge_config(cfg_fpath: str) -> BridgeConfig:
    """Load, expand, merge and validate the bridge configuration.

    Steps:
        1. Read YAML file
        2. Expand ``${VAR}`` environment variable references
        3. Merge over the defaults and validate (all errors reported at once)

    Raises:
        ConfigurationError: On file I/O errors, parse errors, or
            validation failures.
    """
    logger.debug("Loading configuration file: %s", cfg_fpath)
    raw_data = read_config_file(cfg_fpath)
    config = apply_file_config(raw_data)
    logger.info(
        "Configuration '%s' loaded (domain=%s, homeserver=%s).",
        cfg_fpath,
        config.bridge.domain,
        config.bridge.homeserver_url,
    )
    return config
