"""Logging configuration setup.

Two entry points:

* :func:`setup_logging` runs at process start from the CLI log level and
  writes to a timestamped file under ``logs/``.
* :func:`configure_from_config` re-applies logging once the bridge config
  is loaded (console level and extra files from the ``logging`` section).
"""

import copy
import logging
import logging.config
import os
import re
import sys
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple  # noqa: UP035

from discord_bridge.config.schema import LoggingSettings
from discord_bridge.constants import LOG_DIR

# ── Custom level ─────────────────────────────────────────────────────────

VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

# Config level names → stdlib levels.
_LEVEL_MAP: Dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "verbose": VERBOSE,
    "debug": logging.DEBUG,
    "silly": 5,
}


def level_from_name(name: str) -> int:
    """Map a config level name to a numeric level (unknown → INFO)."""
    return _LEVEL_MAP.get(name.strip().lower(), logging.INFO)


# ── Secret redaction filter ──────────────────────────────────────────────

_REDACTED = "***REDACTED***"


class SecretRedactionFilter(logging.Filter):
    """Logging filter that replaces registered secret values with a placeholder.

    The registration tokens and the Discord bot token are registered once
    they are loaded.
    """

    def __init__(self) -> None:
        super().__init__()
        self._secrets: Set[str] = set()
        self._pattern: re.Pattern[str] | None = None

    def register(self, value: str) -> None:
        """Register a secret value for redaction."""
        if value and len(value) >= 4:  # skip trivially short values
            self._secrets.add(value)
            escaped = sorted((re.escape(s) for s in self._secrets), key=len, reverse=True)
            self._pattern = re.compile("|".join(escaped))

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is not None:
            if isinstance(record.msg, str):
                record.msg = self._pattern.sub(_REDACTED, record.msg)
            if isinstance(record.args, tuple):
                record.args = tuple(
                    self._pattern.sub(_REDACTED, a) if isinstance(a, str) else a
                    for a in record.args
                )
        return True


# Module-level singleton so the sequencer can register values at load time.
secret_redaction_filter = SecretRedactionFilter()


class LoggerPrefixFilter(logging.Filter):
    """Pass records whose logger name starts with one of *prefixes*."""

    def __init__(self, prefixes: Iterable[str] = ()) -> None:
        super().__init__()
        self._prefixes = tuple(prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._prefixes:
            return True
        return record.name.startswith(self._prefixes)


# ── Bootstrap configuration ──────────────────────────────────────────────

_FILE_FORMAT = "%(asctime)s - %(name)25s:%(lineno)-4d - %(levelname)-7s - %(message)s"

BASE_LOG_CFG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple_file": {
            "format": _FILE_FORMAT,
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "file_handler": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": "temp_log_name.log",
            "encoding": "utf-8",
        },
    },
    "loggers": {
        "uvicorn": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "uvicorn.error": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "uvicorn.access": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "starlette": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
        "httpx": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "discord_bridge": {
            "handlers": ["file_handler"],
            "propagate": False,
            "level": "INFO",
        },
    },
    "root": {
        "handlers": ["file_handler"],
        "level": "WARNING",
    },
}

_APP_LOGGERS = ["discord_bridge", "uvicorn", "uvicorn.error", "starlette"]


def _attach_redaction() -> None:
    for handler in logging.getLogger().handlers + logging.getLogger("discord_bridge").handlers:
        if secret_redaction_filter not in handler.filters:
            handler.addFilter(secret_redaction_filter)


def setup_logging(log_lvl_str: str, *, quiet: bool = False) -> Tuple[str, str]:
    """
    Set up the logging system.

    Uses a timestamped dynamic filename and adjusts module log levels
    based on command-line arguments.

    Args:
        log_lvl_str: The desired log level string (e.g., 'debug', 'info').
        quiet: If *True*, suppress all ``print()`` output.

    Returns:
        A tuple of (log_file_path, validated_log_level).
    """
    log_lvl_valid = log_lvl_str.upper()
    valid_levels = ["DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if log_lvl_valid not in valid_levels:
        if not quiet:
            print(f"Warning: invalid log level '{log_lvl_str}'. Using 'INFO'.")
        log_lvl_valid = "INFO"

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(LOG_DIR, exist_ok=True)
    log_fpath = os.path.join(LOG_DIR, f"discord_bridge_{ts}_{log_lvl_valid}.log")

    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    log_cfg["handlers"]["file_handler"]["filename"] = log_fpath

    for name in _APP_LOGGERS:
        log_cfg["loggers"][name]["level"] = log_lvl_valid

    log_cfg["loggers"]["uvicorn.access"]["level"] = (
        "INFO" if log_lvl_valid == "DEBUG" else "WARNING"
    )
    log_cfg["root"]["level"] = (
        log_lvl_valid if log_lvl_valid == "DEBUG" else "WARNING"
    )

    try:
        logging.config.dictConfig(log_cfg)
        _attach_redaction()
        if not quiet:
            print(
                f"Logging initialized. File log level: {log_lvl_valid}, "
                f"log file: {log_fpath}"
            )
    except Exception as e_log_cfg:
        if not quiet:
            print(
                f"Error applying logging configuration: {e_log_cfg}",
                file=sys.stderr,
            )

    return log_fpath, log_lvl_valid


# ── Reconfiguration from the bridge config ───────────────────────────────


def build_log_config(
    settings: LoggingSettings,
    bootstrap_log_fpath: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a ``dictConfig`` mapping from the ``logging`` config section."""
    console_lvl = level_from_name(settings.console)
    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": console_lvl,
            "formatter": "line",
            "stream": "ext://sys.stderr",
        },
    }
    handler_names: List[str] = ["console"]
    filters: Dict[str, Any] = {}

    if bootstrap_log_fpath:
        handlers["file_handler"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": bootstrap_log_fpath,
            "encoding": "utf-8",
        }
        handler_names.append("file_handler")

    for i, file_cfg in enumerate(settings.files):
        directory = os.path.dirname(file_cfg.file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        name = f"file_{i}"
        handlers[name] = {
            "class": "logging.FileHandler",
            "level": level_from_name(file_cfg.level),
            "formatter": "simple_file",
            "filename": file_cfg.file,
            "encoding": "utf-8",
        }
        if file_cfg.enabled:
            filters[f"{name}_prefix"] = {
                "()": LoggerPrefixFilter,
                "prefixes": list(file_cfg.enabled),
            }
            handlers[name]["filters"] = [f"{name}_prefix"]
        handler_names.append(name)

    lowest = min(
        [console_lvl] + [level_from_name(f.level) for f in settings.files]
    )
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "line": {
                "format": "%(asctime)s %(levelname)s:%(name)s %(message)s",
                "datefmt": settings.line_date_format,
            },
            "simple_file": {
                "format": _FILE_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "discord_bridge": {
                "handlers": handler_names,
                "propagate": False,
                "level": lowest,
            },
            "uvicorn.error": {
                "handlers": handler_names,
                "propagate": False,
                "level": "INFO",
            },
            "uvicorn.access": {
                "handlers": handler_names,
                "propagate": False,
                "level": "WARNING",
            },
        },
        "root": {
            "handlers": handler_names,
            "level": "WARNING",
        },
    }


def configure_from_config(
    settings: LoggingSettings,
    bootstrap_log_fpath: Optional[str] = None,
) -> None:
    """Reconfigure logging from the bridge config's ``logging`` section."""
    logging.config.dictConfig(build_log_config(settings, bootstrap_log_fpath))
    _attach_redaction()
    logging.getLogger(__name__).debug(
        "Logging reconfigured (console=%s, files=%d).",
        settings.console,
        len(settings.files),
    )
