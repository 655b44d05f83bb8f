"""Shared fixtures for the bridge test suite."""

from __future__ import annotations

import logging
import socket
from typing import Any, Dict

import pytest

from discord_bridge.registration.generator import generate_registration

_CONFIGURED_LOGGERS = (
    "discord_bridge",
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "starlette",
    "httpx",
)


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo any dictConfig applied by the code under test."""
    root = logging.getLogger()
    saved_root = (list(root.handlers), root.level)
    yield
    for name in _CONFIGURED_LOGGERS:
        lg = logging.getLogger(name)
        for handler in list(lg.handlers):
            lg.removeHandler(handler)
            handler.close()
        lg.propagate = True
        lg.setLevel(logging.NOTSET)
    for handler in list(root.handlers):
        if handler not in saved_root[0]:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_root[0]:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_root[1])


@pytest.fixture()
def file_config() -> Dict[str, Any]:
    return {
        "bridge": {
            "domain": "example.org",
            "homeserverUrl": "http://localhost:8008",
        },
        "auth": {"clientID": "12345", "botToken": "discord-bot-token"},
    }


@pytest.fixture()
def registration():
    return generate_registration(url="http://localhost:9005")


@pytest.fixture()
def registration_file(tmp_path, registration):
    path = tmp_path / "discord-registration.yaml"
    registration.save(str(path))
    return path


@pytest.fixture()
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
