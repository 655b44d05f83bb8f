"""File-backed JSON store with schema versioning.

A store keeps its whole document in memory while open and writes it back
atomically on every change.  Opening a store creates the file if it does
not exist and upgrades older documents to :data:`SCHEMA_VERSION`.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from discord_bridge.errors import StoreError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

Migration = Callable[[Dict[str, Any]], Dict[str, Any]]


class JsonStore:
    """Base class for the bridge's persistent stores.

    Parameters
    ----------
    path:
        Location of the JSON document.  Parent directories are created
        on first write.
    """

    #: Name used in log messages and errors.
    kind = "store"

    #: ``{from_version: migration}``; each migration returns the document
    #: at ``from_version + 1``.
    migrations: Dict[int, Migration] = {}

    def __init__(self, path: str) -> None:
        self.path = path
        self._doc: Optional[Dict[str, Any]] = None

    @property
    def is_open(self) -> bool:
        return self._doc is not None

    def empty_document(self) -> Dict[str, Any]:
        return {}

    # ── lifecycle ───────────────────────────────────────────────────

    def open(self) -> None:
        """Load (or create) the document and upgrade it to the current schema.

        Raises:
            StoreError: If the file cannot be read, parsed, migrated or
                written back.
        """
        if self.is_open:
            return
        doc = self._read()
        if doc is None:
            doc = {"schema": SCHEMA_VERSION, "data": self.empty_document()}
            logger.info("Creating new %s at %s", self.kind, self.path)
        else:
            doc = self._migrate(doc)
        self._doc = doc
        self.save()
        logger.debug("%s opened: %s (schema %d)", self.kind, self.path, doc["schema"])

    def close(self) -> None:
        if not self.is_open:
            return
        self.save()
        self._doc = None
        logger.debug("%s closed: %s", self.kind, self.path)

    def save(self) -> None:
        """Write the document atomically (temp file then rename)."""
        if self._doc is None:
            raise StoreError(f"{self.kind} at {self.path} is not open.")
        target = Path(self.path)
        tmp = target.with_name(target.name + ".tmp")
        try:
            if target.parent and not target.parent.exists():
                target.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(self._doc, fh, indent=2, sort_keys=True)
            os.replace(tmp, target)
        except OSError as exc:
            raise StoreError(f"Failed to write {self.kind} at {self.path}: {exc}") from exc

    # ── internals ───────────────────────────────────────────────────

    @property
    def data(self) -> Dict[str, Any]:
        if self._doc is None:
            raise StoreError(f"{self.kind} at {self.path} is not open.")
        return self._doc["data"]

    def _read(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                doc = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            raise StoreError(f"Corrupt {self.kind} file {self.path}: {exc}") from exc
        if not isinstance(doc, dict):
            raise StoreError(f"Corrupt {self.kind} file {self.path}: expected an object")
        return doc

    def _migrate(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        version = doc.get("schema", 0)
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise StoreError(
                f"{self.kind} at {self.path} has unsupported schema version {version!r}"
            )
        while version < SCHEMA_VERSION:
            step = self.migrations.get(version)
            if step is None:
                raise StoreError(
                    f"No migration for {self.kind} from schema {version} to {version + 1}"
                )
            logger.info("Migrating %s %s: schema %d -> %d", self.kind, self.path, version, version + 1)
            doc = step(doc)
            version += 1
            doc["schema"] = version
        doc.setdefault("data", self.empty_document())
        return doc
