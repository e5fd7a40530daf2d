"""
Persisted key-value stores backing sync state.

The ETag cache and the offline queue keep their state in a ``KeyValueStore``
with explicit load/save, so the sync core does not care whether the state
lives in a JSON file or in memory (tests).
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract mapping of string keys to JSON-compatible values."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """
        Load the full mapping.

        Returns:
            The stored mapping, or an empty dict if nothing was stored or the
            stored data is unreadable.
        """

    @abstractmethod
    def save(self, data: dict[str, Any]) -> None:
        """
        Replace the stored mapping.

        Args:
            data: JSON-compatible mapping
        """


class InMemoryStore(KeyValueStore):
    """Store kept in process memory; used by tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data = copy.deepcopy(initial) if initial else {}

    def load(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self, data: dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)


class JsonFileStore(KeyValueStore):
    """Store persisted as a single JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place, so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to load {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Ignoring {self.path}: root is not an object")
            return {}
        return data

    def save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
