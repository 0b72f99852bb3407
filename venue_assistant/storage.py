"""
Storage Module
Key-value persistence used as the durable cache by the calendar and
specification components.
"""

import json
import os
from typing import Dict, Optional, Protocol

from loguru import logger


class KeyValueStore(Protocol):
    """Minimal get/set/remove interface for durable string storage."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store, used for tests and for running without a cache file."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore:
    """Store backed by a single JSON object on disk."""

    def __init__(self, path: str = "data/cache.json"):
        """
        Initialize file store.

        Args:
            path: Location of the JSON cache file (created on first write)
        """
        self.path = path

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def _load(self) -> Dict[str, str]:
        """Read the whole store; a missing or unreadable file is an empty store."""
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Cache file {self.path} unreadable, starting empty: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Cache file {self.path} is not a JSON object, starting empty")
            return {}
        return data

    def _save(self, data: Dict[str, str]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
