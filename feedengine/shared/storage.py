"""
Durable local key/value storage (string -> string).

Used for the interaction log and for mirrored cache entries. Reads of an
absent or unreadable key return None; callers treat that as "no data".
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from feedengine.shared.exceptions import StorageError
from feedengine.shared.utils import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """
    Abstract Base Class for durable local storage backends.
    Writes are synchronous so callers can persist without suspending.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None when absent or unreadable."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a string value. Raises StorageError on failure."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List stored keys."""
        pass


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in tests and when no path is configured"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value for {key} must be a string")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class FileKeyValueStore(KeyValueStore):
    """
    Single JSON file holding every key.

    The file is read once on first access; every write replaces it
    atomically so a crash never leaves a half-written file behind.
    """

    def __init__(self, path: str):
        self.path = path
        self._data: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._data is not None:
            return self._data

        self._data = {}
        if not os.path.exists(self.path):
            return self._data

        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
            if isinstance(raw, dict):
                self._data = {
                    str(k): v for k, v in raw.items() if isinstance(v, str)
                }
            else:
                logger.error(f"Ignoring local storage file with unexpected layout: {self.path}")
        except (OSError, ValueError) as e:
            logger.error(f"Could not read local storage file {self.path}: {e}")

        return self._data

    def _flush(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Could not write local storage file {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Value for {key} must be a string")
        self._load()[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._flush()

    def keys(self) -> List[str]:
        return list(self._load().keys())
