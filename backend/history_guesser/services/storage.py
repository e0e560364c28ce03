"""
Local snapshot persistence.

A single slot in a string key-value store holds the JSON snapshot of the
game in progress. Anything that cannot be trusted on the way back in
(unparsable, failing the schema, or older than the staleness window) is
deleted and reported as "no saved game".
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Union

import pydantic

from ..constants import SNAPSHOT_MAX_AGE_MS, SNAPSHOT_STORAGE_KEY
from ..errors import PersistenceError
from ..models.game import GameSnapshot

logger = logging.getLogger(__name__)


def epoch_ms(clock: Callable[[], float] = time.time) -> int:
    return int(clock() * 1000)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """One UTF-8 file per key inside a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class SnapshotStore:
    """Save, load and clear the resumable game snapshot."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        key: str = SNAPSHOT_STORAGE_KEY,
        max_age_ms: int = SNAPSHOT_MAX_AGE_MS,
    ):
        self.store = store
        self.clock = clock
        self.key = key
        self.max_age_ms = max_age_ms

    def save(self, snapshot: GameSnapshot) -> None:
        """
        Overwrite the saved snapshot.

        Raises:
            PersistenceError: If the underlying store fails
        """
        try:
            self.store.set(self.key, snapshot.model_dump_json())
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist game snapshot: %s", e)
            raise PersistenceError("Failed to save game state to local storage") from e

    def load(self) -> Optional[GameSnapshot]:
        """Return the saved snapshot, or None if absent, invalid or stale."""
        try:
            raw = self.store.get(self.key)
        except (OSError, ValueError) as e:
            logger.warning("Discarding unreadable game snapshot: %s", e)
            self.clear()
            return None
        if not raw:
            return None

        try:
            snapshot = GameSnapshot.model_validate_json(raw)
        except pydantic.ValidationError as e:
            logger.warning("Discarding invalid game snapshot: %s", e.errors()[0]["msg"])
            self.clear()
            return None

        age_ms = epoch_ms(self.clock) - snapshot.saved_at_epoch_ms
        if age_ms >= self.max_age_ms:
            logger.info("Discarding stale game snapshot %s (%d ms old)", snapshot.session_id, age_ms)
            self.clear()
            return None

        return snapshot

    def clear(self) -> None:
        try:
            self.store.remove(self.key)
        except OSError as e:
            logger.error("Failed to clear game snapshot: %s", e)
