"""Storage module for the sampler's durable "last observed value".

A Persister is a plain key/value backend (``get``/``set`` on bytes). The
CounterStorage on top of it owns the single counter the delta sampler needs
and its encoding: a base-10 ASCII unsigned 64-bit integer, by default under
the key ``last_count`` (see counter_key for named samplers).

Single-writer note:
    Nothing here is locked. Each poller must own its own CounterStorage;
    sharing one between concurrently running pollers can interleave a
    load/save pair and produce duplicate or lost deltas.
"""

import logging
import sqlite3
from typing import Dict, Optional, Protocol

import database


logger = logging.getLogger(__name__)

LAST_COUNT_KEY = "last_count"

MAX_UINT64 = 2**64 - 1


def counter_key(sampler_name: str = "") -> str:
    """Return the storage key for a sampler's last value.

    An unnamed sampler uses ``last_count``; named samplers get
    ``last_count.<name>`` so several samplers can share one database.
    """
    if not sampler_name:
        return LAST_COUNT_KEY
    return f"{LAST_COUNT_KEY}.{sampler_name}"


class StorageError(Exception):
    """Raised when the persistence backend fails to load or save state."""
    pass


class Persister(Protocol):
    """Key/value backend used by CounterStorage."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...


class MemoryPersister:
    """Process-local persister. State is lost when the process exits."""

    def __init__(self) -> None:
        self._values: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._values.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._values[key] = bytes(value)


class SQLitePersister:
    """Durable persister backed by the sampler_state table.

    Every set() is committed immediately so a crash never leaves a sample
    half-recorded.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the persister with its own connection.

        Args:
            db_path: Path to the SQLite database file (schema must exist)

        Raises:
            StorageError: If the database cannot be opened
        """
        self._db_path = db_path
        try:
            self._db_conn = database.get_connection(db_path)
        except sqlite3.Error as e:
            raise StorageError(f"failed to open {db_path}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        try:
            return database.get_value(self._db_conn, key)
        except sqlite3.Error as e:
            raise StorageError(f"failed to read '{key}' from {self._db_path}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        try:
            database.set_value(self._db_conn, key, value)
            database.commit_batch(self._db_conn)
        except sqlite3.Error as e:
            raise StorageError(f"failed to write '{key}' to {self._db_path}: {e}") from e

    def close(self) -> None:
        self._db_conn.close()


class CounterStorage:
    """Load/save the last observed sample value through a Persister."""

    def __init__(self, persister: Persister, key: str = LAST_COUNT_KEY) -> None:
        """Initialize the storage.

        Args:
            persister: Key/value backend
            key: Key the counter is stored under
        """
        self._persister = persister
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def _read(self) -> Optional[int]:
        raw = self._persister.get(self._key)
        if raw is None:
            return None

        text = raw.decode("ascii", errors="replace").strip()
        if not text.isascii() or not text.isdigit() or int(text) > MAX_UINT64:
            raise StorageError(f"stored value for '{self._key}' is not a uint64: {raw!r}")
        return int(text)

    def load(self) -> int:
        """Load the last stored value.

        Returns:
            The stored value, or 0 if nothing has been stored yet

        Raises:
            StorageError: If the backend fails or the stored bytes are corrupt
        """
        value = self._read()
        if value is None:
            logger.debug(f"No stored value for '{self._key}', using baseline 0")
            return 0
        return value

    def is_empty(self) -> bool:
        """Check whether a value has ever been stored.

        Raises:
            StorageError: If the backend fails
        """
        return self._persister.get(self._key) is None

    def save(self, value: int) -> None:
        """Store a new last value.

        Args:
            value: Unsigned 64-bit sample value

        Raises:
            StorageError: If the value is out of range or the backend fails
        """
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= MAX_UINT64:
            raise StorageError(f"refusing to store non-uint64 value for '{self._key}': {value!r}")
        self._persister.set(self._key, str(value).encode("ascii"))
