"""Durable fingerprint -> canonical path index."""

import logging
import os
import sqlite3
import stat
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from .errors import StoreError

logger = logging.getLogger(__name__)

SYNCHRONOUS_MODES = ("OFF", "NORMAL", "FULL", "EXTRA")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS file_hashes (
    hash TEXT PRIMARY KEY,
    file_path TEXT NOT NULL
)
"""


def is_regular_file(path: str) -> bool:
    """True if ``path`` exists and is a regular file, not following symlinks."""
    try:
        return stat.S_ISREG(os.lstat(path).st_mode)
    except OSError:
        return False


def same_file(first: str, second: str) -> bool:
    """True if both paths name the same inode, whatever their spelling."""
    try:
        return os.path.samefile(first, second)
    except OSError:
        return False


class FingerprintIndex(Protocol):
    """What the resolver needs from an index."""

    def lookup_or_insert(self, fingerprint: bytes, path: str) -> tuple[str, bool]:
        """Atomically register ``path`` for ``fingerprint`` if it has no entry.

        Returns ``(path, True)`` when inserted, else ``(existing_path, False)``.
        """
        ...

    def get(self, fingerprint: bytes) -> str | None: ...

    def replace(self, fingerprint: bytes, path: str) -> None: ...

    def entries(self) -> Iterator[tuple[bytes, str]]: ...

    def prune_missing(self) -> int: ...

    def __len__(self) -> int: ...

    def close(self) -> None: ...


class KeyedLocks:
    """A fixed table of locks sharded by key.

    Records with the same fingerprint always map to the same lock; records with
    different fingerprints usually map to different ones.
    """

    def __init__(self, shards: int = 64):
        if shards < 1:
            raise ValueError(f"shards must be at least 1, got {shards}")
        self._locks = [threading.Lock() for _ in range(shards)]

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: bytes) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]


class SqliteFingerprintIndex:
    """Fingerprint index stored in a SQLite database file.

    Every insert is its own committed transaction, so an acknowledged entry
    survives a crash to the extent ``PRAGMA synchronous`` guarantees. One
    connection is shared by all workers; ``_statement_lock`` only spans a
    single SQL round trip.
    """

    def __init__(self, conn: sqlite3.Connection, path: str):
        self._conn: sqlite3.Connection | None = conn
        self.path = path
        self._statement_lock = threading.Lock()

    @classmethod
    def open(
        cls, path: str | Path, synchronous: str = "FULL", timeout: float = 30.0
    ) -> "SqliteFingerprintIndex":
        """
        Open the index, creating the database file and schema if absent.

        Args:
            path: Database file, or ``":memory:"``
            synchronous: SQLite ``PRAGMA synchronous`` level
            timeout: Seconds to wait on a locked database

        Raises:
            StoreError: The database cannot be created, opened or initialized
        """
        synchronous = synchronous.upper()
        if synchronous not in SYNCHRONOUS_MODES:
            raise ValueError(f"Invalid synchronous mode: {synchronous}")

        db_path = str(path)
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                db_path, timeout=timeout, isolation_level=None, check_same_thread=False
            )
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open fingerprint index {db_path}: {e}") from e

        try:
            if db_path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(f"PRAGMA synchronous={synchronous}")
            conn.execute(_SCHEMA)
        except sqlite3.Error as e:
            conn.close()
            raise StoreError(f"Cannot initialize fingerprint index {db_path}: {e}") from e

        logger.debug(f"Opened fingerprint index {db_path} (synchronous={synchronous})")
        return cls(conn, db_path)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self._conn is None:
            raise StoreError(f"Fingerprint index {self.path} is closed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(f"Fingerprint index {self.path}: {e}") from e

    def lookup_or_insert(self, fingerprint: bytes, path: str) -> tuple[str, bool]:
        key = fingerprint.hex()
        with self._statement_lock:
            cursor = self._execute(
                "INSERT OR IGNORE INTO file_hashes (hash, file_path) VALUES (?, ?)",
                (key, path),
            )
            if cursor.rowcount == 1:
                return path, True
            row = self._execute(
                "SELECT file_path FROM file_hashes WHERE hash = ?", (key,)
            ).fetchone()
        if row is None:
            raise StoreError(f"Entry for {key} disappeared during lookup")
        return row[0], False

    def get(self, fingerprint: bytes) -> str | None:
        with self._statement_lock:
            row = self._execute(
                "SELECT file_path FROM file_hashes WHERE hash = ?", (fingerprint.hex(),)
            ).fetchone()
        return row[0] if row else None

    def replace(self, fingerprint: bytes, path: str) -> None:
        """Point ``fingerprint`` at a new canonical path."""
        with self._statement_lock:
            self._execute(
                "INSERT OR REPLACE INTO file_hashes (hash, file_path) VALUES (?, ?)",
                (fingerprint.hex(), path),
            )

    def entries(self) -> Iterator[tuple[bytes, str]]:
        with self._statement_lock:
            rows = self._execute(
                "SELECT hash, file_path FROM file_hashes ORDER BY file_path"
            ).fetchall()
        for key, path in rows:
            yield bytes.fromhex(key), path

    def prune_missing(self) -> int:
        """Drop entries whose canonical path is no longer a regular file."""
        stale = [fp.hex() for fp, path in self.entries() if not is_regular_file(path)]
        if not stale:
            return 0
        with self._statement_lock:
            self._execute("BEGIN")
            try:
                for key in stale:
                    self._execute("DELETE FROM file_hashes WHERE hash = ?", (key,))
            except StoreError:
                self._execute("ROLLBACK")
                raise
            self._execute("COMMIT")
        logger.info(f"Pruned {len(stale)} stale index entries")
        return len(stale)

    def __len__(self) -> int:
        with self._statement_lock:
            return self._execute("SELECT COUNT(*) FROM file_hashes").fetchone()[0]

    def close(self) -> None:
        with self._statement_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SqliteFingerprintIndex":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class InMemoryFingerprintIndex:
    """Dict-backed index with the same semantics and no persistence."""

    def __init__(self, entries: dict[bytes, str] | None = None):
        self._entries: dict[bytes, str] = dict(entries or {})
        self._lock = threading.Lock()

    def lookup_or_insert(self, fingerprint: bytes, path: str) -> tuple[str, bool]:
        with self._lock:
            existing = self._entries.get(fingerprint)
            if existing is None:
                self._entries[fingerprint] = path
                return path, True
        return existing, False

    def get(self, fingerprint: bytes) -> str | None:
        with self._lock:
            return self._entries.get(fingerprint)

    def replace(self, fingerprint: bytes, path: str) -> None:
        with self._lock:
            self._entries[fingerprint] = path

    def entries(self) -> Iterator[tuple[bytes, str]]:
        with self._lock:
            items = sorted(self._entries.items(), key=lambda item: item[1])
        yield from items

    def prune_missing(self) -> int:
        with self._lock:
            stale = [fp for fp, path in self._entries.items() if not is_regular_file(path)]
            for fp in stale:
                del self._entries[fp]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        pass

    def __enter__(self) -> "InMemoryFingerprintIndex":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
