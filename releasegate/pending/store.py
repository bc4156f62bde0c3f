"""Pending item storage with SQLite and in-memory backends.

Both backends enforce the same contract:
- at most one item per key (insert of an existing key conflicts)
- every write bumps ``version``; updates and deletes name the version they
  read and conflict when it changed in the meantime

Usage:
    async with SQLitePendingStore("data/pending.db") as store:
        item = await store.insert(item)
"""

import sqlite3
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from releasegate.errors import QueueStateConflict
from releasegate.pending.models import ACTIVE_STATES, PendingItem

logger = structlog.get_logger(__name__)


def _timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


# =============================================================================
# Abstract Storage Interface
# =============================================================================


class PendingStore(ABC):
    """Abstract base class for pending item storage backends."""

    async def connect(self) -> None:
        """Open the backend (no-op by default)."""
        pass

    async def close(self) -> None:
        """Close the backend (no-op by default)."""
        pass

    async def __aenter__(self) -> "PendingStore":
        await self.connect()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: object | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def get(self, key: str) -> PendingItem | None:
        pass

    @abstractmethod
    async def list_all(self) -> list[PendingItem]:
        """All stored items ordered by next check time."""
        pass

    @abstractmethod
    async def list_for_movie(self, movie_id: int) -> list[PendingItem]:
        pass

    @abstractmethod
    async def list_due(self, now: datetime) -> list[PendingItem]:
        """Active items whose next check time has passed, oldest first."""
        pass

    @abstractmethod
    async def insert(self, item: PendingItem) -> PendingItem:
        """Store a new item with version 1.

        Raises:
            QueueStateConflict: If an item with the same key exists.
        """
        pass

    @abstractmethod
    async def update(self, item: PendingItem, expected_version: int) -> PendingItem:
        """Replace the stored item if its version is still ``expected_version``.

        Raises:
            QueueStateConflict: If the item is gone or was written meanwhile.
        """
        pass

    @abstractmethod
    async def delete(self, key: str, expected_version: int) -> None:
        """Remove the stored item if its version is still ``expected_version``.

        Raises:
            QueueStateConflict: If the item is gone or was written meanwhile.
        """
        pass


# =============================================================================
# In-memory backend
# =============================================================================


class InMemoryPendingStore(PendingStore):
    """Dictionary-backed store (single process, tests)."""

    def __init__(self) -> None:
        self._items: dict[str, PendingItem] = {}

    async def get(self, key: str) -> PendingItem | None:
        return self._items.get(key)

    async def list_all(self) -> list[PendingItem]:
        return sorted(self._items.values(), key=lambda i: _timestamp(i.next_check_at))

    async def list_for_movie(self, movie_id: int) -> list[PendingItem]:
        return [i for i in await self.list_all() if i.movie_id == movie_id]

    async def list_due(self, now: datetime) -> list[PendingItem]:
        cutoff = _timestamp(now)
        return [
            i
            for i in await self.list_all()
            if i.state in ACTIVE_STATES and _timestamp(i.next_check_at) <= cutoff
        ]

    async def insert(self, item: PendingItem) -> PendingItem:
        if item.key in self._items:
            raise QueueStateConflict(item.key, "pending item already exists")
        stored = item.model_copy(update={"version": 1})
        self._items[item.key] = stored
        return stored

    async def update(self, item: PendingItem, expected_version: int) -> PendingItem:
        current = self._items.get(item.key)
        if current is None or current.version != expected_version:
            raise QueueStateConflict(item.key)
        stored = item.model_copy(update={"version": expected_version + 1})
        self._items[item.key] = stored
        return stored

    async def delete(self, key: str, expected_version: int) -> None:
        current = self._items.get(key)
        if current is None or current.version != expected_version:
            raise QueueStateConflict(key)
        del self._items[key]


# =============================================================================
# SQLite backend
# =============================================================================


class SQLitePendingStore(PendingStore):
    """SQLite-based pending store using aiosqlite."""

    def __init__(self, db_path: str | Path):
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._db: Any = None

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        import aiosqlite

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._apply_migrations()

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> Any:
        """Get active database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected. Use 'async with' or call connect()")
        return self._db

    async def _apply_migrations(self) -> None:
        """Apply database migrations."""
        migrations = [
            # Migration 1: Migrations tracking table
            """
            CREATE TABLE IF NOT EXISTS _migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            );
            """,
            # Migration 2: Pending releases
            """
            CREATE TABLE IF NOT EXISTS pending_releases (
                key TEXT PRIMARY KEY,
                movie_id INTEGER NOT NULL,
                state TEXT NOT NULL,
                next_check_ts REAL NOT NULL,
                version INTEGER NOT NULL,
                payload TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_pending_movie_id ON pending_releases(movie_id);
            CREATE INDEX IF NOT EXISTS idx_pending_next_check ON pending_releases(next_check_ts);
            """,
        ]

        await self.db.executescript(migrations[0])
        cursor = await self.db.execute("SELECT MAX(version) FROM _migrations")
        row = await cursor.fetchone()
        current_version = row[0] or 0

        for i, sql in enumerate(migrations, 1):
            if i <= current_version:
                continue

            logger.info("applying_migration", version=i)
            await self.db.executescript(sql)
            await self.db.execute(
                "INSERT OR IGNORE INTO _migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (i, f"migration_{i}", datetime.now(UTC).isoformat()),
            )
            await self.db.commit()

    def _row_to_item(self, row: Any) -> PendingItem:
        item = PendingItem.model_validate_json(row["payload"])
        return item.model_copy(update={"version": row["version"]})

    async def get(self, key: str) -> PendingItem | None:
        cursor = await self.db.execute("SELECT * FROM pending_releases WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return self._row_to_item(row) if row else None

    async def list_all(self) -> list[PendingItem]:
        cursor = await self.db.execute("SELECT * FROM pending_releases ORDER BY next_check_ts")
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def list_for_movie(self, movie_id: int) -> list[PendingItem]:
        cursor = await self.db.execute(
            "SELECT * FROM pending_releases WHERE movie_id = ? ORDER BY next_check_ts",
            (movie_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def list_due(self, now: datetime) -> list[PendingItem]:
        states = [state.value for state in ACTIVE_STATES]
        cursor = await self.db.execute(
            f"""
            SELECT * FROM pending_releases
            WHERE next_check_ts <= ? AND state IN ({", ".join("?" for _ in states)})
            ORDER BY next_check_ts
            """,
            (_timestamp(now), *states),
        )
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def insert(self, item: PendingItem) -> PendingItem:
        stored = item.model_copy(update={"version": 1})
        try:
            await self.db.execute(
                """
                INSERT INTO pending_releases (key, movie_id, state, next_check_ts, version, payload)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.key,
                    stored.movie_id,
                    stored.state.value,
                    _timestamp(stored.next_check_at),
                    stored.version,
                    stored.model_dump_json(),
                ),
            )
            await self.db.commit()
        except sqlite3.IntegrityError as e:
            await self.db.rollback()
            raise QueueStateConflict(item.key, "pending item already exists") from e
        return stored

    async def update(self, item: PendingItem, expected_version: int) -> PendingItem:
        stored = item.model_copy(update={"version": expected_version + 1})
        cursor = await self.db.execute(
            """
            UPDATE pending_releases
            SET state = ?, next_check_ts = ?, version = ?, payload = ?
            WHERE key = ? AND version = ?
            """,
            (
                stored.state.value,
                _timestamp(stored.next_check_at),
                stored.version,
                stored.model_dump_json(),
                stored.key,
                expected_version,
            ),
        )
        await self.db.commit()
        if cursor.rowcount != 1:
            raise QueueStateConflict(item.key)
        return stored

    async def delete(self, key: str, expected_version: int) -> None:
        cursor = await self.db.execute(
            "DELETE FROM pending_releases WHERE key = ? AND version = ?",
            (key, expected_version),
        )
        await self.db.commit()
        if cursor.rowcount != 1:
            raise QueueStateConflict(key)
