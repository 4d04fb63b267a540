"""SQLite connection management and migration runner.

One aiosqlite connection per process, WAL journal, and versioned SQL files
from ``migrations/`` applied in order on connect. The usage ledger and the
news cache both live in this database.
"""

import datetime
import logging
from pathlib import Path
from types import TracebackType

import aiosqlite

logger = logging.getLogger(__name__)

_MIGRATIONS_DIR = Path(__file__).parent / "migrations"
_IN_MEMORY = ":memory:"


class Database:
    """Async SQLite database with connection lifecycle and migrations.

    Usage::

        async with Database("data/koyn.db") as db:
            await db.connection.execute("SELECT 1")

    Pass ``":memory:"`` for a throwaway database (tests, CLI dry runs).
    """

    def __init__(self, db_path: str = "data/koyn.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> aiosqlite.Connection:
        """Return the active connection or raise if not connected."""
        if self._connection is None:
            msg = "Database is not connected. Call connect() or use 'async with'."
            raise RuntimeError(msg)
        return self._connection

    async def connect(self) -> None:
        """Open the connection, switch to WAL, and apply pending migrations."""
        if self._db_path != _IN_MEMORY:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        if self._db_path != _IN_MEMORY:
            await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._apply_migrations()
        logger.info("Database connected: %s", self._db_path)

    async def close(self) -> None:
        """Close the connection if it is open."""
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("Database closed: %s", self._db_path)

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _apply_migrations(self) -> None:
        """Run every ``NNN_name.sql`` file whose version is not yet recorded.

        Safe to call repeatedly. A migration that fails halfway is not
        recorded in ``schema_version`` and is retried on the next connect.
        """
        conn = self.connection
        await conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        await conn.commit()

        cursor = await conn.execute("SELECT version FROM schema_version")
        applied = {row[0] for row in await cursor.fetchall()}

        for sql_file in sorted(_MIGRATIONS_DIR.glob("*.sql")):
            version = int(sql_file.stem.split("_", 1)[0])
            if version in applied:
                continue

            logger.info("Applying migration %03d (%s)", version, sql_file.name)
            await conn.executescript(sql_file.read_text(encoding="utf-8"))
            await conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, datetime.datetime.now(datetime.UTC).isoformat()),
            )
            await conn.commit()
