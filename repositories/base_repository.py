"""
Base repository for the sqlite-backed ledger stores.
"""

import logging
import sqlite3
from abc import ABC
from contextlib import contextmanager

import config
from database import Database

logger = logging.getLogger("duel_ledger.repositories")


class BaseRepository(ABC):
    """
    Base class for the duel, probability and settlement repositories.

    Every operation opens its own short-lived connection, so repositories
    can be shared between threads.
    """

    # DB paths whose schema has already been migrated in this process
    _schema_initialized_paths = set()

    def __init__(self, db_path: str, busy_timeout_ms: int | None = None):
        """
        Args:
            db_path: Path to SQLite database file
            busy_timeout_ms: How long to wait for another writer's lock
        """
        self.db_path = db_path
        self.busy_timeout_ms = (
            busy_timeout_ms if busy_timeout_ms is not None else config.DB_BUSY_TIMEOUT_MS
        )
        if db_path not in BaseRepository._schema_initialized_paths:
            Database(db_path)
            BaseRepository._schema_initialized_paths.add(db_path)
            logger.debug(f"Schema ready for {db_path}")

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_ms / 1000)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        return conn

    @contextmanager
    def connection(self):
        """Read or single-statement write; commits on success, rolls back on error."""
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def atomic_transaction(self):
        """
        Transaction holding the write lock from its first statement.

        Version compare-and-swap, claim reservation and payout crediting all
        read a row and then write depending on it; BEGIN IMMEDIATE keeps a
        second writer out in between. A failure anywhere rolls back every
        statement of the block.

        Usage:
            with self.atomic_transaction() as conn:
                cursor = conn.cursor()
                cursor.execute(...)
        """
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
