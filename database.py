"""
Database bootstrap for the duel ledger.
"""

import logging
import sqlite3

from infrastructure.schema_manager import SchemaManager

logger = logging.getLogger("duel_ledger.database")


class Database:
    """
    Owns the SQLite file location and guarantees the schema exists.

    Repositories open their own short-lived connections; this class only
    runs schema initialization once per instance.
    """

    def __init__(self, db_path: str = "duel_ledger.db"):
        self.db_path = db_path
        # In-memory databases need URI mode so the schema manager skips WAL
        self.use_uri = db_path == ":memory:" or db_path.startswith("file:")
        SchemaManager(db_path, use_uri=self.use_uri).initialize()

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection with row factory enabled."""
        conn = sqlite3.connect(self.db_path, uri=self.use_uri)
        conn.row_factory = sqlite3.Row
        return conn
