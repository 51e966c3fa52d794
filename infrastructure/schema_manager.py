"""
Schema and migration management for SQLite database.
"""

import logging
import sqlite3

logger = logging.getLogger("duel_ledger.schema")


class SchemaManager:
    """
    Owns schema creation and migrations.

    Call initialize() to ensure schema is present and migrations are applied.
    """

    def __init__(self, db_path: str, use_uri: bool = False):
        self.db_path = db_path
        self.use_uri = use_uri

    def initialize(self) -> None:
        """Create base schema and apply migrations."""
        logger.info(f"Initializing database schema: {self.db_path}")
        with self._connect() as conn:
            cursor = conn.cursor()
            self._create_base_schema(cursor)
            self._create_schema_migrations_table(cursor)
            self._run_migrations(cursor)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, uri=self.use_uri)
        conn.row_factory = sqlite3.Row
        if not self.use_uri:  # Skip WAL for in-memory databases
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _create_base_schema(self, cursor) -> None:
        # Duels: pool totals are never stored, they are summed from participants
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS duels (
                duel_id INTEGER PRIMARY KEY AUTOINCREMENT,
                creator_id TEXT NOT NULL,
                question TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT 'Other',
                duel_type TEXT NOT NULL DEFAULT 'public',
                creator_stake REAL NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'pending',
                outcome TEXT,
                deadline INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                resolved_at INTEGER,
                resolved_by TEXT,
                version INTEGER NOT NULL DEFAULT 0
            )
            """
        )

        # One row per participant identity; repeat stakes accumulate here
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS duel_participants (
                duel_id INTEGER NOT NULL,
                participant_id TEXT NOT NULL,
                side TEXT NOT NULL,
                stake_amount REAL NOT NULL,
                entry_order INTEGER NOT NULL,
                joined_at INTEGER NOT NULL,
                is_winner INTEGER NOT NULL DEFAULT 0,
                payout_amount REAL NOT NULL DEFAULT 0,
                claim_status TEXT NOT NULL DEFAULT 'unclaimed',
                transaction_signature TEXT,
                claimed_at INTEGER,
                PRIMARY KEY (duel_id, participant_id),
                FOREIGN KEY (duel_id) REFERENCES duels(duel_id)
            )
            """
        )

    def _create_schema_migrations_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def _run_migrations(self, cursor) -> None:
        applied = {row["name"] for row in cursor.execute("SELECT name FROM schema_migrations")}
        for name, action in self._get_migrations():
            if name in applied:
                continue
            logger.info(f"Applying migration: {name}")
            action(cursor)
            cursor.execute(
                "INSERT INTO schema_migrations (name) VALUES (?)",
                (name,),
            )

    def _get_migrations(self):
        return [
            ("add_duel_indexes", self._migration_add_duel_indexes),
            ("create_probability_history_table", self._migration_create_probability_history_table),
            ("create_stake_requests_table", self._migration_create_stake_requests_table),
            ("create_settlement_accounts", self._migration_create_settlement_accounts),
        ]

    # --- Migrations ---

    def _migration_add_duel_indexes(self, cursor) -> None:
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_duels_status_deadline "
            "ON duels(status, deadline)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_duels_creator "
            "ON duels(creator_id, created_at)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_duel_participants_participant "
            "ON duel_participants(participant_id)"
        )

    def _migration_create_probability_history_table(self, cursor) -> None:
        """Append-only odds snapshots used for charting."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS probability_history (
                sample_id INTEGER PRIMARY KEY AUTOINCREMENT,
                duel_id INTEGER NOT NULL,
                timestamp INTEGER NOT NULL,
                yes_stake REAL NOT NULL,
                no_stake REAL NOT NULL,
                yes_probability REAL NOT NULL,
                no_probability REAL NOT NULL,
                yes_count INTEGER NOT NULL DEFAULT 0,
                no_count INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (duel_id) REFERENCES duels(duel_id)
            )
            """
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_probability_history_duel_time "
            "ON probability_history(duel_id, timestamp)"
        )

    def _migration_create_stake_requests_table(self, cursor) -> None:
        """Idempotency tokens for retried stake requests."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS stake_requests (
                duel_id INTEGER NOT NULL,
                request_token TEXT NOT NULL,
                participant_id TEXT NOT NULL,
                side TEXT NOT NULL,
                amount REAL NOT NULL,
                created_at INTEGER NOT NULL,
                PRIMARY KEY (duel_id, request_token),
                FOREIGN KEY (duel_id) REFERENCES duels(duel_id)
            )
            """
        )

    def _migration_create_settlement_accounts(self, cursor) -> None:
        """Balances and transfer log for off-chain settlement."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlement_accounts (
                account_id TEXT PRIMARY KEY,
                balance REAL NOT NULL DEFAULT 0,
                updated_at INTEGER NOT NULL
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlement_transactions (
                transaction_id TEXT PRIMARY KEY,
                duel_id INTEGER NOT NULL,
                account_id TEXT NOT NULL,
                amount REAL NOT NULL,
                created_at INTEGER NOT NULL
            )
            """
        )
        cursor.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_settlement_transactions_payout "
            "ON settlement_transactions(duel_id, account_id)"
        )
