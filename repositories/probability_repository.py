"""
Repository for append-only probability history.
"""

from __future__ import annotations

from collections.abc import Iterator

from domain.models.probability import ProbabilitySample
from repositories.base_repository import BaseRepository
from repositories.interfaces import IProbabilityRepository


class ProbabilityRepository(BaseRepository, IProbabilityRepository):
    """
    Handles the probability_history table.

    Samples are only ever inserted; there is no update or delete path.
    """

    FETCH_BATCH_SIZE = 50

    def add_sample(self, sample: ProbabilitySample) -> int:
        """Append a sample and return its row ID."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO probability_history (
                    duel_id, timestamp, yes_stake, no_stake,
                    yes_probability, no_probability, yes_count, no_count
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sample.duel_id,
                    sample.timestamp,
                    sample.yes_stake_total,
                    sample.no_stake_total,
                    sample.yes_probability_pct,
                    sample.no_probability_pct,
                    sample.yes_count,
                    sample.no_count,
                ),
            )
            return cursor.lastrowid

    def get_latest_sample(self, duel_id: int) -> ProbabilitySample | None:
        """Most recent sample for a duel (ties broken by insertion order)."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM probability_history
                WHERE duel_id = ?
                ORDER BY timestamp DESC, sample_id DESC
                LIMIT 1
                """,
                (duel_id,),
            )
            row = cursor.fetchone()
            return self._row_to_sample(row) if row else None

    def iter_samples(
        self, duel_id: int, since: int, limit: int
    ) -> Iterator[ProbabilitySample]:
        """
        Yield samples oldest first, fetching rows in batches.

        The connection stays open only while the generator is being consumed.
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM probability_history
                WHERE duel_id = ? AND timestamp >= ?
                ORDER BY timestamp ASC, sample_id ASC
                LIMIT ?
                """,
                (duel_id, since, limit),
            )
            while True:
                rows = cursor.fetchmany(self.FETCH_BATCH_SIZE)
                if not rows:
                    break
                for row in rows:
                    yield self._row_to_sample(row)

    def count_samples(self, duel_id: int) -> int:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) AS n FROM probability_history WHERE duel_id = ?",
                (duel_id,),
            )
            return cursor.fetchone()["n"]

    def _row_to_sample(self, row) -> ProbabilitySample:
        return ProbabilitySample(
            duel_id=row["duel_id"],
            timestamp=row["timestamp"],
            yes_stake_total=row["yes_stake"],
            no_stake_total=row["no_stake"],
            yes_probability_pct=row["yes_probability"],
            no_probability_pct=row["no_probability"],
            yes_count=row["yes_count"],
            no_count=row["no_count"],
        )
