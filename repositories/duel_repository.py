"""
Repository for duels, participant stakes and claim bookkeeping.
"""

from __future__ import annotations

from domain import error_codes
from domain.exceptions import ConcurrencyConflict, LedgerError, LedgerInvariantError
from domain.models.duel import ClaimStatus, Duel, DuelStatus, ParticipantStake
from domain.models.side import Side
from repositories.base_repository import BaseRepository
from repositories.interfaces import IDuelRepository


class DuelRepository(BaseRepository, IDuelRepository):
    """
    Handles persistence for the duels and duel_participants tables.

    Every write to a duel row is a compare-and-swap on its version column,
    so two writers that loaded the same version cannot both commit.
    """

    def create_duel(
        self,
        creator_id: str,
        question: str,
        category: str,
        duel_type: str,
        creator_stake: float,
        deadline: int,
        created_at: int,
    ) -> int:
        """Create a new pending duel and return its ID."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO duels (
                    creator_id, question, category, duel_type, creator_stake,
                    status, deadline, created_at, updated_at, version
                )
                VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?, 0)
                """,
                (
                    creator_id,
                    question,
                    category,
                    duel_type,
                    creator_stake,
                    deadline,
                    created_at,
                    created_at,
                ),
            )
            return cursor.lastrowid

    def get_duel(self, duel_id: int) -> Duel | None:
        """Get a duel by ID with its participants in entry order."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM duels WHERE duel_id = ?", (duel_id,))
            row = cursor.fetchone()
            if not row:
                return None
            participants = self._fetch_participants(cursor, [duel_id])
            return self._row_to_duel(row, participants.get(duel_id, []))

    def save_duel(self, duel: Duel, stake_request: dict | None = None) -> int:
        """
        Persist a mutated duel with an optimistic version check.

        Args:
            duel: Duel loaded from this repository and mutated in memory
            stake_request: Optional idempotency record written in the same
                transaction: {"request_token", "participant_id", "side", "amount"}

        Returns:
            The duel's new version (also assigned to duel.version)

        Raises:
            ConcurrencyConflict: If another writer committed since the duel was loaded
            LedgerError: If the duel no longer exists
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE duels
                SET question = ?, deadline = ?, status = ?, outcome = ?,
                    updated_at = ?, resolved_at = ?, resolved_by = ?,
                    version = version + 1
                WHERE duel_id = ? AND version = ?
                """,
                (
                    duel.question,
                    duel.deadline,
                    duel.status.value,
                    duel.outcome.value if duel.outcome else None,
                    duel.updated_at,
                    duel.resolved_at,
                    duel.resolved_by,
                    duel.duel_id,
                    duel.version,
                ),
            )
            if cursor.rowcount == 0:
                self._raise_missing_or_conflict(cursor, duel.duel_id, duel.version)

            for order, participant in enumerate(duel.participants.values()):
                # Claim columns are owned by the claim methods below and never overwritten here
                cursor.execute(
                    """
                    INSERT INTO duel_participants (
                        duel_id, participant_id, side, stake_amount, entry_order,
                        joined_at, is_winner, payout_amount
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(duel_id, participant_id) DO UPDATE SET
                        stake_amount = excluded.stake_amount,
                        is_winner = excluded.is_winner,
                        payout_amount = excluded.payout_amount
                    """,
                    (
                        duel.duel_id,
                        participant.participant_id,
                        participant.side.value,
                        participant.stake_amount,
                        order,
                        participant.joined_at,
                        int(participant.is_winner),
                        participant.payout_amount,
                    ),
                )

            if stake_request is not None:
                cursor.execute(
                    """
                    INSERT INTO stake_requests (
                        duel_id, request_token, participant_id, side, amount, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        duel.duel_id,
                        stake_request["request_token"],
                        stake_request["participant_id"],
                        stake_request["side"],
                        stake_request["amount"],
                        duel.updated_at,
                    ),
                )

        duel.version += 1
        return duel.version

    def delete_duel(self, duel_id: int, expected_version: int) -> None:
        """Delete a duel that has no participants."""
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) AS n FROM duel_participants WHERE duel_id = ?",
                (duel_id,),
            )
            if cursor.fetchone()["n"] > 0:
                raise LedgerError(
                    "Cannot delete duel that has participants.",
                    code=error_codes.HAS_PARTICIPANTS,
                )
            cursor.execute(
                "DELETE FROM duels WHERE duel_id = ? AND version = ?",
                (duel_id, expected_version),
            )
            if cursor.rowcount == 0:
                self._raise_missing_or_conflict(cursor, duel_id, expected_version)
            cursor.execute("DELETE FROM stake_requests WHERE duel_id = ?", (duel_id,))

    def get_stake_request(self, duel_id: int, request_token: str) -> dict | None:
        """Get an applied stake request by its idempotency token."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM stake_requests
                WHERE duel_id = ? AND request_token = ?
                """,
                (duel_id, request_token),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def list_duels(
        self,
        statuses: list[str] | None = None,
        category: str | None = None,
        deadline_after: int | None = None,
        limit: int = 50,
    ) -> list[Duel]:
        """List duels newest first, optionally filtered."""
        clauses = []
        params: list = []
        if statuses:
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(statuses)
        if category:
            clauses.append("category = ?")
            params.append(category)
        if deadline_after is not None:
            clauses.append("deadline > ?")
            params.append(deadline_after)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM duels
                {where}
                ORDER BY created_at DESC, duel_id DESC
                LIMIT ?
                """,
                params,
            )
            rows = cursor.fetchall()
            participants = self._fetch_participants(cursor, [row["duel_id"] for row in rows])
            return [
                self._row_to_duel(row, participants.get(row["duel_id"], []))
                for row in rows
            ]

    def get_participant_positions(self, participant_id: str, limit: int = 50) -> list[dict]:
        """Get a participant's positions across duels, most recent deadline first."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    d.duel_id,
                    d.question,
                    d.status,
                    d.outcome,
                    d.deadline,
                    dp.side,
                    dp.stake_amount,
                    dp.is_winner,
                    dp.payout_amount,
                    dp.claim_status,
                    dp.transaction_signature
                FROM duel_participants dp
                JOIN duels d ON dp.duel_id = d.duel_id
                WHERE dp.participant_id = ?
                ORDER BY d.deadline DESC
                LIMIT ?
                """,
                (participant_id, limit),
            )
            positions = []
            for row in cursor.fetchall():
                position = dict(row)
                position["is_winner"] = bool(position["is_winner"])
                position["claimable"] = (
                    position["status"] == DuelStatus.RESOLVED.value
                    and position["is_winner"]
                    and position["claim_status"] == ClaimStatus.UNCLAIMED.value
                )
                positions.append(position)
            return positions

    def reserve_claim(self, duel_id: int, participant_id: str) -> dict:
        """
        Reserve a winner's claim for settlement.

        Validates the duel is resolved and the participant won and has not
        claimed, then flips claim_status unclaimed -> settling in the same
        transaction. Only one caller can hold the reservation.

        Returns:
            Dict with duel_id, participant_id and payout_amount
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT status FROM duels WHERE duel_id = ?", (duel_id,))
            duel = cursor.fetchone()
            if not duel:
                raise LedgerError("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
            if duel["status"] != DuelStatus.RESOLVED.value:
                raise LedgerError(
                    "Duel must be resolved before claiming winnings.",
                    code=error_codes.DUEL_NOT_RESOLVED,
                )

            cursor.execute(
                """
                SELECT is_winner, payout_amount, claim_status
                FROM duel_participants
                WHERE duel_id = ? AND participant_id = ?
                """,
                (duel_id, participant_id),
            )
            participant = cursor.fetchone()
            if not participant:
                raise LedgerError(
                    "You did not participate in this duel.",
                    code=error_codes.PARTICIPANT_NOT_FOUND,
                )
            if not participant["is_winner"]:
                raise LedgerError(
                    "Only winners can claim winnings.", code=error_codes.NOT_A_WINNER
                )
            if participant["claim_status"] == ClaimStatus.CLAIMED.value:
                raise LedgerError(
                    "Winnings have already been claimed.", code=error_codes.ALREADY_CLAIMED
                )
            if participant["claim_status"] == ClaimStatus.SETTLING.value:
                raise LedgerError(
                    "A claim for these winnings is already being settled.",
                    code=error_codes.CLAIM_IN_PROGRESS,
                )

            cursor.execute(
                """
                UPDATE duel_participants
                SET claim_status = ?
                WHERE duel_id = ? AND participant_id = ? AND claim_status = ?
                """,
                (
                    ClaimStatus.SETTLING.value,
                    duel_id,
                    participant_id,
                    ClaimStatus.UNCLAIMED.value,
                ),
            )

            return {
                "duel_id": duel_id,
                "participant_id": participant_id,
                "payout_amount": participant["payout_amount"],
            }

    def complete_claim(
        self, duel_id: int, participant_id: str, transaction_signature: str, claimed_at: int
    ) -> None:
        """Mark a reserved claim as claimed with its settlement receipt."""
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE duel_participants
                SET claim_status = ?, transaction_signature = ?, claimed_at = ?
                WHERE duel_id = ? AND participant_id = ? AND claim_status = ?
                """,
                (
                    ClaimStatus.CLAIMED.value,
                    transaction_signature,
                    claimed_at,
                    duel_id,
                    participant_id,
                    ClaimStatus.SETTLING.value,
                ),
            )
            if cursor.rowcount == 0:
                raise LedgerInvariantError(
                    f"No reserved claim for participant {participant_id} on duel {duel_id}"
                )

    def release_claim(self, duel_id: int, participant_id: str) -> None:
        """Return a reserved claim to unclaimed so it can be retried."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE duel_participants
                SET claim_status = ?
                WHERE duel_id = ? AND participant_id = ? AND claim_status = ?
                """,
                (
                    ClaimStatus.UNCLAIMED.value,
                    duel_id,
                    participant_id,
                    ClaimStatus.SETTLING.value,
                ),
            )

    # --- Internal helpers ---

    def _raise_missing_or_conflict(self, cursor, duel_id: int, expected_version: int) -> None:
        cursor.execute("SELECT version FROM duels WHERE duel_id = ?", (duel_id,))
        if cursor.fetchone() is None:
            raise LedgerError("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
        raise ConcurrencyConflict(duel_id, expected_version)

    def _fetch_participants(self, cursor, duel_ids: list[int]) -> dict[int, list]:
        """Participant rows grouped by duel_id, in entry order."""
        if not duel_ids:
            return {}
        placeholders = ", ".join("?" for _ in duel_ids)
        cursor.execute(
            f"""
            SELECT * FROM duel_participants
            WHERE duel_id IN ({placeholders})
            ORDER BY duel_id, entry_order ASC
            """,
            duel_ids,
        )
        grouped: dict[int, list] = {}
        for row in cursor.fetchall():
            grouped.setdefault(row["duel_id"], []).append(row)
        return grouped

    def _row_to_duel(self, row, participant_rows: list) -> Duel:
        participants = {}
        for p in participant_rows:
            participants[p["participant_id"]] = ParticipantStake(
                participant_id=p["participant_id"],
                side=Side(p["side"]),
                stake_amount=p["stake_amount"],
                joined_at=p["joined_at"],
                is_winner=bool(p["is_winner"]),
                payout_amount=p["payout_amount"],
                claim_status=ClaimStatus(p["claim_status"]),
                transaction_signature=p["transaction_signature"],
                claimed_at=p["claimed_at"],
            )
        return Duel(
            duel_id=row["duel_id"],
            creator_id=row["creator_id"],
            question=row["question"],
            deadline=row["deadline"],
            category=row["category"],
            duel_type=row["duel_type"],
            creator_stake=row["creator_stake"],
            status=DuelStatus(row["status"]),
            outcome=Side(row["outcome"]) if row["outcome"] else None,
            participants=participants,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            resolved_at=row["resolved_at"],
            resolved_by=row["resolved_by"],
            version=row["version"],
        )
