"""
Duel domain model: lifecycle state machine and participant stakes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from domain import error_codes
from domain.exceptions import LedgerError, LedgerInvariantError
from domain.models.side import Side
from domain.services.parimutuel_pool import ParimutuelPool
from domain.services.payout_calculator import PayoutCalculator, PayoutSummary

# Lowercase form values -> stored category names
CATEGORY_MAP = {
    "crypto": "Crypto",
    "weather": "Weather",
    "sports": "Sports",
    "meme": "Meme",
    "local": "Local",
    "other": "Other",
}

DUEL_TYPES = {"public", "friend"}


class DuelStatus(Enum):
    """Lifecycle states of a duel."""

    PENDING = "pending"  # Created, no bettor yet
    ACTIVE = "active"  # At least one stake accepted
    RESOLVED = "resolved"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (DuelStatus.RESOLVED, DuelStatus.CANCELLED)

    @property
    def accepts_stakes(self) -> bool:
        return self in (DuelStatus.PENDING, DuelStatus.ACTIVE)


class ClaimStatus(Enum):
    """Claim bookkeeping for a winning participant."""

    UNCLAIMED = "unclaimed"
    SETTLING = "settling"  # Reserved while the settlement call is in flight
    CLAIMED = "claimed"


def normalize_category(category: str | None) -> str:
    """Map a category from the client form to its stored name (unknown -> Other)."""
    if not category:
        return "Other"
    return CATEGORY_MAP.get(category.strip().lower(), "Other")


@dataclass
class ParticipantStake:
    """One identity's position in a duel."""

    participant_id: str
    side: Side
    stake_amount: float
    joined_at: int
    is_winner: bool = False
    payout_amount: float = 0.0
    claim_status: ClaimStatus = ClaimStatus.UNCLAIMED
    transaction_signature: str | None = None
    claimed_at: int | None = None

    @property
    def claimed(self) -> bool:
        return self.claim_status is ClaimStatus.CLAIMED

    @property
    def profit(self) -> float:
        return self.payout_amount - self.stake_amount if self.is_winner else -self.stake_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.participant_id,
            "prediction": self.side.value,
            "stake": self.stake_amount,
            "won": self.is_winner,
            "payout": self.payout_amount,
            "claimed": self.claimed,
            "transactionSignature": self.transaction_signature,
        }


@dataclass
class Duel:
    """
    A binary-outcome wagering pool with a creator and a deadline.

    Lifecycle: pending -> active -> resolved, with pending/active -> cancelled.
    Pool totals are always derived from `participants`; nothing caches them.
    Mutating methods raise LedgerError and leave the duel untouched on failure.
    """

    duel_id: int
    creator_id: str
    question: str
    deadline: int  # Unix timestamp; stakes close and resolution opens here
    category: str = "Other"
    duel_type: str = "public"
    creator_stake: float = 0.0  # Creator's opening commitment, not part of the pool
    status: DuelStatus = DuelStatus.PENDING
    outcome: Side | None = None
    participants: dict[str, ParticipantStake] = field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0
    resolved_at: int | None = None
    resolved_by: str | None = None
    version: int = 0

    # --- Derived views ---

    @property
    def pool(self) -> ParimutuelPool:
        return ParimutuelPool.from_participants(self.participants.values())

    @property
    def pool_total(self) -> float:
        return self.pool.total

    @property
    def has_participants(self) -> bool:
        return bool(self.participants)

    def odds(self) -> tuple[float, float]:
        return self.pool.odds()

    def side_count(self, side: Side) -> int:
        """Number of distinct bettors on a side."""
        return sum(1 for p in self.participants.values() if p.side is side)

    def get_participant(self, participant_id: str) -> ParticipantStake | None:
        return self.participants.get(participant_id)

    # --- State machine ---

    def place_stake(
        self, participant_id: str, side: Side | str, amount: float, now: int
    ) -> ParticipantStake:
        """
        Accept a stake, accumulating into an existing same-side position.

        The first accepted stake moves a pending duel to active.
        """
        if now >= self.deadline:
            raise LedgerError("Duel deadline has passed.", code=error_codes.DEADLINE_PASSED)
        if not self.status.accepts_stakes:
            raise LedgerError(
                "Duel is not accepting bets.", code=error_codes.DUEL_NOT_ACCEPTING_STAKES
            )
        if participant_id == self.creator_id:
            raise LedgerError(
                "You cannot bet on your own duel.", code=error_codes.SELF_STAKE_FORBIDDEN
            )
        side = Side.parse(side)

        pool_before = self.pool
        expected_yes, expected_no = pool_before.add_stake(side, amount)

        existing = self.participants.get(participant_id)
        if existing and existing.side is not side:
            raise LedgerError(
                f"You already have a position on {existing.side.value.upper()}. "
                "You can only add to your existing position.",
                code=error_codes.SIDE_ALREADY_CHOSEN,
            )

        if existing:
            existing.stake_amount += amount
            position = existing
        else:
            position = ParticipantStake(
                participant_id=participant_id,
                side=side,
                stake_amount=amount,
                joined_at=now,
            )
            self.participants[participant_id] = position

        pool_after = self.pool
        if not (
            math.isclose(pool_after.yes_total, expected_yes, rel_tol=1e-12, abs_tol=1e-9)
            and math.isclose(pool_after.no_total, expected_no, rel_tol=1e-12, abs_tol=1e-9)
        ):
            raise LedgerInvariantError(
                f"Pool drifted on duel {self.duel_id}: "
                f"expected ({expected_yes}, {expected_no}), got "
                f"({pool_after.yes_total}, {pool_after.no_total})"
            )

        if self.status is DuelStatus.PENDING:
            self.status = DuelStatus.ACTIVE
        self.updated_at = now
        return position

    def resolve(
        self,
        caller_id: str,
        outcome: Side | str,
        now: int,
        calculator: PayoutCalculator | None = None,
    ) -> PayoutSummary:
        """
        Declare the outcome and write payouts onto every participant.

        Payouts are computed once from the current participant snapshot.
        """
        if caller_id != self.creator_id:
            raise LedgerError(
                "Only the creator can resolve this duel.", code=error_codes.UNAUTHORIZED
            )
        if self.status is DuelStatus.RESOLVED:
            raise LedgerError("Duel is already resolved.", code=error_codes.ALREADY_RESOLVED)
        if self.status is DuelStatus.CANCELLED:
            raise LedgerError("Duel was cancelled.", code=error_codes.ALREADY_CANCELLED)
        if now < self.deadline:
            raise LedgerError(
                "Cannot resolve duel before deadline.", code=error_codes.RESOLUTION_TOO_EARLY
            )
        winning_side = Side.parse(outcome)

        # Computed before any mutation so a failed calculation leaves the duel untouched
        summary = (calculator or PayoutCalculator()).compute(
            self.participants.values(), winning_side
        )
        for payout in summary.payouts:
            participant = self.participants[payout.participant_id]
            participant.is_winner = payout.is_winner
            participant.payout_amount = payout.payout

        self.status = DuelStatus.RESOLVED
        self.outcome = winning_side
        self.resolved_at = now
        self.resolved_by = caller_id
        self.updated_at = now
        return summary

    def ensure_editable(self, caller_id: str) -> None:
        """Creator-only changes require a non-terminal duel nobody has bet on."""
        if caller_id != self.creator_id:
            raise LedgerError(
                "Only the creator can modify this duel.", code=error_codes.UNAUTHORIZED
            )
        if self.status.is_terminal:
            raise LedgerError(
                f"Duel is already {self.status.value}.", code=error_codes.TERMINAL_STATE
            )
        if self.has_participants:
            raise LedgerError(
                "Cannot modify duel that has participants.", code=error_codes.HAS_PARTICIPANTS
            )

    def cancel(self, caller_id: str, now: int) -> None:
        """Cancel a duel nobody has staked on."""
        self.ensure_editable(caller_id)
        self.status = DuelStatus.CANCELLED
        self.updated_at = now

    def update_terms(
        self,
        caller_id: str,
        now: int,
        question: str | None = None,
        deadline: int | None = None,
    ) -> None:
        """Edit the question or deadline before anyone has bet."""
        self.ensure_editable(caller_id)
        if question is not None:
            if not question.strip():
                raise LedgerError("Question cannot be empty.", code=error_codes.VALIDATION_ERROR)
            self.question = question.strip()
        if deadline is not None:
            if deadline <= now:
                raise LedgerError(
                    "Deadline must be in the future.", code=error_codes.VALIDATION_ERROR
                )
            self.deadline = deadline
        self.updated_at = now

    def to_dict(self) -> dict[str, Any]:
        """Projection using the field names the existing client expects."""
        yes_pct, no_pct = self.odds()
        pool = self.pool
        return {
            "id": self.duel_id,
            "creator": self.creator_id,
            "question": self.question,
            "category": self.category,
            "type": self.duel_type,
            "stake": self.creator_stake,
            "deadline": self.deadline,
            "status": self.status.value,
            "outcome": self.outcome.value if self.outcome else None,
            "poolSize": pool.total,
            "yesStake": pool.yes_total,
            "noStake": pool.no_total,
            "yesCount": self.side_count(Side.YES),
            "noCount": self.side_count(Side.NO),
            "yesProbability": yes_pct,
            "noProbability": no_pct,
            "participants": [p.to_dict() for p in self.participants.values()],
        }
