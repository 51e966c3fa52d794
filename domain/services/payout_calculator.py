"""
Payout calculation domain service.

Splits a resolved duel's pool among the winning side with no platform fee.
Each winner gets their principal back plus a share of the losing side's
stakes proportional to their share of the winning side:

    payout = stake + (stake / winning_stake) * (total_pool - winning_stake)
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from domain.exceptions import PayoutInvariantError
from domain.models.side import Side

if TYPE_CHECKING:
    from domain.models.duel import ParticipantStake


@dataclass(frozen=True)
class Payout:
    """Computed settlement for one participant."""

    participant_id: str
    side: Side
    stake: float
    payout: float
    is_winner: bool

    @property
    def profit(self) -> float:
        return self.payout - self.stake


@dataclass
class PayoutSummary:
    """All payouts for one resolution."""

    winning_side: Side
    total_pool: float
    winning_stake: float
    payouts: list[Payout] = field(default_factory=list)

    @property
    def is_degenerate(self) -> bool:
        """True when nobody backed the winning side and nothing is paid out."""
        return self.winning_stake <= 0

    @property
    def winners(self) -> list[Payout]:
        return [p for p in self.payouts if p.is_winner]

    @property
    def losers(self) -> list[Payout]:
        return [p for p in self.payouts if not p.is_winner]

    @property
    def total_paid(self) -> float:
        return math.fsum(p.payout for p in self.payouts)

    def for_participant(self, participant_id: str) -> Payout | None:
        for payout in self.payouts:
            if payout.participant_id == participant_id:
                return payout
        return None


class PayoutCalculator:
    """
    Pure domain service for parimutuel payout computation.

    Responsibilities:
    - Partition participants into winners and losers
    - Compute each winner's pro-rata payout
    - Verify the whole pool is redistributed
    """

    def __init__(self, epsilon: float = 1e-6):
        """
        Initialize payout calculator.

        Args:
            epsilon: Absolute tolerance for the pool conservation check
        """
        self.epsilon = epsilon

    def compute(
        self, participants: Iterable[ParticipantStake], winning_side: Side
    ) -> PayoutSummary:
        """
        Compute payouts for a final participant snapshot.

        If no stake is on the winning side the resolution is degenerate:
        nobody is marked a winner and every payout is 0.

        Raises:
            PayoutInvariantError: If winners' payouts do not sum to the pool
        """
        snapshot = list(participants)
        total_pool = math.fsum(p.stake_amount for p in snapshot)
        winning_stake = math.fsum(
            p.stake_amount for p in snapshot if p.side is winning_side
        )
        losing_stake = total_pool - winning_stake

        summary = PayoutSummary(
            winning_side=winning_side,
            total_pool=total_pool,
            winning_stake=winning_stake,
        )

        for participant in snapshot:
            won = winning_stake > 0 and participant.side is winning_side
            if won:
                share = participant.stake_amount / winning_stake
                amount = participant.stake_amount + share * losing_stake
            else:
                amount = 0.0
            summary.payouts.append(
                Payout(
                    participant_id=participant.participant_id,
                    side=participant.side,
                    stake=participant.stake_amount,
                    payout=amount,
                    is_winner=won,
                )
            )

        if not summary.is_degenerate:
            self._check_conservation(summary)
        return summary

    def _check_conservation(self, summary: PayoutSummary) -> None:
        paid = math.fsum(p.payout for p in summary.winners)
        if not math.isclose(paid, summary.total_pool, rel_tol=1e-9, abs_tol=self.epsilon):
            raise PayoutInvariantError(
                f"Payouts {paid} do not match pool total {summary.total_pool}"
            )
