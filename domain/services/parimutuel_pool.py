"""
Parimutuel pool accounting domain service.

Pure arithmetic over the two side totals of a duel: stake accumulation,
implied probabilities and payout multipliers. No persistence, no I/O.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from domain import error_codes
from domain.exceptions import LedgerError
from domain.models.side import Side

if TYPE_CHECKING:
    from domain.models.duel import ParticipantStake


def is_valid_amount(amount) -> bool:
    """True for a finite number greater than zero; bools, NaN and infinity are not amounts."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False
    return math.isfinite(amount) and amount > 0


@dataclass(frozen=True)
class ParimutuelPool:
    """
    Immutable snapshot of a two-sided stake pool.

    Probabilities are expressed in percentage points. Only the YES side is
    computed by division; NO is derived as 100 - YES so the pair always sums
    to exactly 100.
    """

    yes_total: float = 0.0
    no_total: float = 0.0

    def __post_init__(self) -> None:
        if self.yes_total < 0 or self.no_total < 0:
            raise LedgerError("Pool totals cannot be negative.", code=error_codes.INVALID_AMOUNT)

    @classmethod
    def from_participants(cls, participants: Iterable[ParticipantStake]) -> ParimutuelPool:
        """Build the pool by summing every participant's stake per side."""
        yes_total = 0.0
        no_total = 0.0
        for participant in participants:
            if participant.side is Side.YES:
                yes_total += participant.stake_amount
            else:
                no_total += participant.stake_amount
        return cls(yes_total=yes_total, no_total=no_total)

    @property
    def total(self) -> float:
        return self.yes_total + self.no_total

    @property
    def is_empty(self) -> bool:
        return self.total <= 0

    def stake_on(self, side: Side) -> float:
        """Total staked on one side."""
        return self.yes_total if side is Side.YES else self.no_total

    def add_stake(self, side: Side, amount: float) -> tuple[float, float]:
        """
        Return the (yes_total, no_total) pair after adding a stake.

        Raises:
            LedgerError: If amount is not a finite, strictly positive number (INVALID_AMOUNT)
        """
        if not is_valid_amount(amount):
            raise LedgerError(
                "Stake amount must be a positive number.", code=error_codes.INVALID_AMOUNT
            )
        if side is Side.YES:
            return self.yes_total + amount, self.no_total
        return self.yes_total, self.no_total + amount

    def with_stake(self, side: Side, amount: float) -> ParimutuelPool:
        """Pool snapshot after a hypothetical stake, for live quotes."""
        yes_total, no_total = self.add_stake(side, amount)
        return ParimutuelPool(yes_total=yes_total, no_total=no_total)

    def odds(self) -> tuple[float, float]:
        """
        Implied probabilities (yes_pct, no_pct).

        An empty pool is a coin flip: 50/50.
        """
        total = self.total
        if total <= 0:
            return 50.0, 50.0
        yes_pct = self.yes_total / total * 100
        return yes_pct, 100.0 - yes_pct

    def multipliers(self) -> dict[str, float]:
        """
        Payout multiplier per unit staked on each side if that side wins.

        Returns 0.0 for a side nobody has backed yet.
        """
        total = self.total
        if total <= 0:
            return {"yes": 0.0, "no": 0.0}

        yes_multiplier = total / self.yes_total if self.yes_total > 0 else 0.0
        no_multiplier = total / self.no_total if self.no_total > 0 else 0.0

        return {"yes": round(yes_multiplier, 2), "no": round(no_multiplier, 2)}
