"""
Probability sample domain model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from domain.services.parimutuel_pool import ParimutuelPool


@dataclass(frozen=True)
class ProbabilitySample:
    """One timestamped observation of a duel's implied odds."""

    duel_id: int
    timestamp: int  # Unix timestamp
    yes_stake_total: float
    no_stake_total: float
    yes_probability_pct: float
    no_probability_pct: float
    yes_count: int = 0
    no_count: int = 0
    is_live: bool = False  # Synthetic trailing point built from current pool state

    @classmethod
    def from_pool(
        cls,
        duel_id: int,
        timestamp: int,
        pool: ParimutuelPool,
        yes_count: int = 0,
        no_count: int = 0,
        is_live: bool = False,
    ) -> ProbabilitySample:
        yes_pct, no_pct = pool.odds()
        return cls(
            duel_id=duel_id,
            timestamp=timestamp,
            yes_stake_total=pool.yes_total,
            no_stake_total=pool.no_total,
            yes_probability_pct=yes_pct,
            no_probability_pct=no_pct,
            yes_count=yes_count,
            no_count=no_count,
            is_live=is_live,
        )

    @property
    def pool_size(self) -> float:
        return self.yes_stake_total + self.no_stake_total

    def differs_from(self, other: ProbabilitySample | None, epsilon: float) -> bool:
        """True if either probability moved by more than epsilon points."""
        if other is None:
            return True
        return (
            abs(self.yes_probability_pct - other.yes_probability_pct) > epsilon
            or abs(self.no_probability_pct - other.no_probability_pct) > epsilon
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            "timestamp": self.timestamp,
            "yesProbability": self.yes_probability_pct,
            "noProbability": self.no_probability_pct,
            "yesStake": self.yes_stake_total,
            "noStake": self.no_stake_total,
            "poolSize": self.pool_size,
            "yesCount": self.yes_count,
            "noCount": self.no_count,
        }
