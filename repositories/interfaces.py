"""
Repository interfaces (ABCs) for the duel ledger's record store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.models.duel import Duel
    from domain.models.probability import ProbabilitySample


class IDuelRepository(ABC):
    """Repository for duels and their participant stakes."""

    @abstractmethod
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
        """Create a pending duel and return its ID."""
        ...

    @abstractmethod
    def get_duel(self, duel_id: int) -> Duel | None:
        """Load a duel with its participants, or None."""
        ...

    @abstractmethod
    def save_duel(self, duel: Duel, stake_request: dict | None = None) -> int:
        """
        Persist a mutated duel if its version is unchanged; return the new version.

        Raises ConcurrencyConflict on a version mismatch.
        """
        ...

    @abstractmethod
    def delete_duel(self, duel_id: int, expected_version: int) -> None:
        """Delete a participant-less duel if its version is unchanged."""
        ...

    @abstractmethod
    def get_stake_request(self, duel_id: int, request_token: str) -> dict | None:
        """Get a previously applied stake request by idempotency token."""
        ...

    @abstractmethod
    def list_duels(
        self,
        statuses: list[str] | None = None,
        category: str | None = None,
        deadline_after: int | None = None,
        limit: int = 50,
    ) -> list[Duel]:
        """List duels, newest first."""
        ...

    @abstractmethod
    def get_participant_positions(self, participant_id: str, limit: int = 50) -> list[dict]:
        """Get a participant's positions across duels."""
        ...

    @abstractmethod
    def reserve_claim(self, duel_id: int, participant_id: str) -> dict:
        """Atomically move a winner's claim from unclaimed to settling."""
        ...

    @abstractmethod
    def complete_claim(
        self, duel_id: int, participant_id: str, transaction_signature: str, claimed_at: int
    ) -> None:
        """Mark a settling claim as claimed and record its receipt."""
        ...

    @abstractmethod
    def release_claim(self, duel_id: int, participant_id: str) -> None:
        """Return a settling claim to unclaimed after a failed settlement."""
        ...


class IProbabilityRepository(ABC):
    """Repository for append-only probability history."""

    @abstractmethod
    def add_sample(self, sample: ProbabilitySample) -> int:
        """Append a sample and return its row ID."""
        ...

    @abstractmethod
    def get_latest_sample(self, duel_id: int) -> ProbabilitySample | None:
        """Most recent recorded sample for a duel."""
        ...

    @abstractmethod
    def iter_samples(
        self, duel_id: int, since: int, limit: int
    ) -> Iterator[ProbabilitySample]:
        """Yield samples with timestamp >= since, oldest first, at most limit."""
        ...

    @abstractmethod
    def count_samples(self, duel_id: int) -> int:
        """Number of recorded samples for a duel."""
        ...


class ISettlementAccountRepository(ABC):
    """Repository for off-chain settlement balances."""

    @abstractmethod
    def credit_payout_atomic(
        self, duel_id: int, account_id: str, amount: float, transaction_id: str, now: int
    ) -> dict:
        """Credit a payout once per (duel, account); replays return the original transfer."""
        ...

    @abstractmethod
    def get_balance(self, account_id: str) -> float:
        """Current balance of an account (0 if unknown)."""
        ...
