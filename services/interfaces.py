"""
Service layer interfaces (ABCs).

These abstract base classes define the contracts for the ledger services.
Services inherit from their corresponding interface so the transport layer
and tests can depend on the contract rather than the implementation.

Usage:
    class MyService(IMyService):
        def my_method(self, param: str) -> Result[dict]:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.models.duel import Duel
    from domain.models.probability import ProbabilitySample
    from services.duel_ledger_service import ResolutionResult, StakeReceipt
    from services.probability_tracker_service import ProbabilityHistory
    from services.result import Result
    from services.settlement_service import SettlementReceipt


class ISettlementService(ABC):
    """Interface for the external funds-movement collaborator."""

    @abstractmethod
    def settle(self, duel_id: int, participant_id: str, amount: float) -> SettlementReceipt:
        """
        Move a payout to the participant.

        Raises SettlementError (or a subclass) on failure.
        """
        ...


class IProbabilityTracker(ABC):
    """Interface for odds history sampling and queries."""

    @abstractmethod
    def maybe_sample(
        self,
        duel_id: int,
        yes_total: float,
        no_total: float,
        now: int,
        yes_count: int = 0,
        no_count: int = 0,
    ) -> ProbabilitySample | None:
        """Record a sample if the odds moved by more than epsilon."""
        ...

    @abstractmethod
    def history(
        self, duel_id: int, since: int | None = None, limit: int | None = None
    ) -> Result[ProbabilityHistory]:
        """Ordered, restartable odds history with a trailing live point."""
        ...


class IDuelLedgerService(ABC):
    """Interface for duel lifecycle and stake accounting."""

    @abstractmethod
    def create_duel(
        self,
        creator_id: str,
        question: str,
        category: str,
        creator_stake: float,
        deadline: int,
        duel_type: str = "public",
    ) -> Result[Duel]:
        """Create a pending duel backed by the creator's opening stake."""
        ...

    @abstractmethod
    def get_duel(self, duel_id: int) -> Result[Duel]:
        """Load a duel."""
        ...

    @abstractmethod
    def place_stake(
        self,
        duel_id: int,
        participant_id: str,
        side: str,
        amount: float,
        request_token: str | None = None,
    ) -> Result[StakeReceipt]:
        """Stake on one side of a duel."""
        ...

    @abstractmethod
    def resolve(self, duel_id: int, caller_id: str, outcome: str) -> Result[ResolutionResult]:
        """Declare the outcome and compute payouts."""
        ...

    @abstractmethod
    def cancel(self, duel_id: int, caller_id: str) -> Result[Duel]:
        """Cancel a duel nobody has staked on."""
        ...


class IClaimService(ABC):
    """Interface for winners claiming their payouts."""

    @abstractmethod
    def claim(self, duel_id: int, participant_id: str) -> Result[SettlementReceipt]:
        """Settle a winner's payout exactly once."""
        ...
