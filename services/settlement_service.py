"""
Settlement collaborator used by the claim flow.

The ledger treats settlement as an opaque funds movement: it hands over
(duel_id, participant_id, amount) and records whatever receipt comes back.
BalanceSettlementService is the off-chain implementation that credits an
account balance in the ledger database; an on-chain implementation plugs
in behind the same ISettlementService interface.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from typing import Callable

import config
from repositories.interfaces import ISettlementAccountRepository
from services.interfaces import ISettlementService

logger = logging.getLogger("duel_ledger.settlement")


class SettlementError(Exception):
    """Base exception for all settlement failures."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class SettlementTimeoutError(SettlementError):
    """The settlement backend did not answer in time."""
    pass


class SettlementRejectedError(SettlementError):
    """The settlement backend refused the transfer."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False)


@dataclass(frozen=True)
class SettlementReceipt:
    """Proof that a payout was moved to the participant."""

    duel_id: int
    participant_id: str
    amount: float
    transaction_signature: str
    settled_at: int

    def to_dict(self) -> dict:
        return {
            "duelId": self.duel_id,
            "payout": self.amount,
            "claimed": True,
            "transactionSignature": self.transaction_signature,
        }


class BalanceSettlementService(ISettlementService):
    """
    Off-chain settlement: credits the payout to the participant's account.

    Crediting is idempotent per (duel, participant), so a claim retried after
    a crash between settlement and bookkeeping is not paid twice.
    """

    def __init__(
        self,
        account_repo: ISettlementAccountRepository,
        enabled: bool | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.account_repo = account_repo
        self.enabled = enabled if enabled is not None else config.SETTLEMENT_ENABLED
        self._clock = clock or time.time

    def settle(self, duel_id: int, participant_id: str, amount: float) -> SettlementReceipt:
        if not self.enabled:
            raise SettlementRejectedError("Settlement is currently disabled.")
        if amount <= 0:
            raise SettlementRejectedError("No winnings to claim.")

        now = int(self._clock())
        try:
            transfer = self.account_repo.credit_payout_atomic(
                duel_id=duel_id,
                account_id=participant_id,
                amount=amount,
                transaction_id=uuid.uuid4().hex,
                now=now,
            )
        except sqlite3.OperationalError as e:
            # "database is locked" after busy_timeout
            raise SettlementTimeoutError(f"Settlement store unavailable: {e}") from e

        if transfer["replayed"]:
            logger.warning(
                f"Payout for {participant_id} on duel {duel_id} was already credited, "
                f"returning transaction {transfer['transaction_id']}"
            )
        else:
            logger.info(
                f"Credited {amount} to {participant_id} for duel {duel_id} "
                f"(tx {transfer['transaction_id']})"
            )

        return SettlementReceipt(
            duel_id=duel_id,
            participant_id=participant_id,
            amount=transfer["amount"],
            transaction_signature=transfer["transaction_id"],
            settled_at=now,
        )

    def get_balance(self, participant_id: str) -> float:
        """Current off-chain balance of a participant."""
        return self.account_repo.get_balance(participant_id)
