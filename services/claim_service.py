"""
Claim flow for resolved duels.

A claim moves through unclaimed -> settling -> claimed. The reservation is a
conditional update in the database, so two concurrent claims for the same
winner cannot both reach the settlement call; a failed settlement returns
the claim to unclaimed so it can be retried.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from domain import error_codes
from domain.exceptions import LedgerError
from repositories.interfaces import IDuelRepository
from services.interfaces import IClaimService, ISettlementService
from services.result import Result
from services.settlement_service import SettlementError, SettlementReceipt

logger = logging.getLogger("duel_ledger.claims")


class ClaimService(IClaimService):
    """Settles each winner's payout exactly once."""

    def __init__(
        self,
        duel_repo: IDuelRepository,
        settlement_service: ISettlementService,
        clock: Callable[[], float] | None = None,
    ):
        self.duel_repo = duel_repo
        self.settlement_service = settlement_service
        self._clock = clock or time.time

        self._claim_locks: dict[tuple[int, str], threading.Lock] = {}
        self._claim_locks_guard = threading.Lock()

    def _claim_lock(self, duel_id: int, participant_id: str) -> threading.Lock:
        key = (duel_id, participant_id)
        with self._claim_locks_guard:
            lock = self._claim_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._claim_locks[key] = lock
            return lock

    def _forget_claim_lock(self, duel_id: int, participant_id: str) -> None:
        """Drop the lock of a settled claim; the claimed flag refuses later attempts."""
        with self._claim_locks_guard:
            self._claim_locks.pop((duel_id, participant_id), None)

    def claim(self, duel_id: int, participant_id: str) -> Result[SettlementReceipt]:
        """
        Claim a winner's payout.

        Args:
            duel_id: Resolved duel to claim from
            participant_id: Winner claiming their payout

        Returns:
            Result with the SettlementReceipt. Fails with ALREADY_CLAIMED on a
            repeat claim, SETTLEMENT_FAILED if the transfer did not go through
            but may be retried, and SETTLEMENT_REJECTED if it was refused.
        """
        with self._claim_lock(duel_id, participant_id):
            try:
                reservation = self.duel_repo.reserve_claim(duel_id, participant_id)
            except LedgerError as e:
                if e.code == error_codes.ALREADY_CLAIMED:
                    self._forget_claim_lock(duel_id, participant_id)
                return Result.from_error(e)

            amount = reservation["payout_amount"]
            try:
                receipt = self.settlement_service.settle(duel_id, participant_id, amount)
            except SettlementError as e:
                self.duel_repo.release_claim(duel_id, participant_id)
                logger.warning(
                    f"Settlement failed for {participant_id} on duel {duel_id} "
                    f"(retryable={e.retryable}): {e}"
                )
                code = (
                    error_codes.SETTLEMENT_FAILED
                    if e.retryable
                    else error_codes.SETTLEMENT_REJECTED
                )
                return Result.fail(str(e), code=code)
            except Exception:
                self.duel_repo.release_claim(duel_id, participant_id)
                raise

            try:
                self.duel_repo.complete_claim(
                    duel_id,
                    participant_id,
                    transaction_signature=receipt.transaction_signature,
                    claimed_at=int(self._clock()),
                )
            except Exception:
                # Settlement replays the same receipt, so the claim can be retried
                logger.exception(
                    f"Settled {receipt.amount} for {participant_id} on duel {duel_id} "
                    f"(tx {receipt.transaction_signature}) but could not record the claim"
                )
                self.duel_repo.release_claim(duel_id, participant_id)
                raise

            self._forget_claim_lock(duel_id, participant_id)

        logger.info(
            f"Claimed {amount} for {participant_id} on duel {duel_id} "
            f"(tx {receipt.transaction_signature})"
        )
        return Result.ok(receipt)
