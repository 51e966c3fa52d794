"""
Handles duel lifecycle and stake accounting.

Thread Safety:
    Every mutating operation holds a per-duel lock for its whole
    load-mutate-save cycle, and the save itself is a compare-and-swap on the
    duel's version. The lock serializes writers in this process; the version
    check catches writers in other processes, and those conflicts are
    retried a bounded number of times. Operations on different duels never
    share a lock.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Generator

import config
from domain import error_codes
from domain.exceptions import ConcurrencyConflict, LedgerError
from domain.models.duel import DUEL_TYPES, Duel, DuelStatus, normalize_category
from domain.models.side import Side
from domain.services.parimutuel_pool import is_valid_amount
from domain.services.payout_calculator import Payout, PayoutCalculator
from repositories.interfaces import IDuelRepository
from services.interfaces import IDuelLedgerService, IProbabilityTracker
from services.result import Result

logger = logging.getLogger("duel_ledger.ledger")


@dataclass
class StakeReceipt:
    """Outcome of an accepted stake, with the pool state right after it."""

    duel_id: int
    participant_id: str
    side: Side
    amount: float
    position_total: float
    pool_total: float
    yes_total: float
    no_total: float
    yes_probability: float
    no_probability: float
    status: DuelStatus
    replayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.duel_id,
            "prediction": self.side.value,
            "stake": self.amount,
            "positionTotal": self.position_total,
            "poolSize": self.pool_total,
            "yesProbability": self.yes_probability,
            "noProbability": self.no_probability,
            "status": self.status.value,
        }


@dataclass
class ResolutionResult:
    """Settlement summary produced when a duel is resolved."""

    duel_id: int
    outcome: Side
    resolved_by: str
    total_pool: float
    winning_stake: float
    winners: list[Payout] = field(default_factory=list)
    losers: list[Payout] = field(default_factory=list)

    @property
    def is_degenerate(self) -> bool:
        """Nobody backed the winning side; nothing is claimable."""
        return self.winning_stake <= 0


@dataclass
class _Mutation:
    """What an operation did to a loaded duel."""

    value: Any = None
    save: bool = True
    stake_request: dict | None = None


class DuelLedgerService(IDuelLedgerService):
    """
    Encapsulates duel ledger operations:
    - Creating, editing, cancelling and deleting duels
    - Placing stakes (with optional idempotency tokens)
    - Resolution and payout computation
    - Read models: quotes, listings, positions, resolution summaries
    """

    def __init__(
        self,
        duel_repo: IDuelRepository,
        probability_tracker: IProbabilityTracker | None = None,
        payout_calculator: PayoutCalculator | None = None,
        max_conflict_retries: int | None = None,
        min_stake: float | None = None,
        question_max_length: int | None = None,
        min_window_seconds: int | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.duel_repo = duel_repo
        self.probability_tracker = probability_tracker
        self.payout_calculator = payout_calculator or PayoutCalculator(
            epsilon=config.PAYOUT_CONSERVATION_EPSILON
        )
        self.max_conflict_retries = (
            max_conflict_retries
            if max_conflict_retries is not None
            else config.LEDGER_MAX_CONFLICT_RETRIES
        )
        self.min_stake = min_stake if min_stake is not None else config.DUEL_MIN_STAKE
        self.question_max_length = (
            question_max_length
            if question_max_length is not None
            else config.DUEL_QUESTION_MAX_LENGTH
        )
        self.min_window_seconds = (
            min_window_seconds
            if min_window_seconds is not None
            else config.DUEL_MIN_WINDOW_SECONDS
        )
        self._clock = clock or time.time

        self._duel_locks: dict[int, threading.Lock] = {}
        self._duel_locks_guard = threading.Lock()

    def _now(self) -> int:
        return int(self._clock())

    # --- Concurrency helpers ---

    @contextmanager
    def _duel_lock(self, duel_id: int) -> Generator[None, None, None]:
        """Hold the lock for one duel; other duels are unaffected."""
        with self._duel_locks_guard:
            lock = self._duel_locks.get(duel_id)
            if lock is None:
                lock = threading.Lock()
                self._duel_locks[duel_id] = lock
        with lock:
            yield

    def _forget_duel_lock(self, duel_id: int) -> None:
        """Drop the lock of a duel that no longer accepts mutations."""
        with self._duel_locks_guard:
            self._duel_locks.pop(duel_id, None)

    def _apply(
        self,
        duel_id: int,
        operation: Callable[[Duel], _Mutation],
        after_commit: Callable[[Duel], None] | None = None,
    ) -> tuple[Duel, Any]:
        """
        Load, mutate and save a duel under its lock, retrying version conflicts.

        `operation` receives a freshly loaded duel on every attempt and may
        raise LedgerError to abort without writing anything. The lock is
        dropped once the duel is missing or terminal.
        """
        with self._duel_lock(duel_id):
            for attempt in range(self.max_conflict_retries + 1):
                duel = self.duel_repo.get_duel(duel_id)
                if duel is None:
                    self._forget_duel_lock(duel_id)
                    raise LedgerError("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
                if duel.status.is_terminal:
                    self._forget_duel_lock(duel_id)

                mutation = operation(duel)
                if not mutation.save:
                    return duel, mutation.value

                try:
                    self.duel_repo.save_duel(duel, stake_request=mutation.stake_request)
                except ConcurrencyConflict:
                    logger.warning(
                        f"Version conflict on duel {duel_id} "
                        f"(attempt {attempt + 1}/{self.max_conflict_retries + 1})"
                    )
                    continue

                if duel.status.is_terminal:
                    self._forget_duel_lock(duel_id)
                if after_commit is not None:
                    after_commit(duel)
                return duel, mutation.value

        raise LedgerError(
            f"Duel {duel_id} is busy, please retry.", code=error_codes.VERSION_CONFLICT
        )

    # --- Creation and reads ---

    def create_duel(
        self,
        creator_id: str,
        question: str,
        category: str,
        creator_stake: float,
        deadline: int,
        duel_type: str = "public",
    ) -> Result[Duel]:
        """
        Create a new duel in the pending state.

        Args:
            creator_id: Identity of the proposer (may not bet on it)
            question: What is being predicted
            category: Category from the client form (unknown values map to Other)
            creator_stake: The creator's opening stake
            deadline: Unix timestamp when staking closes
            duel_type: "public" pool or "friend" challenge

        Returns:
            Result with the created Duel
        """
        if not creator_id:
            return Result.fail("Creator is required.", code=error_codes.VALIDATION_ERROR)
        question = (question or "").strip()
        if not question:
            return Result.fail("Question is required.", code=error_codes.VALIDATION_ERROR)
        if len(question) > self.question_max_length:
            return Result.fail(
                f"Question must be at most {self.question_max_length} characters.",
                code=error_codes.VALIDATION_ERROR,
            )
        if not is_valid_amount(creator_stake) or creator_stake < self.min_stake:
            return Result.fail(
                f"Stake must be at least {self.min_stake}.", code=error_codes.INVALID_AMOUNT
            )
        if duel_type not in DUEL_TYPES:
            return Result.fail(
                f"Invalid duel type: {duel_type}", code=error_codes.VALIDATION_ERROR
            )

        now = self._now()
        if deadline <= now:
            return Result.fail(
                "Deadline must be in the future.", code=error_codes.VALIDATION_ERROR
            )
        if deadline - now < self.min_window_seconds:
            return Result.fail(
                f"Betting window must be at least {self.min_window_seconds} seconds.",
                code=error_codes.VALIDATION_ERROR,
            )

        duel_id = self.duel_repo.create_duel(
            creator_id=creator_id,
            question=question,
            category=normalize_category(category),
            duel_type=duel_type,
            creator_stake=creator_stake,
            deadline=deadline,
            created_at=now,
        )
        logger.info(f"Duel {duel_id} created by {creator_id} (deadline {deadline})")
        return Result.ok(self.duel_repo.get_duel(duel_id))

    def get_duel(self, duel_id: int) -> Result[Duel]:
        duel = self.duel_repo.get_duel(duel_id)
        if duel is None:
            return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
        return Result.ok(duel)

    def get_quote(
        self, duel_id: int, side: str | None = None, amount: float | None = None
    ) -> Result[dict]:
        """
        Live odds for a duel without changing it.

        With side and amount, also returns the odds the pool would show after
        that stake.
        """
        duel = self.duel_repo.get_duel(duel_id)
        if duel is None:
            return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)

        pool = duel.pool
        yes_pct, no_pct = pool.odds()
        quote = {
            "duel_id": duel_id,
            "yes_total": pool.yes_total,
            "no_total": pool.no_total,
            "total_pool": pool.total,
            "yes_probability": yes_pct,
            "no_probability": no_pct,
            "multipliers": pool.multipliers(),
        }

        if side is not None and amount is not None:
            try:
                after = pool.with_stake(Side.parse(side), amount)
            except LedgerError as e:
                return Result.from_error(e)
            after_yes, after_no = after.odds()
            quote["after_stake"] = {
                "yes_probability": after_yes,
                "no_probability": after_no,
                "multipliers": after.multipliers(),
            }
        return Result.ok(quote)

    def list_duels(
        self, status: str = "active", category: str | None = None, limit: int = 50
    ) -> Result[list[Duel]]:
        """
        List duels by status filter.

        "active" means pending or active with the deadline still ahead;
        "all" disables status filtering; anything else must be a lifecycle state.
        """
        deadline_after = None
        if status == "all":
            statuses = None
        elif status == "active":
            statuses = [DuelStatus.PENDING.value, DuelStatus.ACTIVE.value]
            deadline_after = self._now()
        else:
            try:
                statuses = [DuelStatus(status).value]
            except ValueError:
                return Result.fail(
                    f"Invalid status filter: {status}", code=error_codes.VALIDATION_ERROR
                )

        duels = self.duel_repo.list_duels(
            statuses=statuses,
            category=normalize_category(category) if category else None,
            deadline_after=deadline_after,
            limit=limit,
        )
        return Result.ok(duels)

    def get_participant_positions(self, participant_id: str, limit: int = 50) -> list[dict]:
        """A participant's positions across duels, with claimable flags."""
        return self.duel_repo.get_participant_positions(participant_id, limit)

    def get_resolution_summary(self, duel_id: int) -> Result[dict]:
        """Winners (with profit) and losers of a resolved duel."""
        duel = self.duel_repo.get_duel(duel_id)
        if duel is None:
            return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
        if duel.status is not DuelStatus.RESOLVED:
            return Result.fail(
                "Duel has not been resolved.", code=error_codes.DUEL_NOT_RESOLVED
            )

        winners = []
        losers = []
        for p in duel.participants.values():
            if p.is_winner:
                winners.append({
                    "participant_id": p.participant_id,
                    "stake": p.stake_amount,
                    "payout": p.payout_amount,
                    "profit": p.profit,
                    "claimed": p.claimed,
                })
            else:
                losers.append({
                    "participant_id": p.participant_id,
                    "stake": p.stake_amount,
                })

        return Result.ok({
            "duel_id": duel_id,
            "outcome": duel.outcome.value,
            "winners": winners,
            "losers": losers,
            "winner_count": len(winners),
            "loser_count": len(losers),
            "total_pool": duel.pool_total,
        })

    # --- Mutations ---

    def place_stake(
        self,
        duel_id: int,
        participant_id: str,
        side: str,
        amount: float,
        request_token: str | None = None,
    ) -> Result[StakeReceipt]:
        """
        Place a stake on a duel.

        Repeat stakes on the same side accumulate; switching sides is refused.
        When request_token is given, retrying the same request is a no-op that
        returns the current position.

        Args:
            duel_id: Duel to stake on
            participant_id: Identity of the bettor
            side: "yes" or "no"
            amount: Amount to add to the position
            request_token: Optional idempotency token from the caller

        Returns:
            Result with a StakeReceipt describing the pool after the stake
        """

        def operation(duel: Duel) -> _Mutation:
            now = self._now()
            if request_token:
                applied = self.duel_repo.get_stake_request(duel.duel_id, request_token)
                if applied is not None:
                    if (
                        applied["participant_id"] != participant_id
                        or applied["side"] != Side.parse(side).value
                        or applied["amount"] != amount
                    ):
                        raise LedgerError(
                            "Request token was already used for a different stake.",
                            code=error_codes.IDEMPOTENCY_MISMATCH,
                        )
                    return _Mutation(value=True, save=False)

            position = duel.place_stake(participant_id, side, amount, now)
            stake_request = None
            if request_token:
                stake_request = {
                    "request_token": request_token,
                    "participant_id": participant_id,
                    "side": position.side.value,
                    "amount": amount,
                }
            return _Mutation(value=False, stake_request=stake_request)

        def after_commit(duel: Duel) -> None:
            self._offer_sample(duel)

        try:
            duel, replayed = self._apply(duel_id, operation, after_commit=after_commit)
        except LedgerError as e:
            return Result.from_error(e)

        position = duel.get_participant(participant_id)
        if replayed:
            logger.info(f"Replayed stake request {request_token} on duel {duel_id}")
        else:
            logger.info(
                f"Stake placed on duel {duel_id}: {participant_id} "
                f"{position.side.value} {amount} (pool {duel.pool_total})"
            )

        pool = duel.pool
        yes_pct, no_pct = pool.odds()
        return Result.ok(
            StakeReceipt(
                duel_id=duel_id,
                participant_id=participant_id,
                side=position.side,
                amount=amount,
                position_total=position.stake_amount,
                pool_total=pool.total,
                yes_total=pool.yes_total,
                no_total=pool.no_total,
                yes_probability=yes_pct,
                no_probability=no_pct,
                status=duel.status,
                replayed=replayed,
            )
        )

    def _offer_sample(self, duel: Duel) -> None:
        """Offer the committed pool state to the probability tracker."""
        if self.probability_tracker is None:
            return
        pool = duel.pool
        try:
            self.probability_tracker.maybe_sample(
                duel_id=duel.duel_id,
                yes_total=pool.yes_total,
                no_total=pool.no_total,
                now=duel.updated_at,
                yes_count=duel.side_count(Side.YES),
                no_count=duel.side_count(Side.NO),
            )
        except sqlite3.Error:
            # The stake is already committed at this point
            logger.exception(f"Failed to record probability sample for duel {duel.duel_id}")

    def resolve(self, duel_id: int, caller_id: str, outcome: str) -> Result[ResolutionResult]:
        """
        Resolve a duel and compute every participant's payout.

        Only the creator may resolve, and only once the deadline has passed.
        The payout snapshot and the resolved state are written in the same
        versioned save, so no stake can slip in between.
        """

        def operation(duel: Duel) -> _Mutation:
            summary = duel.resolve(caller_id, outcome, self._now(), self.payout_calculator)
            return _Mutation(value=summary)

        try:
            duel, summary = self._apply(duel_id, operation)
        except LedgerError as e:
            return Result.from_error(e)
        if summary.is_degenerate:
            logger.warning(
                f"Duel {duel_id} resolved {summary.winning_side.value} with no stake on "
                f"that side; no payouts (pool {summary.total_pool})"
            )
        else:
            logger.info(
                f"Duel {duel_id} resolved {summary.winning_side.value}: "
                f"{len(summary.winners)} winners share {summary.total_pool}"
            )

        return Result.ok(
            ResolutionResult(
                duel_id=duel_id,
                outcome=summary.winning_side,
                resolved_by=caller_id,
                total_pool=summary.total_pool,
                winning_stake=summary.winning_stake,
                winners=summary.winners,
                losers=summary.losers,
            )
        )

    def cancel(self, duel_id: int, caller_id: str) -> Result[Duel]:
        """Cancel a duel that nobody has staked on (creator only)."""

        def operation(duel: Duel) -> _Mutation:
            duel.cancel(caller_id, self._now())
            return _Mutation()

        try:
            duel, _ = self._apply(duel_id, operation)
        except LedgerError as e:
            return Result.from_error(e)

        logger.info(f"Duel {duel_id} cancelled by {caller_id}")
        return Result.ok(duel)

    def update_duel(
        self,
        duel_id: int,
        caller_id: str,
        question: str | None = None,
        deadline: int | None = None,
    ) -> Result[Duel]:
        """Edit the question or deadline of a duel nobody has staked on."""
        if question is not None and len(question.strip()) > self.question_max_length:
            return Result.fail(
                f"Question must be at most {self.question_max_length} characters.",
                code=error_codes.VALIDATION_ERROR,
            )

        def operation(duel: Duel) -> _Mutation:
            duel.update_terms(caller_id, self._now(), question=question, deadline=deadline)
            return _Mutation()

        try:
            duel, _ = self._apply(duel_id, operation)
        except LedgerError as e:
            return Result.from_error(e)

        logger.info(f"Duel {duel_id} updated by {caller_id}")
        return Result.ok(duel)

    def delete_duel(self, duel_id: int, caller_id: str) -> Result[None]:
        """Delete a duel nobody has staked on (creator only)."""
        with self._duel_lock(duel_id):
            duel = self.duel_repo.get_duel(duel_id)
            if duel is None:
                self._forget_duel_lock(duel_id)
                return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
            try:
                duel.ensure_editable(caller_id)
                self.duel_repo.delete_duel(duel_id, duel.version)
            except LedgerError as e:
                return Result.from_error(e)

        self._forget_duel_lock(duel_id)
        logger.info(f"Duel {duel_id} deleted by {caller_id}")
        return Result.ok()
