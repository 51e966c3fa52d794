"""
Service for sampling duel odds into a charting history.

Odds change on every stake, so samples are throttled: a new point is only
recorded when either side's probability moved by more than epsilon
percentage points since the last recorded point.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from typing import Callable

import config
from domain import error_codes
from domain.models.probability import ProbabilitySample
from domain.models.side import Side
from domain.services.parimutuel_pool import ParimutuelPool
from repositories.interfaces import IDuelRepository, IProbabilityRepository
from services.interfaces import IProbabilityTracker
from services.result import Result

logger = logging.getLogger("duel_ledger.probability")


class ProbabilityHistory:
    """
    Lazy view over a duel's probability history.

    Nothing is read until iteration starts, and each iteration re-runs the
    query, so the same object can be iterated again to get a fresh view.
    After the stored samples it yields one synthetic live sample when the
    current odds differ from the last stored one by more than epsilon.
    """

    def __init__(
        self,
        duel_id: int,
        since: int,
        limit: int,
        probability_repo: IProbabilityRepository,
        duel_repo: IDuelRepository,
        epsilon: float,
        clock: Callable[[], float],
    ):
        self.duel_id = duel_id
        self.since = since
        self.limit = limit
        self.probability_repo = probability_repo
        self.duel_repo = duel_repo
        self.epsilon = epsilon
        self._clock = clock

    def __iter__(self) -> Iterator[ProbabilitySample]:
        last = None
        for sample in self.probability_repo.iter_samples(self.duel_id, self.since, self.limit):
            last = sample
            yield sample

        live = self.live_sample()
        if live is not None and live.differs_from(last, self.epsilon):
            yield live

    def live_sample(self) -> ProbabilitySample | None:
        """Current odds as a sample, or None if the duel no longer exists."""
        duel = self.duel_repo.get_duel(self.duel_id)
        if duel is None:
            return None
        return ProbabilitySample.from_pool(
            duel_id=self.duel_id,
            timestamp=int(self._clock()),
            pool=duel.pool,
            yes_count=duel.side_count(Side.YES),
            no_count=duel.side_count(Side.NO),
            is_live=True,
        )

    def to_dict(self) -> dict:
        """Response body in the shape the existing client charts from."""
        points = list(self)
        live = self.live_sample()
        return {
            "history": [p.to_dict() for p in points],
            "current": live.to_dict() if live else None,
        }


class ProbabilityTrackerService(IProbabilityTracker):
    """
    Records and serves odds history.

    Samples are append-only; ordering within a duel is by timestamp, with
    insertion order breaking ties.
    """

    def __init__(
        self,
        probability_repo: IProbabilityRepository,
        duel_repo: IDuelRepository,
        epsilon: float | None = None,
        default_limit: int | None = None,
        default_window_hours: int | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.probability_repo = probability_repo
        self.duel_repo = duel_repo
        self.epsilon = epsilon if epsilon is not None else config.PROBABILITY_SAMPLE_EPSILON
        self.default_limit = (
            default_limit if default_limit is not None else config.PROBABILITY_HISTORY_LIMIT
        )
        self.default_window_hours = (
            default_window_hours
            if default_window_hours is not None
            else config.PROBABILITY_HISTORY_HOURS
        )
        self._clock = clock or time.time

    def maybe_sample(
        self,
        duel_id: int,
        yes_total: float,
        no_total: float,
        now: int,
        yes_count: int = 0,
        no_count: int = 0,
    ) -> ProbabilitySample | None:
        """
        Record a sample if this is the first one or the odds moved enough.

        Returns:
            The recorded sample, or None if it was throttled
        """
        candidate = ProbabilitySample.from_pool(
            duel_id=duel_id,
            timestamp=now,
            pool=ParimutuelPool(yes_total=yes_total, no_total=no_total),
            yes_count=yes_count,
            no_count=no_count,
        )
        last = self.probability_repo.get_latest_sample(duel_id)
        if not candidate.differs_from(last, self.epsilon):
            logger.debug(f"Skipping probability sample for duel {duel_id}: odds unchanged")
            return None

        self.probability_repo.add_sample(candidate)
        logger.debug(
            f"Recorded probability sample for duel {duel_id}: "
            f"yes={candidate.yes_probability_pct:.2f} no={candidate.no_probability_pct:.2f}"
        )
        return candidate

    def history(
        self, duel_id: int, since: int | None = None, limit: int | None = None
    ) -> Result[ProbabilityHistory]:
        """
        Get the odds history for a duel.

        Args:
            duel_id: Duel to query
            since: Earliest timestamp to include (defaults to the configured window)
            limit: Maximum stored samples to return (the live point is extra)
        """
        if self.duel_repo.get_duel(duel_id) is None:
            return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)

        if limit is None:
            limit = self.default_limit
        if limit <= 0:
            return Result.fail("Limit must be positive.", code=error_codes.VALIDATION_ERROR)
        if since is None:
            since = int(self._clock()) - self.default_window_hours * 3600

        return Result.ok(
            ProbabilityHistory(
                duel_id=duel_id,
                since=since,
                limit=limit,
                probability_repo=self.probability_repo,
                duel_repo=self.duel_repo,
                epsilon=self.epsilon,
                clock=self._clock,
            )
        )
