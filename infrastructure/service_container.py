"""
Service container for dependency injection and initialization.

This module centralizes repository and service creation and wiring so the
transport layer only has to build one object.

Usage:
    container = ServiceContainer(ServiceConfig(db_path="duel_ledger.db"))
    container.initialize()

    # Access services
    ledger = container.duel_ledger_service
    claims = container.claim_service
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

import config as app_config

if TYPE_CHECKING:
    from services.claim_service import ClaimService
    from services.duel_ledger_service import DuelLedgerService
    from services.probability_tracker_service import ProbabilityTrackerService
    from services.settlement_service import BalanceSettlementService

from database import Database
from domain.services.payout_calculator import PayoutCalculator

# Repositories
from repositories.duel_repository import DuelRepository
from repositories.probability_repository import ProbabilityRepository
from repositories.settlement_repository import SettlementAccountRepository

logger = logging.getLogger("duel_ledger.infrastructure.container")


@dataclass
class RepositoryContainer:
    """Container for all repositories."""

    duel: DuelRepository | None = None
    probability: ProbabilityRepository | None = None
    settlement_account: SettlementAccountRepository | None = None


@dataclass
class ServiceConfig:
    """Configuration for service initialization (defaults come from config.py)."""

    # Database
    db_path: str = app_config.DB_PATH

    # Duel creation rules
    min_stake: float = app_config.DUEL_MIN_STAKE
    question_max_length: int = app_config.DUEL_QUESTION_MAX_LENGTH
    min_window_seconds: int = app_config.DUEL_MIN_WINDOW_SECONDS

    # Concurrency
    max_conflict_retries: int = app_config.LEDGER_MAX_CONFLICT_RETRIES

    # Probability history
    probability_epsilon: float = app_config.PROBABILITY_SAMPLE_EPSILON
    history_limit: int = app_config.PROBABILITY_HISTORY_LIMIT
    history_hours: int = app_config.PROBABILITY_HISTORY_HOURS

    # Settlement
    settlement_enabled: bool = app_config.SETTLEMENT_ENABLED
    payout_epsilon: float = app_config.PAYOUT_CONSERVATION_EPSILON


class ServiceContainer:
    """
    Central container for all ledger services.

    Handles proper initialization order and dependency injection.

    Example:
        container = ServiceContainer(config)
        container.initialize()

        # Services are now available
        ledger = container.duel_ledger_service
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initialize the container with configuration.

        Args:
            config: Service configuration (uses defaults if None)
            clock: Time source shared by every service (defaults to time.time)
        """
        self.config = config or ServiceConfig()
        self.clock = clock or time.time
        self._initialized = False
        self._repos = RepositoryContainer()

        self._database: Database | None = None
        self._services: dict[str, Any] = {}

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized

    def initialize(self) -> None:
        """
        Initialize all services in correct order.

        This method is idempotent - calling it multiple times has no effect.
        """
        if self._initialized:
            logger.debug("ServiceContainer already initialized, skipping")
            return

        logger.info("Initializing ServiceContainer...")

        self._init_database()
        self._init_repositories()
        self._init_services()

        self._initialized = True
        logger.info("ServiceContainer initialization complete")

    def _init_database(self) -> None:
        """Initialize database and run migrations."""
        logger.debug(f"Initializing database at {self.config.db_path}")
        self._database = Database(self.config.db_path)

    def _init_repositories(self) -> None:
        """Initialize all repositories."""
        logger.debug("Initializing repositories")

        db_path = self.config.db_path
        self._repos.duel = DuelRepository(db_path)
        self._repos.probability = ProbabilityRepository(db_path)
        self._repos.settlement_account = SettlementAccountRepository(db_path)

    def _init_services(self) -> None:
        """Initialize services in dependency order."""
        logger.debug("Initializing services")

        from services.claim_service import ClaimService
        from services.duel_ledger_service import DuelLedgerService
        from services.probability_tracker_service import ProbabilityTrackerService
        from services.settlement_service import BalanceSettlementService

        self._services["probability_tracker"] = ProbabilityTrackerService(
            probability_repo=self._repos.probability,
            duel_repo=self._repos.duel,
            epsilon=self.config.probability_epsilon,
            default_limit=self.config.history_limit,
            default_window_hours=self.config.history_hours,
            clock=self.clock,
        )

        self._services["duel_ledger"] = DuelLedgerService(
            duel_repo=self._repos.duel,
            probability_tracker=self._services["probability_tracker"],
            payout_calculator=PayoutCalculator(epsilon=self.config.payout_epsilon),
            max_conflict_retries=self.config.max_conflict_retries,
            min_stake=self.config.min_stake,
            question_max_length=self.config.question_max_length,
            min_window_seconds=self.config.min_window_seconds,
            clock=self.clock,
        )

        self._services["settlement"] = BalanceSettlementService(
            account_repo=self._repos.settlement_account,
            enabled=self.config.settlement_enabled,
            clock=self.clock,
        )

        self._services["claim"] = ClaimService(
            duel_repo=self._repos.duel,
            settlement_service=self._services["settlement"],
            clock=self.clock,
        )

    # =========================================================================
    # Service accessors
    # =========================================================================

    @property
    def duel_repo(self) -> DuelRepository:
        """Get duel repository."""
        return self._repos.duel

    @property
    def probability_repo(self) -> ProbabilityRepository:
        """Get probability history repository."""
        return self._repos.probability

    @property
    def settlement_account_repo(self) -> SettlementAccountRepository:
        """Get settlement account repository."""
        return self._repos.settlement_account

    @property
    def duel_ledger_service(self) -> "DuelLedgerService | None":
        """Get duel ledger service."""
        return self._services.get("duel_ledger")

    @property
    def probability_tracker(self) -> "ProbabilityTrackerService | None":
        """Get probability tracker service."""
        return self._services.get("probability_tracker")

    @property
    def settlement_service(self) -> "BalanceSettlementService | None":
        """Get settlement service."""
        return self._services.get("settlement")

    @property
    def claim_service(self) -> "ClaimService | None":
        """Get claim service."""
        return self._services.get("claim")
