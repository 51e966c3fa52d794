"""
Pytest fixtures for tests.

Performance optimization: Uses a session-scoped schema template so migrations
run once per session; each test copies the resulting database file instead of
re-initializing the schema.

Time is controlled through FakeClock: every service takes a `clock` callable,
so tests can move past deadlines without sleeping.
"""

import shutil

import pytest

from database import Database
from domain.services.payout_calculator import PayoutCalculator
from repositories.duel_repository import DuelRepository
from repositories.probability_repository import ProbabilityRepository
from repositories.settlement_repository import SettlementAccountRepository
from services.claim_service import ClaimService
from services.duel_ledger_service import DuelLedgerService
from services.probability_tracker_service import ProbabilityTrackerService
from services.settlement_service import BalanceSettlementService


# =============================================================================
# CENTRALIZED CONSTANTS
# =============================================================================

START_TIME = 1_700_000_000
"""Clock value every test starts at."""

CREATOR_ID = "creator"
"""Identity that creates duels in tests."""

DEFAULT_WINDOW = 3600
"""Seconds between duel creation and deadline in tests."""


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """A clock frozen at START_TIME until advanced."""
    return FakeClock()


@pytest.fixture(scope="session")
def _schema_template_path(tmp_path_factory):
    """
    Create a schema template database once per test session.

    All migrations run ONCE here. Tests copy from this template
    instead of running schema initialization each time.
    """
    template_dir = tmp_path_factory.mktemp("schema_template")
    template_path = str(template_dir / "template.db")
    Database(template_path)
    yield template_path


@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path (no schema)."""
    path = str(tmp_path / "temp.db")
    yield path


@pytest.fixture
def repo_db_path(_schema_template_path, tmp_path):
    """
    Create a temporary database with initialized schema for repository tests.

    Fast: file copy instead of schema initialization.
    """
    test_db_path = str(tmp_path / "test.db")
    shutil.copy2(_schema_template_path, test_db_path)
    yield test_db_path


@pytest.fixture
def duel_repository(repo_db_path):
    """Create a duel repository with temp database."""
    return DuelRepository(repo_db_path)


@pytest.fixture
def probability_repository(repo_db_path):
    """Create a probability history repository with temp database."""
    return ProbabilityRepository(repo_db_path)


@pytest.fixture
def settlement_account_repository(repo_db_path):
    """Create a settlement account repository with temp database."""
    return SettlementAccountRepository(repo_db_path)


@pytest.fixture
def probability_tracker(probability_repository, duel_repository, clock):
    """Probability tracker with 0.1pp throttling."""
    return ProbabilityTrackerService(
        probability_repo=probability_repository,
        duel_repo=duel_repository,
        epsilon=0.1,
        default_limit=100,
        default_window_hours=24,
        clock=clock,
    )


@pytest.fixture
def ledger_service(duel_repository, probability_tracker, clock):
    """Duel ledger service wired to the temp database and fake clock."""
    return DuelLedgerService(
        duel_repo=duel_repository,
        probability_tracker=probability_tracker,
        payout_calculator=PayoutCalculator(epsilon=1e-6),
        max_conflict_retries=3,
        min_stake=0.01,
        question_max_length=200,
        min_window_seconds=60,
        clock=clock,
    )


@pytest.fixture
def settlement_service(settlement_account_repository, clock):
    """Off-chain settlement crediting the temp database."""
    return BalanceSettlementService(settlement_account_repository, enabled=True, clock=clock)


@pytest.fixture
def claim_service(duel_repository, settlement_service, clock):
    """Claim service using the off-chain settlement."""
    return ClaimService(duel_repository, settlement_service, clock=clock)


@pytest.fixture
def open_duel(ledger_service, clock):
    """A freshly created pending duel with a one hour window."""
    result = ledger_service.create_duel(
        creator_id=CREATOR_ID,
        question="Will it rain tomorrow?",
        category="weather",
        creator_stake=1.0,
        deadline=int(clock()) + DEFAULT_WINDOW,
    )
    assert result.success, result.error
    return result.value
