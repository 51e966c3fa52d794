"""
Repository layer for data access abstraction.
"""

from repositories.base_repository import BaseRepository
from repositories.duel_repository import DuelRepository
from repositories.interfaces import (
    IDuelRepository,
    IProbabilityRepository,
    ISettlementAccountRepository,
)
from repositories.probability_repository import ProbabilityRepository
from repositories.settlement_repository import SettlementAccountRepository
