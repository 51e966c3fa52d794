"""
Domain services containing pure business logic.
"""

from domain.services.parimutuel_pool import ParimutuelPool
from domain.services.payout_calculator import Payout, PayoutCalculator, PayoutSummary

__all__ = ["ParimutuelPool", "Payout", "PayoutCalculator", "PayoutSummary"]
