"""
Domain models - pure data structures representing business entities.

Duel and ProbabilitySample depend on the pool arithmetic in domain.services,
so import them from their modules:
    from domain.models.duel import Duel
    from domain.models.probability import ProbabilitySample
"""

from domain.models.side import Side

__all__ = ["Side"]
