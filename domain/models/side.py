"""
Binary outcome side shared by stakes, outcomes and odds.
"""

from __future__ import annotations

from enum import Enum

from domain import error_codes
from domain.exceptions import LedgerError


class Side(Enum):
    """The two outcomes of a duel."""

    YES = "yes"
    NO = "no"

    @property
    def opposite(self) -> Side:
        return Side.NO if self is Side.YES else Side.YES

    @classmethod
    def parse(cls, value: Side | str) -> Side:
        """Accept a Side or a case-insensitive 'yes'/'no' string."""
        if isinstance(value, Side):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for side in cls:
                if side.value == normalized:
                    return side
        raise LedgerError(
            'Prediction must be "yes" or "no".',
            code=error_codes.INVALID_SIDE,
        )
