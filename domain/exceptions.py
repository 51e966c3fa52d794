"""
Exceptions raised by the ledger's domain and repository layers.

Services catch these and convert them to Result failures; the `code`
attribute is one of the constants in domain.error_codes.
"""

from domain import error_codes


class LedgerError(ValueError):
    """An expected ledger failure carrying a machine-readable error code."""

    def __init__(self, message: str, code: str = error_codes.VALIDATION_ERROR):
        super().__init__(message)
        self.code = code

    @property
    def kind(self) -> str | None:
        return error_codes.kind_of(self.code)


class ConcurrencyConflict(LedgerError):
    """The duel record changed between load and save (version mismatch)."""

    def __init__(self, duel_id: int, expected_version: int):
        super().__init__(
            f"Duel {duel_id} was modified concurrently (expected version {expected_version}).",
            code=error_codes.VERSION_CONFLICT,
        )
        self.duel_id = duel_id
        self.expected_version = expected_version


class LedgerInvariantError(RuntimeError):
    """A ledger invariant was violated; this is a bug, not a caller error."""


class PayoutInvariantError(LedgerInvariantError):
    """Computed payouts do not redistribute exactly the whole pool."""
