"""
Result type for consistent error handling across ledger services.

Services return Result[T] instead of raising for expected failures (bad
input, illegal lifecycle transitions, conflicts, settlement failures) so the
transport layer can map error codes to responses without catching exceptions.

Usage:
    # Returning success
    return Result.ok(position)   # Result with value
    return Result.ok()           # Result without value (for void operations)

    # Returning failure
    return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)
    return Result.from_error(ledger_error)

    # Checking results
    if result.success:
        print(result.value)
    else:
        print(f"Error ({result.error_code}, {result.kind}): {result.error}")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from domain import error_codes

if TYPE_CHECKING:
    from domain.exceptions import LedgerError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    A simple result type for service method return values.

    Attributes:
        success: Whether the operation succeeded
        value: The return value if successful (None if failed or void operation)
        error: Error message if failed (None if successful)
        error_code: Error code from domain.error_codes for programmatic handling
    """

    success: bool
    value: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> Result[T]:
        """Create a successful result with an optional value."""
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: str | None = None) -> Result[T]:
        """Create a failed result with an error message and optional error code."""
        return cls(success=False, error=error, error_code=code)

    @classmethod
    def from_error(cls, exc: LedgerError) -> Result[T]:
        """Create a failed result from a ledger error, keeping its message and code."""
        return cls.fail(str(exc), code=exc.code)

    @property
    def kind(self) -> str | None:
        """Error kind (not_found, conflict, ...) of a failed result."""
        return error_codes.kind_of(self.error_code)

    def __bool__(self) -> bool:
        """Allow using Result in boolean context: if result: ..."""
        return self.success

    def unwrap(self) -> T:
        """
        Get the value, raising ValueError if the result is a failure.

        Raises:
            ValueError: If the result is a failure
        """
        if not self.success:
            raise ValueError(f"Cannot unwrap failed result: {self.error}")
        return self.value  # type: ignore

    def unwrap_or(self, default: T) -> T:
        """Get the value or a default if the result is a failure."""
        return self.value if self.success else default  # type: ignore

    def map(self, fn: Callable[[T], Result]) -> Result:
        """
        Chain operations on successful results.

        If this result is successful, applies fn to the value and returns its result.
        If this result is a failure, returns this failure unchanged.
        """
        if not self.success:
            return self
        return fn(self.value)
