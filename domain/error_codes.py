"""
Standard error codes for the ledger.

These error codes allow callers to programmatically handle specific error
conditions without parsing error message text. Every code belongs to exactly
one error kind; use kind_of() to get it.

Usage:
    from domain import error_codes
    from services.result import Result

    if duel is None:
        return Result.fail("Duel not found.", code=error_codes.DUEL_NOT_FOUND)

    if error_codes.kind_of(result.error_code) == error_codes.KIND_CONFLICT:
        ...
"""

# Error kinds
KIND_NOT_FOUND = "not_found"
KIND_INVALID_INPUT = "invalid_input"
KIND_ILLEGAL_TRANSITION = "illegal_transition"
KIND_UNAUTHORIZED = "unauthorized"
KIND_CONFLICT = "conflict"
KIND_SETTLEMENT_FAILURE = "settlement_failure"

# Lookup errors
DUEL_NOT_FOUND = "duel_not_found"
PARTICIPANT_NOT_FOUND = "participant_not_found"

# Input errors
INVALID_AMOUNT = "invalid_amount"
INVALID_SIDE = "invalid_side"
VALIDATION_ERROR = "validation_error"

# Lifecycle errors
DEADLINE_PASSED = "deadline_passed"
DUEL_NOT_ACCEPTING_STAKES = "duel_not_accepting_stakes"
RESOLUTION_TOO_EARLY = "resolution_too_early"
ALREADY_RESOLVED = "already_resolved"
ALREADY_CANCELLED = "already_cancelled"
TERMINAL_STATE = "terminal_state"
HAS_PARTICIPANTS = "has_participants"
DUEL_NOT_RESOLVED = "duel_not_resolved"
NOT_A_WINNER = "not_a_winner"

# Permission errors
UNAUTHORIZED = "unauthorized"
SELF_STAKE_FORBIDDEN = "self_stake_forbidden"

# Conflict errors
SIDE_ALREADY_CHOSEN = "side_already_chosen"
VERSION_CONFLICT = "version_conflict"
IDEMPOTENCY_MISMATCH = "idempotency_mismatch"
ALREADY_CLAIMED = "already_claimed"
CLAIM_IN_PROGRESS = "claim_in_progress"

# Settlement errors
SETTLEMENT_FAILED = "settlement_failed"  # Transient, the claim can be retried
SETTLEMENT_REJECTED = "settlement_rejected"  # Refused by the settlement system

ERROR_KINDS: dict[str, str] = {
    DUEL_NOT_FOUND: KIND_NOT_FOUND,
    PARTICIPANT_NOT_FOUND: KIND_NOT_FOUND,
    INVALID_AMOUNT: KIND_INVALID_INPUT,
    INVALID_SIDE: KIND_INVALID_INPUT,
    VALIDATION_ERROR: KIND_INVALID_INPUT,
    DEADLINE_PASSED: KIND_ILLEGAL_TRANSITION,
    DUEL_NOT_ACCEPTING_STAKES: KIND_ILLEGAL_TRANSITION,
    RESOLUTION_TOO_EARLY: KIND_ILLEGAL_TRANSITION,
    ALREADY_RESOLVED: KIND_ILLEGAL_TRANSITION,
    ALREADY_CANCELLED: KIND_ILLEGAL_TRANSITION,
    TERMINAL_STATE: KIND_ILLEGAL_TRANSITION,
    HAS_PARTICIPANTS: KIND_ILLEGAL_TRANSITION,
    DUEL_NOT_RESOLVED: KIND_ILLEGAL_TRANSITION,
    NOT_A_WINNER: KIND_ILLEGAL_TRANSITION,
    UNAUTHORIZED: KIND_UNAUTHORIZED,
    SELF_STAKE_FORBIDDEN: KIND_UNAUTHORIZED,
    SIDE_ALREADY_CHOSEN: KIND_CONFLICT,
    VERSION_CONFLICT: KIND_CONFLICT,
    IDEMPOTENCY_MISMATCH: KIND_CONFLICT,
    ALREADY_CLAIMED: KIND_CONFLICT,
    CLAIM_IN_PROGRESS: KIND_CONFLICT,
    SETTLEMENT_FAILED: KIND_SETTLEMENT_FAILURE,
    SETTLEMENT_REJECTED: KIND_SETTLEMENT_FAILURE,
}


def kind_of(code: str | None) -> str | None:
    """Return the error kind for a code, or None for unknown codes."""
    if code is None:
        return None
    return ERROR_KINDS.get(code)
