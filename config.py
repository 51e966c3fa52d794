"""
Centralized configuration for the duel ledger.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _parse_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_float(env_var: str, default: float) -> float:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _parse_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


DB_PATH = os.getenv("DB_PATH", "duel_ledger.db")
DB_BUSY_TIMEOUT_MS = _parse_int("DB_BUSY_TIMEOUT_MS", 5000)  # Wait for the sqlite write lock

# Duel creation rules
DUEL_MIN_STAKE = _parse_float("DUEL_MIN_STAKE", 0.01)  # Creator's opening stake floor
DUEL_QUESTION_MAX_LENGTH = _parse_int("DUEL_QUESTION_MAX_LENGTH", 200)
DUEL_MIN_WINDOW_SECONDS = _parse_int("DUEL_MIN_WINDOW_SECONDS", 60)  # Minimum 1 minute betting window

# Ledger concurrency
LEDGER_MAX_CONFLICT_RETRIES = _parse_int("LEDGER_MAX_CONFLICT_RETRIES", 3)

# Probability history
PROBABILITY_SAMPLE_EPSILON = _parse_float("PROBABILITY_SAMPLE_EPSILON", 0.1)  # Percentage points
PROBABILITY_HISTORY_LIMIT = _parse_int("PROBABILITY_HISTORY_LIMIT", 100)
PROBABILITY_HISTORY_HOURS = _parse_int("PROBABILITY_HISTORY_HOURS", 24)

# Settlement
SETTLEMENT_ENABLED = _parse_bool("SETTLEMENT_ENABLED", True)
# Payout tolerance when checking that winners receive the whole pool
PAYOUT_CONSERVATION_EPSILON = _parse_float("PAYOUT_CONSERVATION_EPSILON", 1e-6)
