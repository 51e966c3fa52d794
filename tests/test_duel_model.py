"""
Tests for the Duel state machine (no database).
"""

import math

import pytest

from domain import error_codes
from domain.exceptions import LedgerError
from domain.models.duel import ClaimStatus, Duel, DuelStatus, normalize_category
from domain.models.side import Side

NOW = 1_000
DEADLINE = 2_000


def _duel(**overrides):
    fields = dict(duel_id=1, creator_id="creator", question="Q?", deadline=DEADLINE)
    fields.update(overrides)
    return Duel(**fields)


class TestPlaceStake:
    """Stake acceptance and the pending -> active transition."""

    def test_first_stake_activates(self):
        duel = _duel()
        position = duel.place_stake("alice", "yes", 1.0, NOW)
        assert duel.status is DuelStatus.ACTIVE
        assert position.side is Side.YES
        assert position.stake_amount == 1.0
        assert position.claim_status is ClaimStatus.UNCLAIMED
        assert duel.pool.yes_total == 1.0

    def test_same_side_accumulates(self):
        duel = _duel()
        duel.place_stake("alice", Side.NO, 1.0, NOW)
        duel.place_stake("alice", "NO", 0.5, NOW + 1)
        assert len(duel.participants) == 1
        assert duel.get_participant("alice").stake_amount == 1.5
        assert duel.side_count(Side.NO) == 1

    def test_side_switch_refused_and_unchanged(self):
        duel = _duel()
        duel.place_stake("alice", "yes", 1.0, NOW)
        with pytest.raises(LedgerError, match="existing position") as exc_info:
            duel.place_stake("alice", "no", 2.0, NOW)
        assert exc_info.value.code == error_codes.SIDE_ALREADY_CHOSEN
        assert duel.pool.no_total == 0.0
        assert duel.get_participant("alice").stake_amount == 1.0

    def test_deadline_is_exclusive(self):
        """A stake at exactly the deadline is rejected."""
        duel = _duel()
        with pytest.raises(LedgerError, match="deadline has passed") as exc_info:
            duel.place_stake("alice", "yes", 1.0, DEADLINE)
        assert exc_info.value.code == error_codes.DEADLINE_PASSED
        assert duel.status is DuelStatus.PENDING

    def test_creator_cannot_stake(self):
        with pytest.raises(LedgerError) as exc_info:
            _duel().place_stake("creator", "yes", 1.0, NOW)
        assert exc_info.value.code == error_codes.SELF_STAKE_FORBIDDEN

    def test_invalid_side(self):
        with pytest.raises(LedgerError) as exc_info:
            _duel().place_stake("alice", "maybe", 1.0, NOW)
        assert exc_info.value.code == error_codes.INVALID_SIDE

    @pytest.mark.parametrize("amount", [0, -1.0, math.inf, -math.inf, math.nan, "1", None])
    def test_invalid_amount_leaves_duel_pending(self, amount):
        duel = _duel()
        with pytest.raises(LedgerError) as exc_info:
            duel.place_stake("alice", "yes", amount, NOW)
        assert exc_info.value.code == error_codes.INVALID_AMOUNT
        assert duel.status is DuelStatus.PENDING
        assert not duel.has_participants

    @pytest.mark.parametrize("status", [DuelStatus.RESOLVED, DuelStatus.CANCELLED])
    def test_terminal_duel_refuses_stakes(self, status):
        with pytest.raises(LedgerError) as exc_info:
            _duel(status=status).place_stake("alice", "yes", 1.0, NOW)
        assert exc_info.value.code == error_codes.DUEL_NOT_ACCEPTING_STAKES

    def test_deadline_checked_before_state(self):
        """After the deadline a resolved duel reports the deadline, not the state."""
        with pytest.raises(LedgerError) as exc_info:
            _duel(status=DuelStatus.RESOLVED).place_stake("alice", "yes", 1.0, DEADLINE + 1)
        assert exc_info.value.code == error_codes.DEADLINE_PASSED


class TestResolve:
    """Resolution rules and payout snapshot."""

    def _staked_duel(self):
        duel = _duel()
        duel.place_stake("alice", "yes", 1.0, NOW)
        duel.place_stake("bob", "no", 2.0, NOW)
        return duel

    def test_resolve_writes_payouts(self):
        duel = self._staked_duel()
        summary = duel.resolve("creator", "yes", DEADLINE)
        assert duel.status is DuelStatus.RESOLVED
        assert duel.outcome is Side.YES
        assert duel.resolved_by == "creator"
        assert duel.resolved_at == DEADLINE
        assert duel.get_participant("alice").is_winner is True
        assert duel.get_participant("alice").payout_amount == pytest.approx(3.0)
        assert duel.get_participant("bob").is_winner is False
        assert duel.get_participant("bob").payout_amount == 0.0
        assert len(summary.winners) == 1

    def test_only_creator_resolves(self):
        duel = self._staked_duel()
        with pytest.raises(LedgerError) as exc_info:
            duel.resolve("alice", "yes", DEADLINE)
        assert exc_info.value.code == error_codes.UNAUTHORIZED
        assert duel.status is DuelStatus.ACTIVE

    def test_too_early(self):
        duel = self._staked_duel()
        with pytest.raises(LedgerError, match="before deadline") as exc_info:
            duel.resolve("creator", "yes", DEADLINE - 1)
        assert exc_info.value.code == error_codes.RESOLUTION_TOO_EARLY

    def test_resolve_twice(self):
        duel = self._staked_duel()
        duel.resolve("creator", "no", DEADLINE)
        with pytest.raises(LedgerError) as exc_info:
            duel.resolve("creator", "yes", DEADLINE + 10)
        assert exc_info.value.code == error_codes.ALREADY_RESOLVED
        assert duel.outcome is Side.NO

    def test_resolve_cancelled(self):
        duel = _duel()
        duel.cancel("creator", NOW)
        with pytest.raises(LedgerError) as exc_info:
            duel.resolve("creator", "yes", DEADLINE)
        assert exc_info.value.code == error_codes.ALREADY_CANCELLED

    def test_invalid_outcome_leaves_duel_active(self):
        duel = self._staked_duel()
        with pytest.raises(LedgerError) as exc_info:
            duel.resolve("creator", "draw", DEADLINE)
        assert exc_info.value.code == error_codes.INVALID_SIDE
        assert duel.status is DuelStatus.ACTIVE

    def test_pending_duel_can_resolve_with_empty_pool(self):
        duel = _duel()
        summary = duel.resolve("creator", "yes", DEADLINE)
        assert duel.status is DuelStatus.RESOLVED
        assert summary.is_degenerate is True


class TestEditing:
    """Cancel and update rules."""

    def test_cancel_pending(self):
        duel = _duel()
        duel.cancel("creator", NOW)
        assert duel.status is DuelStatus.CANCELLED

    def test_cancel_with_participants_refused(self):
        duel = _duel()
        duel.place_stake("alice", "yes", 1.0, NOW)
        with pytest.raises(LedgerError) as exc_info:
            duel.cancel("creator", NOW)
        assert exc_info.value.code == error_codes.HAS_PARTICIPANTS

    def test_cancel_by_stranger_refused(self):
        with pytest.raises(LedgerError) as exc_info:
            _duel().cancel("mallory", NOW)
        assert exc_info.value.code == error_codes.UNAUTHORIZED

    def test_cancel_terminal_refused(self):
        duel = _duel()
        duel.cancel("creator", NOW)
        with pytest.raises(LedgerError) as exc_info:
            duel.cancel("creator", NOW)
        assert exc_info.value.code == error_codes.TERMINAL_STATE

    def test_update_terms(self):
        duel = _duel()
        duel.update_terms("creator", NOW, question="  New question?  ", deadline=DEADLINE + 500)
        assert duel.question == "New question?"
        assert duel.deadline == DEADLINE + 500

    def test_update_terms_rejects_past_deadline(self):
        duel = _duel()
        with pytest.raises(LedgerError, match="future"):
            duel.update_terms("creator", NOW, deadline=NOW)
        assert duel.deadline == DEADLINE


class TestProjection:
    """Client-facing dict projection."""

    def test_to_dict_fields(self):
        duel = _duel(category="Weather", creator_stake=1.0)
        duel.place_stake("alice", "yes", 1.0, NOW)
        duel.place_stake("bob", "no", 3.0, NOW)
        data = duel.to_dict()
        assert data["id"] == 1
        assert data["status"] == "active"
        assert data["poolSize"] == 4.0
        assert data["yesStake"] == 1.0
        assert data["noStake"] == 3.0
        assert data["yesCount"] == 1
        assert data["noCount"] == 1
        assert data["yesProbability"] == pytest.approx(25.0)
        assert data["yesProbability"] + data["noProbability"] == 100.0
        assert data["participants"][0]["user"] == "alice"
        assert data["participants"][0]["claimed"] is False

    def test_creator_stake_not_in_pool(self):
        duel = _duel(creator_stake=5.0)
        assert duel.pool_total == 0.0
        assert duel.odds() == (50.0, 50.0)


class TestCategory:
    @pytest.mark.parametrize(
        "raw,expected",
        [("crypto", "Crypto"), ("SPORTS", "Sports"), ("unknown", "Other"), (None, "Other")],
    )
    def test_normalize_category(self, raw, expected):
        assert normalize_category(raw) == expected
