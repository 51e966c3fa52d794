"""
Tests for DuelRepository persistence, versioning and claim bookkeeping.
"""

import pytest

from domain import error_codes
from domain.exceptions import ConcurrencyConflict, LedgerError, LedgerInvariantError
from domain.models.duel import ClaimStatus, DuelStatus
from domain.models.side import Side

NOW = 1_000
DEADLINE = 2_000


def _create(repo, creator_id="creator", category="Crypto", created_at=NOW, deadline=DEADLINE):
    return repo.create_duel(
        creator_id=creator_id,
        question="Will BTC close green?",
        category=category,
        duel_type="public",
        creator_stake=1.0,
        deadline=deadline,
        created_at=created_at,
    )


def _resolved_duel(repo):
    duel_id = _create(repo)
    duel = repo.get_duel(duel_id)
    duel.place_stake("alice", "yes", 1.0, NOW)
    duel.place_stake("bob", "no", 2.0, NOW)
    repo.save_duel(duel)
    duel.resolve("creator", "yes", DEADLINE)
    repo.save_duel(duel)
    return duel_id


class TestDuelPersistence:
    """Create, load and save duels."""

    def test_create_and_get(self, duel_repository):
        duel_id = _create(duel_repository)
        duel = duel_repository.get_duel(duel_id)
        assert duel.duel_id == duel_id
        assert duel.creator_id == "creator"
        assert duel.status is DuelStatus.PENDING
        assert duel.version == 0
        assert duel.participants == {}
        assert duel.creator_stake == 1.0

    def test_get_missing(self, duel_repository):
        assert duel_repository.get_duel(999) is None

    def test_save_round_trips_participants_in_entry_order(self, duel_repository):
        duel_id = _create(duel_repository)
        duel = duel_repository.get_duel(duel_id)
        duel.place_stake("zed", "no", 2.0, NOW)
        duel.place_stake("amy", "yes", 1.0, NOW + 1)
        assert duel_repository.save_duel(duel) == 1

        loaded = duel_repository.get_duel(duel_id)
        assert list(loaded.participants) == ["zed", "amy"]
        assert loaded.status is DuelStatus.ACTIVE
        assert loaded.version == 1
        assert loaded.pool.no_total == 2.0
        assert loaded.get_participant("amy").side is Side.YES

    def test_stale_version_conflicts(self, duel_repository):
        """Two writers that loaded the same version cannot both commit."""
        duel_id = _create(duel_repository)
        first = duel_repository.get_duel(duel_id)
        second = duel_repository.get_duel(duel_id)

        first.place_stake("alice", "yes", 1.0, NOW)
        duel_repository.save_duel(first)

        second.place_stake("bob", "no", 5.0, NOW)
        with pytest.raises(ConcurrencyConflict) as exc_info:
            duel_repository.save_duel(second)
        assert exc_info.value.code == error_codes.VERSION_CONFLICT

        loaded = duel_repository.get_duel(duel_id)
        assert loaded.get_participant("bob") is None
        assert loaded.pool_total == 1.0

    def test_save_missing_duel(self, duel_repository):
        duel_id = _create(duel_repository)
        duel = duel_repository.get_duel(duel_id)
        duel_repository.delete_duel(duel_id, duel.version)
        with pytest.raises(LedgerError) as exc_info:
            duel_repository.save_duel(duel)
        assert exc_info.value.code == error_codes.DUEL_NOT_FOUND

    def test_stake_request_written_with_save(self, duel_repository):
        duel_id = _create(duel_repository)
        duel = duel_repository.get_duel(duel_id)
        duel.place_stake("alice", "yes", 1.0, NOW)
        duel_repository.save_duel(
            duel,
            stake_request={
                "request_token": "tok-1",
                "participant_id": "alice",
                "side": "yes",
                "amount": 1.0,
            },
        )
        applied = duel_repository.get_stake_request(duel_id, "tok-1")
        assert applied["participant_id"] == "alice"
        assert applied["amount"] == 1.0
        assert duel_repository.get_stake_request(duel_id, "tok-2") is None


class TestDeleteAndList:
    """Deletion and listing queries."""

    def test_delete_with_participants_refused(self, duel_repository):
        duel_id = _create(duel_repository)
        duel = duel_repository.get_duel(duel_id)
        duel.place_stake("alice", "yes", 1.0, NOW)
        duel_repository.save_duel(duel)
        with pytest.raises(LedgerError) as exc_info:
            duel_repository.delete_duel(duel_id, duel.version)
        assert exc_info.value.code == error_codes.HAS_PARTICIPANTS
        assert duel_repository.get_duel(duel_id) is not None

    def test_delete_stale_version_conflicts(self, duel_repository):
        duel_id = _create(duel_repository)
        with pytest.raises(ConcurrencyConflict):
            duel_repository.delete_duel(duel_id, expected_version=7)

    def test_list_filters(self, duel_repository):
        old = _create(duel_repository, category="Crypto", created_at=NOW)
        new = _create(duel_repository, category="Sports", created_at=NOW + 10)
        expired = _create(duel_repository, category="Sports", created_at=NOW + 20, deadline=NOW + 5)

        all_ids = [d.duel_id for d in duel_repository.list_duels()]
        assert all_ids == [expired, new, old]

        sports = [d.duel_id for d in duel_repository.list_duels(category="Sports")]
        assert sports == [expired, new]

        open_ids = [d.duel_id for d in duel_repository.list_duels(deadline_after=NOW + 100)]
        assert open_ids == [new, old]

        assert duel_repository.list_duels(statuses=["resolved"]) == []
        assert len(duel_repository.list_duels(limit=1)) == 1

    def test_participant_positions(self, duel_repository):
        duel_id = _resolved_duel(duel_repository)
        positions = duel_repository.get_participant_positions("alice")
        assert len(positions) == 1
        assert positions[0]["duel_id"] == duel_id
        assert positions[0]["is_winner"] is True
        assert positions[0]["claimable"] is True

        bob = duel_repository.get_participant_positions("bob")[0]
        assert bob["claimable"] is False


class TestClaimBookkeeping:
    """unclaimed -> settling -> claimed transitions."""

    def test_reserve_and_complete(self, duel_repository):
        duel_id = _resolved_duel(duel_repository)
        reservation = duel_repository.reserve_claim(duel_id, "alice")
        assert reservation["payout_amount"] == pytest.approx(3.0)
        assert (
            duel_repository.get_duel(duel_id).get_participant("alice").claim_status
            is ClaimStatus.SETTLING
        )

        duel_repository.complete_claim(duel_id, "alice", "tx-1", claimed_at=DEADLINE + 5)
        alice = duel_repository.get_duel(duel_id).get_participant("alice")
        assert alice.claimed is True
        assert alice.transaction_signature == "tx-1"
        assert alice.claimed_at == DEADLINE + 5

    def test_second_reserve_while_settling(self, duel_repository):
        duel_id = _resolved_duel(duel_repository)
        duel_repository.reserve_claim(duel_id, "alice")
        with pytest.raises(LedgerError) as exc_info:
            duel_repository.reserve_claim(duel_id, "alice")
        assert exc_info.value.code == error_codes.CLAIM_IN_PROGRESS

    def test_reserve_after_claimed(self, duel_repository):
        duel_id = _resolved_duel(duel_repository)
        duel_repository.reserve_claim(duel_id, "alice")
        duel_repository.complete_claim(duel_id, "alice", "tx-1", claimed_at=DEADLINE)
        with pytest.raises(LedgerError, match="already been claimed") as exc_info:
            duel_repository.reserve_claim(duel_id, "alice")
        assert exc_info.value.code == error_codes.ALREADY_CLAIMED

    def test_release_returns_to_unclaimed(self, duel_repository):
        duel_id = _resolved_duel(duel_repository)
        duel_repository.reserve_claim(duel_id, "alice")
        duel_repository.release_claim(duel_id, "alice")
        assert duel_repository.reserve_claim(duel_id, "alice")["participant_id"] == "alice"

    def test_complete_without_reservation(self, duel_repository):
        duel_id = _resolved_duel(duel_repository)
        with pytest.raises(LedgerInvariantError):
            duel_repository.complete_claim(duel_id, "alice", "tx-1", claimed_at=DEADLINE)

    @pytest.mark.parametrize(
        "participant,code",
        [
            ("bob", error_codes.NOT_A_WINNER),
            ("carol", error_codes.PARTICIPANT_NOT_FOUND),
        ],
    )
    def test_reserve_rejections(self, duel_repository, participant, code):
        duel_id = _resolved_duel(duel_repository)
        with pytest.raises(LedgerError) as exc_info:
            duel_repository.reserve_claim(duel_id, participant)
        assert exc_info.value.code == code

    def test_reserve_unresolved(self, duel_repository):
        duel_id = _create(duel_repository)
        with pytest.raises(LedgerError) as exc_info:
            duel_repository.reserve_claim(duel_id, "alice")
        assert exc_info.value.code == error_codes.DUEL_NOT_RESOLVED

    def test_resave_does_not_touch_claim_columns(self, duel_repository):
        """A stale save of participants keeps claim state owned by the claim flow."""
        duel_id = _resolved_duel(duel_repository)
        duel = duel_repository.get_duel(duel_id)
        duel_repository.reserve_claim(duel_id, "alice")
        duel_repository.complete_claim(duel_id, "alice", "tx-1", claimed_at=DEADLINE)

        duel_repository.save_duel(duel)
        assert duel_repository.get_duel(duel_id).get_participant("alice").claimed is True
