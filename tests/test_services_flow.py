"""
TEST_SERVICES_FLOW.PY - Reward lifecycle through the service layer
==================================================================

grant -> opt-in -> quote -> lock -> settle, against an in-memory database
with explicit clocks. The ride lasts 6-12s and never crashes in its first
2s, so T0 + 1s is always a live, pre-crash instant.

Run with: python -m pytest tests/test_services_flow.py -v
"""

import os
import sys
from datetime import timedelta

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import PROFILE_VALUES, STRONG_TICKET, T0, WEAK_TICKET
from core.reason_codes import ReasonCode
from core.ride_params import generate_seed
from database import RewardStatus, get_audit_logs
from services.boost_lock_service import boost_lock_service
from services.boost_quote_service import boost_quote_service
from services.entitlement_service import entitlement_service
from services.opt_in_service import opt_in_service
from services.reward_profile_service import reward_profile_service
from services.settlement_service import settlement_service
from services.simulation_service import simulation_service

LIVE = T0 + timedelta(seconds=1)


def _grant(db, profile, user_id="user-1", now=T0):
    result = entitlement_service.grant_reward(db, user_id, profile.id, now=now)
    assert result.success
    return result.data


def _enter(db, profile, user_id="user-1", bet_id="bet-1", selections=STRONG_TICKET, now=T0):
    reward = _grant(db, profile, user_id, now)
    result = opt_in_service.opt_in(db, reward.id, user_id, bet_id, selections, now=now)
    assert result.success, result.error
    return result.data["reward"]


def _after_crash(reward):
    return reward.start_time + timedelta(seconds=reward.crash_fraction * reward.duration_seconds + 0.01)


@pytest.fixture
def entered(db, profile):
    return _enter(db, profile)


# ============================================================================
# PROFILES
# ============================================================================

class TestRewardProfiles:

    def test_create_and_get(self, db, profile):
        fetched = reward_profile_service.get_profile(db, profile.id)
        assert fetched.success
        assert fetched.data.name == "Weekend Parlay Ride"
        assert fetched.data.is_active

    def test_min_above_max_rejected(self, db):
        values = dict(PROFILE_VALUES, min_boost_pct=0.6)
        result = reward_profile_service.create_profile(db, values)
        assert result.error.code == ReasonCode.INVALID_CONFIGURATION

    def test_max_boost_thresholds_not_below_entry(self, db):
        result = reward_profile_service.create_profile(db, dict(PROFILE_VALUES, max_boost_min_selections=2))
        assert result.error.code == ReasonCode.INVALID_CONFIGURATION
        result = reward_profile_service.create_profile(db, dict(PROFILE_VALUES, max_boost_min_combined_odds=2.0))
        assert result.error.code == ReasonCode.INVALID_CONFIGURATION

    def test_update_validates_merged_values(self, db, profile):
        result = reward_profile_service.update_profile(db, profile.id, {"max_boost_pct": 0.01})
        assert result.error.code == ReasonCode.INVALID_CONFIGURATION
        assert profile.max_boost_pct == 0.5

        result = reward_profile_service.update_profile(db, profile.id, {"max_boost_pct": 0.8, "name": "Bigger"})
        assert result.success
        assert result.data.max_boost_pct == 0.8

    def test_unknown_profile(self, db):
        assert reward_profile_service.get_profile(db, "nope").error.code == ReasonCode.PROFILE_NOT_FOUND
        assert reward_profile_service.update_profile(db, "nope", {}).error.code == ReasonCode.PROFILE_NOT_FOUND
        assert reward_profile_service.deactivate_profile(db, "nope").error.code == ReasonCode.PROFILE_NOT_FOUND

    def test_deactivate_and_list(self, db, profile):
        other = reward_profile_service.create_profile(db, dict(PROFILE_VALUES, name="Other")).data
        reward_profile_service.deactivate_profile(db, profile.id)

        all_profiles = reward_profile_service.list_profiles(db).data
        active = reward_profile_service.list_profiles(db, active_only=True).data
        assert len(all_profiles) == 2
        assert [p.id for p in active] == [other.id]

    def test_audit_trail(self, db, profile):
        reward_profile_service.update_profile(db, profile.id, {"description": "changed"})
        reward_profile_service.deactivate_profile(db, profile.id)
        actions = [entry.action for entry in get_audit_logs(db, "reward_profile", profile.id)]
        assert actions == ["CREATE", "UPDATE", "DEACTIVATE"]


# ============================================================================
# ENTITLEMENT
# ============================================================================

class TestGrant:

    def test_grant(self, db, profile):
        reward = _grant(db, profile)
        assert reward.status == RewardStatus.GRANTED.value
        assert reward.seed == generate_seed(reward.id, "user-1", profile.id)
        assert reward.start_time == T0
        assert 6.0 <= (reward.end_time - reward.start_time).total_seconds() <= 12.0

    def test_unknown_profile(self, db):
        result = entitlement_service.grant_reward(db, "user-1", "missing", now=T0)
        assert result.error.code == ReasonCode.PROFILE_NOT_FOUND

    def test_inactive_profile(self, db, profile):
        reward_profile_service.deactivate_profile(db, profile.id)
        result = entitlement_service.grant_reward(db, "user-1", profile.id, now=T0)
        assert result.error.code == ReasonCode.PROFILE_INACTIVE

    def test_requested_duration_only_audited(self, db, profile):
        result = entitlement_service.grant_reward(db, "user-1", profile.id, duration_seconds=600, now=T0)
        reward = result.data
        assert (reward.end_time - reward.start_time).total_seconds() <= 12.0
        entry = get_audit_logs(db, "user_reward", reward.id)[0].to_dict()
        assert entry["action"] == "GRANT"
        assert entry["payload"]["requested_duration_seconds"] == 600

    def test_seeds_unique_per_reward(self, db, profile):
        a = _grant(db, profile)
        b = _grant(db, profile)
        assert a.seed != b.seed

    def test_list_and_active(self, db, profile):
        reward = _grant(db, profile)
        _grant(db, profile, user_id="someone-else")
        rewards = entitlement_service.list_rewards_for_user(db, "user-1").data
        assert [r.id for r in rewards] == [reward.id]
        assert entitlement_service.get_active_reward_for_user(db, "user-1", now=T0).data.id == reward.id
        assert entitlement_service.get_active_reward_for_user(db, "nobody", now=T0).data is None

    def test_get_reward(self, db, profile):
        reward = _grant(db, profile)
        assert entitlement_service.get_reward(db, reward.id).data is reward
        assert entitlement_service.get_reward(db, "missing").error.code == ReasonCode.REWARD_NOT_FOUND


# ============================================================================
# OPT-IN
# ============================================================================

class TestEligibilityPrecheck:

    def test_eligible_ticket(self, db, profile):
        reward = _grant(db, profile)
        result = opt_in_service.precheck_eligibility(db, reward.id, "user-1", STRONG_TICKET)
        data = result.data
        assert data["eligible"]
        assert data["reason_code"] == "ELIGIBLE"
        assert data["qualifying_selection_count"] == 4
        assert data["total_selection_count"] == 4
        assert data["combined_odds"] == pytest.approx(2.0 * 1.8 * 1.5 * 1.9)
        assert data["ticket_strength"] > 0
        assert reward.status == RewardStatus.GRANTED.value

    def test_too_few_selections(self, db, profile):
        reward = _grant(db, profile)
        data = opt_in_service.precheck_eligibility(db, reward.id, "user-1", WEAK_TICKET).data
        assert not data["eligible"]
        assert data["reason_code"] == "MIN_SELECTIONS_NOT_MET"
        assert data["qualifying_selection_count"] == 1

    def test_short_combined_odds(self, db, profile):
        reward = _grant(db, profile)
        ticket = [{"id": f"s{i}", "odds": 1.2} for i in range(3)]
        data = opt_in_service.precheck_eligibility(db, reward.id, "user-1", ticket).data
        assert data["reason_code"] == "MIN_COMBINED_ODDS_NOT_MET"

    def test_unknown_or_foreign_reward(self, db, profile):
        reward = _grant(db, profile)
        assert opt_in_service.precheck_eligibility(db, "missing", "user-1", STRONG_TICKET).data["reason_code"] == \
            "REWARD_NOT_FOUND"
        assert opt_in_service.precheck_eligibility(db, reward.id, "intruder", STRONG_TICKET).data["reason_code"] == \
            "REWARD_NOT_FOUND"

    def test_entered_reward(self, db, entered):
        data = opt_in_service.precheck_eligibility(db, entered.id, "user-1", STRONG_TICKET).data
        assert data["reason_code"] == "ALREADY_OPTED_IN"


class TestOptIn:

    def test_ride_started(self, db, entered):
        assert entered.status == RewardStatus.ENTERED.value
        assert entered.bet_id == "bet-1"
        assert entered.start_time == T0
        assert entered.opted_in_at == T0
        assert (entered.end_time - entered.start_time).total_seconds() == pytest.approx(entered.duration_seconds)
        assert 8 <= entered.checkpoint_count <= 18
        assert 0.01 <= entered.crash_fraction <= 0.99

    def test_checkpoints_persisted(self, db, entered):
        checkpoints = opt_in_service.get_ride_checkpoints(db, entered.id).data
        assert len(checkpoints) == entered.checkpoint_count
        assert checkpoints[0].time_fraction == 0.0
        assert checkpoints[-1].time_fraction == 1.0
        assert checkpoints[-1].boost_value == 0.0

    def test_ticket_snapshot(self, db, profile):
        ticket = STRONG_TICKET + [{"id": "void-leg", "odds": 4.0, "eligible": False}]
        reward = _enter(db, profile, selections=ticket)
        snapshot = reward.ticket
        assert len(snapshot["selections"]) == 5
        assert [s["id"] for s in snapshot["disqualified_selections"]] == ["void-leg"]
        assert len(snapshot["qualifying_selections"]) == 4
        assert snapshot["min_selections"] == 3

    def test_second_opt_in_rejected(self, db, entered):
        result = opt_in_service.opt_in(db, entered.id, "user-1", "bet-2", STRONG_TICKET, now=LIVE)
        assert result.error.code == ReasonCode.ALREADY_OPTED_IN
        assert len(opt_in_service.get_ride_checkpoints(db, entered.id).data) == entered.checkpoint_count

    def test_ineligible_ticket_writes_nothing(self, db, profile):
        reward = _grant(db, profile)
        result = opt_in_service.opt_in(db, reward.id, "user-1", "bet-1", WEAK_TICKET, now=T0)
        assert result.error.code == ReasonCode.MIN_SELECTIONS_NOT_MET
        assert "Minimum 3 qualifying selections" in result.error.message
        assert reward.status == RewardStatus.GRANTED.value
        assert opt_in_service.get_ride_checkpoints(db, reward.id).data == []

    def test_wrong_user(self, db, profile):
        reward = _grant(db, profile)
        result = opt_in_service.opt_in(db, reward.id, "intruder", "bet-1", STRONG_TICKET, now=T0)
        assert result.error.code == ReasonCode.REWARD_NOT_FOUND

    def test_audit_entry(self, db, entered):
        actions = [entry.action for entry in get_audit_logs(db, "user_reward", entered.id)]
        assert actions == ["GRANT", "OPT_IN"]


# ============================================================================
# QUOTE
# ============================================================================

class TestQuote:

    def test_live_quote(self, db, entered):
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE).data
        assert quote["eligible"]
        assert quote["reason_code"] == "ELIGIBLE"
        assert 0.05 <= quote["current_boost_pct"] <= 0.5
        assert quote["theoretical_max_boost_pct"] >= quote["current_boost_pct"]
        assert quote["ride_end_at_offset_seconds"] is None
        assert quote["ride_crash_at_offset_seconds"] is None
        assert "ride_path" not in quote

    def test_quote_does_not_change_state(self, db, entered):
        boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE)
        assert entered.status == RewardStatus.ENTERED.value

    def test_quote_is_a_function_of_time(self, db, entered):
        a = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE).data
        b = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE).data
        assert a == b

    def test_wrong_bet(self, db, entered):
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "other-bet", now=LIVE).data
        assert not quote["eligible"]
        assert quote["reason_code"] == "NOT_OPTED_IN"

    def test_not_opted_in(self, db, profile):
        reward = _grant(db, profile)
        quote = boost_quote_service.get_quote(db, "user-1", reward.id, "bet-1", now=LIVE).data
        assert quote["reason_code"] == "NOT_OPTED_IN"

    def test_unknown_reward(self, db):
        quote = boost_quote_service.get_quote(db, "user-1", "missing", "bet-1", now=LIVE).data
        assert quote["reason_code"] == "REWARD_NOT_FOUND"
        assert quote["current_boost_pct"] is None

    def test_after_crash_discloses_ride(self, db, entered):
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=_after_crash(entered)).data
        assert not quote["eligible"]
        assert quote["reason_code"] == "RIDE_CRASHED"
        assert quote["current_boost_pct"] == 0.0
        assert quote["ride_end_at_offset_seconds"] == round(entered.duration_seconds, 3)
        assert quote["ride_crash_at_offset_seconds"] == pytest.approx(
            entered.crash_fraction * entered.duration_seconds, abs=1e-3)
        assert len(quote["ride_path"]) == 60

    def test_after_end(self, db, entered):
        later = entered.end_time + timedelta(seconds=5)
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=later).data
        assert quote["reason_code"] in ("RIDE_CRASHED", "RIDE_ENDED")
        assert quote["current_boost_pct"] == 0.0


# ============================================================================
# LOCK
# ============================================================================

class TestLock:

    def test_lock_matches_quote(self, db, entered):
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE).data
        result = boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=LIVE)
        lock = result.data
        assert result.success
        assert lock["locked_boost_pct"] == quote["current_boost_pct"]
        assert lock["locked_boost_display"] == f"{quote['current_boost_pct'] * 100:.1f}%"
        assert lock["theoretical_max_boost_pct"] == quote["theoretical_max_boost_pct"]
        assert lock["qualifying_selections"] == 4
        assert lock["locked_at"] == LIVE.isoformat()
        assert lock["ride_end_at_offset_seconds"] == round(entered.duration_seconds, 3)
        assert len(lock["ride_path"]) == 60
        assert entered.status == RewardStatus.USED.value

    def test_lock_is_idempotent(self, db, entered):
        first = boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=LIVE).data
        later = boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=_after_crash(entered)).data
        assert later == first

    def test_bet_id_locks_once_across_rewards(self, db, profile):
        first_reward = _enter(db, profile, bet_id="shared-bet")
        second_reward = _enter(db, profile, bet_id="shared-bet")
        first = boost_lock_service.lock_boost(db, "user-1", first_reward.id, "shared-bet", now=LIVE).data
        second = boost_lock_service.lock_boost(db, "user-1", second_reward.id, "shared-bet", now=LIVE).data
        assert second["lock_id"] == first["lock_id"]
        assert second["reward_id"] == first_reward.id
        assert second_reward.status == RewardStatus.ENTERED.value

    def test_crashed_ride_rejected(self, db, entered):
        result = boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=_after_crash(entered))
        assert result.error.code == ReasonCode.RIDE_CRASHED
        assert result.error.details["ride_end_at_offset_seconds"] == round(entered.duration_seconds, 3)
        assert entered.status == RewardStatus.ENTERED.value
        assert boost_lock_service.get_lock(db, "bet-1").data is None

    def test_not_opted_in(self, db, profile):
        reward = _grant(db, profile)
        result = boost_lock_service.lock_boost(db, "user-1", reward.id, "bet-1", now=LIVE)
        assert result.error.code == ReasonCode.NOT_OPTED_IN

    def test_wrong_bet(self, db, entered):
        result = boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-2", now=LIVE)
        assert result.error.code == ReasonCode.NOT_OPTED_IN

    def test_unknown_reward_and_user(self, db, entered):
        assert boost_lock_service.lock_boost(db, "user-1", "missing", "bet-9", now=LIVE).error.code == \
            ReasonCode.REWARD_NOT_FOUND
        assert boost_lock_service.lock_boost(db, "intruder", entered.id, "bet-1", now=LIVE).error.code == \
            ReasonCode.REWARD_NOT_FOUND

    def test_quote_after_lock(self, db, entered):
        boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=LIVE)
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE).data
        assert quote["reason_code"] == "REWARD_ALREADY_USED"

    def test_snapshot_and_audit(self, db, entered):
        lock_id = boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=LIVE).data["lock_id"]
        lock = boost_lock_service.get_lock(db, "bet-1").data
        snapshot = lock.snapshot_data
        assert lock.id == lock_id
        assert snapshot["seed"] == entered.seed
        assert snapshot["crash_fraction"] == entered.crash_fraction
        assert snapshot["min_boost_pct"] == 0.05
        assert "eligibility_factor" in snapshot["boost_model"]
        assert snapshot["max_possible_boost_pct"] >= lock.locked_boost_pct
        assert [e.action for e in get_audit_logs(db, "bet_boost_lock", lock_id)] == ["LOCK"]


# ============================================================================
# SETTLEMENT
# ============================================================================

class TestSettlement:

    @pytest.fixture
    def locked(self, db, entered):
        return boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=LIVE).data

    def test_win_pays_bonus(self, db, locked):
        result = settlement_service.settle_bet(db, "bet-1", "WIN", 100.0)
        data = result.data
        assert data["outcome"] == "WIN"
        assert data["bonus_amount"] == pytest.approx(100.0 * locked["locked_boost_pct"], abs=1e-4)
        assert data["bonus_amount"] > 0
        assert data["locked_boost_pct"] == locked["locked_boost_pct"]

    @pytest.mark.parametrize("outcome", ["LOSS", "VOID", "CASHOUT"])
    def test_non_win_pays_nothing(self, db, locked, outcome):
        assert settlement_service.settle_bet(db, "bet-1", outcome, 50.0).data["bonus_amount"] == 0.0

    def test_win_without_winnings(self, db, locked):
        assert settlement_service.settle_bet(db, "bet-1", "WIN", 0.0).data["bonus_amount"] == 0.0

    def test_idempotent(self, db, locked):
        first = settlement_service.settle_bet(db, "bet-1", "WIN", 100.0).data
        second = settlement_service.settle_bet(db, "bet-1", "LOSS", 0.0).data
        assert second == first

    def test_no_lock(self, db):
        result = settlement_service.settle_bet(db, "unlocked-bet", "WIN", 100.0)
        assert result.error.code == ReasonCode.LOCK_NOT_FOUND

    def test_unknown_outcome(self, db, locked):
        with pytest.raises(ValueError):
            settlement_service.settle_bet(db, "bet-1", "PUSH", 0.0)

    def test_get_settlement(self, db, locked):
        assert settlement_service.get_settlement(db, "bet-1").data is None
        settlement_service.settle_bet(db, "bet-1", "WIN", 10.0)
        assert settlement_service.get_settlement(db, "bet-1").data["outcome"] == "WIN"


# ============================================================================
# EXPIRY
# ============================================================================

class TestExpiry:

    def test_entered_rewards_expire_after_window(self, db, profile, entered):
        granted = _grant(db, profile)
        count = entitlement_service.process_expired_rewards(db, now=T0 + timedelta(minutes=1)).data
        db.refresh(entered)
        db.refresh(granted)
        assert count == 1
        assert entered.status == RewardStatus.EXPIRED.value
        assert granted.status == RewardStatus.GRANTED.value

        entries = get_audit_logs(db, "system", "batch_expiry")
        assert entries[0].to_dict()["payload"] == {"expired_count": 1}

    def test_nothing_to_expire(self, db, entered):
        assert entitlement_service.process_expired_rewards(db, now=LIVE).data == 0
        assert get_audit_logs(db, "system", "batch_expiry") == []

    def test_expired_reward_rejected_everywhere(self, db, entered):
        entitlement_service.process_expired_rewards(db, now=T0 + timedelta(minutes=1))
        db.refresh(entered)
        quote = boost_quote_service.get_quote(db, "user-1", entered.id, "bet-1", now=LIVE).data
        assert quote["reason_code"] == "REWARD_EXPIRED"
        assert boost_lock_service.lock_boost(db, "user-1", entered.id, "bet-1", now=LIVE).error.code == \
            ReasonCode.REWARD_EXPIRED
        assert opt_in_service.opt_in(db, entered.id, "user-1", "bet-1", STRONG_TICKET).error.code == \
            ReasonCode.REWARD_EXPIRED

    def test_active_reward_closes_with_window(self, db, entered):
        assert entitlement_service.get_active_reward_for_user(db, "user-1", now=LIVE).data.id == entered.id
        later = entered.end_time + timedelta(seconds=1)
        assert entitlement_service.get_active_reward_for_user(db, "user-1", now=later).data is None


# ============================================================================
# SIMULATION
# ============================================================================

class TestSimulation:

    def test_defaults(self, db):
        data = simulation_service.simulate_ride(db, seed="sim-seed").data
        assert data["seed"] == "sim-seed"
        assert len(data["curve"]) == 101
        assert data["config"]["min_boost_pct"] == 0.01
        assert data["config"]["max_boost_pct"] == 1.0
        assert data["ticket_analysis"] is None
        assert data["checkpoints"][-1]["boost_value"] == 0.0

    def test_deterministic(self, db):
        a = simulation_service.simulate_ride(db, seed="same").data
        b = simulation_service.simulate_ride(db, seed="same").data
        assert a == b

    def test_random_seed_when_missing(self, db):
        assert simulation_service.simulate_ride(db).data["seed"].startswith("sim-")

    def test_zero_from_crash(self, db):
        data = simulation_service.simulate_ride(db, seed="crash-check", sample_points=20).data
        crash = data["config"]["crash_fraction"]
        assert len(data["curve"]) == 21
        for point in data["curve"]:
            if point["time_pct"] >= crash:
                assert point["final_boost_pct"] == 0.0

    def test_profile_window(self, db, profile):
        data = simulation_service.simulate_ride(db, seed="p", profile_id=profile.id).data
        assert data["config"]["min_boost_pct"] == 0.05
        assert data["config"]["max_boost_pct"] == 0.5

    def test_overrides_and_validation(self, db):
        data = simulation_service.simulate_ride(db, seed="o", min_boost_pct=0.1, max_boost_pct=0.2).data
        assert data["config"]["max_boost_pct"] == 0.2
        result = simulation_service.simulate_ride(db, seed="o", min_boost_pct=0.5, max_boost_pct=0.2)
        assert result.error.code == ReasonCode.INVALID_CONFIGURATION

    def test_unknown_profile(self, db):
        result = simulation_service.simulate_ride(db, profile_id="missing")
        assert result.error.code == ReasonCode.PROFILE_NOT_FOUND

    def test_ticket_analysis(self, db):
        data = simulation_service.simulate_ride(db, seed="t", selections=STRONG_TICKET).data
        analysis = data["ticket_analysis"]
        assert analysis["qualifying_selections"] == 4
        assert analysis["ticket_strength"] > 0
        assert analysis["combined_odds"] == 10.26
        assert analysis["linear_strength"] == pytest.approx(0.2 * 1.011147 / 4, abs=1e-5)
