"""
TEST_API_ROUTES.PY - HTTP surface
=================================

Tests verify:
1. Status codes per reason code (404 / 409 / 422)
2. The standard error envelope for service and validation failures
3. The full reward flow over HTTP

The flow tests run against the real clock: rides last 6-12s and never
crash in their first 2s, so quoting and locking straight after opt-in is
always live.

Run with: python -m pytest tests/test_api_routes.py -v
"""

import inspect
import os
import sys

import pytest
from fastapi.routing import APIRoute

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import PROFILE_VALUES, STRONG_TICKET, WEAK_TICKET


@pytest.fixture
def profile_id(client):
    response = client.post("/reward-profiles", json=PROFILE_VALUES)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def reward_id(client, profile_id):
    response = client.post("/rewards/grant", json={"user_id": "user-1", "profile_version_id": profile_id})
    assert response.status_code == 201
    return response.json()["id"]


def _opt_in(client, reward_id, bet_id="bet-1", selections=STRONG_TICKET):
    return client.post(f"/rewards/{reward_id}/opt-in", json={
        "user_id": "user-1",
        "bet_id": bet_id,
        "ticket": {"selections": selections, "stake": 10.0},
    })


def _ride(reward_id, bet_id="bet-1"):
    return {"user_id": "user-1", "reward_id": reward_id, "bet_id": bet_id}


class TestHealth:

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["database"] == "custom"

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-fixed"})
        assert response.headers["X-Request-ID"] == "req-fixed"


class TestDatabaseRoutesRunInThreadpool:
    """Session-bound handlers are plain functions; FastAPI runs them in its threadpool."""

    def test_resource_handlers_are_sync(self, app):
        routes = [r for r in app.routes if isinstance(r, APIRoute) and r.path != "/health"]
        assert len(routes) == 18
        blocking = [r.path for r in routes if inspect.iscoroutinefunction(r.endpoint)]
        assert blocking == []


class TestRewardProfileRoutes:

    def test_create_and_get(self, client, profile_id):
        body = client.get(f"/reward-profiles/{profile_id}").json()
        assert body["name"] == "Weekend Parlay Ride"
        assert body["is_active"] is True

    def test_min_above_max_is_validation_error(self, client):
        response = client.post("/reward-profiles", json=dict(PROFILE_VALUES, min_boost_pct=0.6))
        body = response.json()
        assert response.status_code == 422
        assert body["errors"][0]["code"] == "VALIDATION_ERROR"
        assert body["errors"][0]["field"] == "max_boost_pct"

    @pytest.mark.parametrize("field, value", [("max_boost_min_selections", 2), ("max_boost_min_combined_odds", 2.5)])
    def test_max_threshold_below_entry_threshold(self, client, field, value):
        response = client.post("/reward-profiles", json=dict(PROFILE_VALUES, **{field: value}))
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == field

    def test_blank_name(self, client):
        response = client.post("/reward-profiles", json=dict(PROFILE_VALUES, name="   "))
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "name"

    def test_name_trimmed(self, client):
        response = client.post("/reward-profiles", json=dict(PROFILE_VALUES, name="  Friday Ride  "))
        assert response.status_code == 201
        assert response.json()["name"] == "Friday Ride"

    def test_missing_field(self, client):
        values = dict(PROFILE_VALUES)
        del values["min_selections"]
        response = client.post("/reward-profiles", json=values)
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "min_selections"

    def test_unknown_profile(self, client):
        response = client.get("/reward-profiles/missing", headers={"X-Request-ID": "req-404"})
        body = response.json()
        assert response.status_code == 404
        assert body["errors"][0]["code"] == "PROFILE_NOT_FOUND"
        assert body["request_id"] == "req-404"

    def test_patch(self, client, profile_id):
        response = client.patch(f"/reward-profiles/{profile_id}", json={"max_boost_pct": 0.75})
        assert response.status_code == 200
        assert response.json()["max_boost_pct"] == 0.75

    def test_patch_checks_merged_profile(self, client, profile_id):
        response = client.patch(f"/reward-profiles/{profile_id}", json={"max_boost_pct": 0.01})
        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "INVALID_CONFIGURATION"

    def test_list_and_deactivate(self, client, profile_id):
        assert client.get("/reward-profiles").json()["count"] == 1
        assert client.delete(f"/reward-profiles/{profile_id}").status_code == 204
        assert client.get("/reward-profiles?active_only=true").json()["count"] == 0
        assert client.get(f"/reward-profiles/{profile_id}").json()["is_active"] is False

        response = client.post("/rewards/grant", json={"user_id": "user-1", "profile_version_id": profile_id})
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "PROFILE_INACTIVE"


class TestRewardRoutes:

    def test_grant(self, client, reward_id):
        body = client.get(f"/rewards/{reward_id}").json()
        assert body["status"] == "GRANTED"
        assert "seed" not in body

    def test_grant_unknown_profile(self, client):
        response = client.post("/rewards/grant", json={"user_id": "user-1", "profile_version_id": "missing"})
        assert response.status_code == 404

    def test_unknown_reward(self, client):
        assert client.get("/rewards/missing").status_code == 404

    def test_user_rewards_and_active(self, client, reward_id):
        listing = client.get("/rewards/user/user-1").json()
        assert listing["count"] == 1
        assert listing["rewards"][0]["id"] == reward_id
        assert client.get("/rewards/user/user-1/active").json()["active_reward"]["id"] == reward_id
        assert client.get("/rewards/user/nobody/active").json()["active_reward"] is None

    def test_eligibility(self, client, reward_id):
        response = client.post(f"/rewards/{reward_id}/eligibility", json={
            "user_id": "user-1",
            "ticket": {"selections": WEAK_TICKET},
        })
        body = response.json()
        assert response.status_code == 200
        assert body["eligible"] is False
        assert body["reason_code"] == "MIN_SELECTIONS_NOT_MET"

    def test_opt_in(self, client, reward_id):
        response = _opt_in(client, reward_id)
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "ENTERED"
        assert body["ride_started"] is True

        again = _opt_in(client, reward_id, bet_id="bet-2")
        assert again.status_code == 409
        assert again.json()["errors"][0]["code"] == "ALREADY_OPTED_IN"

    def test_opt_in_ineligible(self, client, reward_id):
        response = _opt_in(client, reward_id, selections=WEAK_TICKET)
        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "MIN_SELECTIONS_NOT_MET"

    def test_opt_in_bad_odds(self, client, reward_id):
        response = _opt_in(client, reward_id, selections=[{"id": "s1", "odds": 0}])
        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "ticket.selections.0.odds"

    def test_opt_in_empty_ticket(self, client, reward_id):
        assert _opt_in(client, reward_id, selections=[]).status_code == 422

    def test_expire(self, client, reward_id):
        assert client.post("/rewards/expire").json() == {"expired_count": 0}


class TestBoostAndSettlementFlow:

    def test_full_flow(self, client, reward_id):
        assert _opt_in(client, reward_id).status_code == 200

        quote = client.post("/boost/quote", json=_ride(reward_id))
        assert quote.status_code == 200
        assert quote.json()["eligible"] is True

        lock = client.post("/boost/lock", json=_ride(reward_id))
        assert lock.status_code == 201
        lock_body = lock.json()
        assert 0.05 <= lock_body["locked_boost_pct"] <= 0.5
        assert len(lock_body["ride_path"]) > 0

        repeat = client.post("/boost/lock", json=_ride(reward_id))
        assert repeat.json()["lock_id"] == lock_body["lock_id"]

        stored = client.get("/boost/locks/bet-1")
        assert stored.status_code == 200
        assert stored.json()["locked_boost_pct"] == lock_body["locked_boost_pct"]

        used = client.post("/boost/quote", json=_ride(reward_id)).json()
        assert used["reason_code"] == "REWARD_ALREADY_USED"

        settle = client.post("/settlement", json={"bet_id": "bet-1", "outcome": "WIN", "winnings": 100.0})
        assert settle.status_code == 201
        settled = settle.json()
        assert settled["bonus_amount"] == pytest.approx(100.0 * lock_body["locked_boost_pct"], abs=1e-4)

        assert client.get("/settlement/bet-1").json()["settlement_id"] == settled["settlement_id"]

    def test_quote_before_opt_in(self, client, reward_id):
        body = client.post("/boost/quote", json=_ride(reward_id)).json()
        assert body["eligible"] is False
        assert body["reason_code"] == "NOT_OPTED_IN"

    def test_lock_before_opt_in(self, client, reward_id):
        response = client.post("/boost/lock", json=_ride(reward_id))
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "NOT_OPTED_IN"

    def test_lock_unknown_reward(self, client):
        response = client.post("/boost/lock", json=_ride("missing"))
        assert response.status_code == 404

    def test_missing_lock(self, client):
        response = client.get("/boost/locks/nothing")
        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "NOT_FOUND"

    def test_settle_without_lock(self, client):
        response = client.post("/settlement", json={"bet_id": "nothing", "outcome": "WIN", "winnings": 5.0})
        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "LOCK_NOT_FOUND"

    def test_settle_bad_outcome(self, client):
        response = client.post("/settlement", json={"bet_id": "b", "outcome": "PUSH", "winnings": 5.0})
        assert response.status_code == 422

    def test_missing_settlement(self, client):
        assert client.get("/settlement/nothing").status_code == 404


class TestSimulationRoute:

    def test_simulate(self, client):
        body = client.post("/simulation/ride", json={"seed": "route-seed", "sample_points": 20}).json()
        assert body["seed"] == "route-seed"
        assert len(body["curve"]) == 21

    def test_simulate_with_profile_and_ticket(self, client, profile_id):
        response = client.post("/simulation/ride", json={
            "seed": "route-seed",
            "profile_id": profile_id,
            "ticket": {"selections": STRONG_TICKET},
        })
        assert response.status_code == 200
        assert response.json()["ticket_analysis"]["qualifying_selections"] == 4

    def test_sample_points_bounds(self, client):
        assert client.post("/simulation/ride", json={"sample_points": 5}).status_code == 422

    def test_unknown_profile(self, client):
        assert client.post("/simulation/ride", json={"profile_id": "missing"}).status_code == 404


class TestRequestModels:

    def test_models_use_current_validator_api(self):
        import importlib
        import warnings

        from pydantic.warnings import PydanticDeprecatedSince20

        import models.api_models as api_models

        with warnings.catch_warnings():
            warnings.simplefilter("error", PydanticDeprecatedSince20)
            importlib.reload(api_models)
