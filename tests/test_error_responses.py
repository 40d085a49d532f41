"""
Tests for core/error_responses.py and core/reason_codes.py
"""

import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.error_responses import (
    ErrorCode,
    make_error,
    make_errors,
    not_found_response,
    service_error_response,
    validation_error_response,
)
from core.reason_codes import ReasonCode, http_status_for
from services.results import ServiceResult


class TestHttpStatusFor:

    def test_not_found(self):
        for code in (ReasonCode.REWARD_NOT_FOUND, ReasonCode.PROFILE_NOT_FOUND, ReasonCode.LOCK_NOT_FOUND):
            assert http_status_for(code) == 404

    def test_conflicts(self):
        for code in (ReasonCode.REWARD_ALREADY_USED, ReasonCode.ALREADY_OPTED_IN,
                     ReasonCode.RIDE_CRASHED, ReasonCode.PROFILE_INACTIVE):
            assert http_status_for(code) == 409

    def test_eligibility_is_unprocessable(self):
        assert http_status_for(ReasonCode.MIN_SELECTIONS_NOT_MET) == 422
        assert http_status_for(ReasonCode.MIN_COMBINED_ODDS_NOT_MET) == 422
        assert http_status_for(ReasonCode.INVALID_CONFIGURATION) == 422

    def test_auth_and_internal(self):
        assert http_status_for(ReasonCode.UNAUTHORIZED) == 401
        assert http_status_for(ReasonCode.INTERNAL_ERROR) == 500


class TestMakeError:

    def test_envelope(self):
        error = make_error(ErrorCode.NOT_FOUND, "No lock found", request_id="req-abc")
        assert error["status"] == "error"
        assert error["error"] == "No lock found"
        assert error["errors"] == [{"code": "NOT_FOUND", "message": "No lock found"}]
        assert error["request_id"] == "req-abc"
        assert "timestamp" in error

    def test_field_and_no_timestamp(self):
        error = make_error(ErrorCode.VALIDATION_ERROR, "bad", field="winnings", include_timestamp=False)
        assert error["errors"][0]["field"] == "winnings"
        assert "timestamp" not in error
        assert "request_id" not in error

    def test_make_errors_uses_first_message(self):
        error = make_errors([
            {"code": "VALIDATION_ERROR", "message": "first", "field": "user_id"},
            {"code": "VALIDATION_ERROR", "message": "second"},
        ])
        assert error["error"] == "first"
        assert len(error["errors"]) == 2


class TestServiceErrorResponse:

    def test_status_and_details(self):
        result = ServiceResult.fail(
            ReasonCode.RIDE_CRASHED,
            "Ride has crashed - boost is zero",
            {"ride_end_at_offset_seconds": 9.0, "ride_crash_at_offset_seconds": 6.3},
        )
        response = service_error_response(result)
        body = json.loads(response.body)
        assert response.status_code == 409
        assert body["errors"][0]["code"] == "RIDE_CRASHED"
        assert body["details"]["ride_crash_at_offset_seconds"] == 6.3

    def test_without_details(self):
        response = service_error_response(ServiceResult.fail(ReasonCode.LOCK_NOT_FOUND, "missing"))
        assert response.status_code == 404
        assert "details" not in json.loads(response.body)

    def test_service_error_to_dict(self):
        result = ServiceResult.fail(ReasonCode.REWARD_EXPIRED, "Reward has expired")
        assert result.error.to_dict() == {"code": "REWARD_EXPIRED", "message": "Reward has expired"}
        assert not result.success
        assert ServiceResult.ok(3).data == 3


class TestValidationErrorResponse:

    def test_field_path_without_body_prefix(self):
        response = validation_error_response([
            {"loc": ("body", "ticket", "selections", 0, "odds"), "msg": "Input should be greater than 0"},
        ])
        body = json.loads(response.body)
        assert response.status_code == 422
        assert body["errors"][0]["field"] == "ticket.selections.0.odds"
        assert body["errors"][0]["code"] == "VALIDATION_ERROR"


class TestNotFoundResponse:

    def test_status_and_code(self):
        response = not_found_response("No settlement found for bet bet-9")
        body = json.loads(response.body)
        assert response.status_code == 404
        assert body["errors"] == [{"code": "NOT_FOUND", "message": "No settlement found for bet bet-9"}]
        assert "details" not in body

    def test_no_request_id_outside_a_request(self):
        body = json.loads(not_found_response("missing").body)
        assert "request_id" not in body
