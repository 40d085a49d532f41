"""
ERROR_RESPONSES.PY - One error envelope for every failure the API returns
========================================================================

Three sources of failure reach a client, and all of them leave in the same
shape:

    service rejections    failed ServiceResult, status from its ReasonCode
    request validation    pydantic errors, 422, one entry per bad field
    framework errors      401 from auth, 404 for unknown routes

Envelope:
    {
        "status": "error",
        "error": "Ride has crashed - boost is zero",   # first message, for simple clients
        "errors": [{"code": "RIDE_CRASHED", "message": "...", "field": "..."}],
        "details": {...},                               # service rejections only, when present
        "request_id": "req-0123456789ab",
        "timestamp": "2026-03-01T12:00:00+00:00"
    }

Usage:
    if not result.success:
        return service_error_response(result)

    if lock is None:
        return not_found_response(f"No lock found for bet {bet_id}")
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse

from core.reason_codes import ReasonCode, http_status_for
from core.structured_logging import get_request_id


class ErrorCode:
    """Envelope codes. Service rejections use their ReasonCode value instead."""

    UNAUTHORIZED = ReasonCode.UNAUTHORIZED.value
    VALIDATION_ERROR = ReasonCode.VALIDATION_ERROR.value
    INVALID_CONFIGURATION = ReasonCode.INVALID_CONFIGURATION.value
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = ReasonCode.INTERNAL_ERROR.value


@dataclass
class ErrorDetail:
    code: str
    message: str
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.field is not None:
            result["field"] = self.field
        return result


def _envelope(
    details: List[ErrorDetail],
    request_id: Optional[str],
    include_timestamp: bool,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": "error"}
    if details:
        body["error"] = details[0].message
        body["errors"] = [d.to_dict() for d in details]
    if request_id is not None:
        body["request_id"] = request_id
    if include_timestamp:
        body["timestamp"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
    return body


def make_error(
    code: str,
    message: str,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    include_timestamp: bool = True,
) -> Dict[str, Any]:
    """
    Envelope for a single error.

    >>> make_error(ErrorCode.VALIDATION_ERROR, "odds must be > 0", field="ticket.selections.0.odds")
    {"status": "error", "error": "odds must be > 0",
     "errors": [{"code": "VALIDATION_ERROR", "message": "odds must be > 0",
                 "field": "ticket.selections.0.odds"}],
     "timestamp": "..."}
    """
    return _envelope([ErrorDetail(code, message, field)], request_id, include_timestamp)


def make_errors(
    errors: List[Dict[str, Any]],
    request_id: Optional[str] = None,
    include_timestamp: bool = True,
) -> Dict[str, Any]:
    """Envelope for several errors given as dicts with code, message and optional field."""
    details = [ErrorDetail(e["code"], e["message"], e.get("field")) for e in errors]
    return _envelope(details, request_id, include_timestamp)


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """JSONResponse carrying the envelope, stamped with the current request id."""
    content = make_error(code, message, request_id=get_request_id())
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def not_found_response(message: str) -> JSONResponse:
    return error_response(404, ErrorCode.NOT_FOUND, message)


def service_error_response(result) -> JSONResponse:
    """
    Failed ServiceResult -> JSONResponse.

    The status comes from the reason code: 404 not found, 409 state
    conflict, 422 eligibility or configuration, 401 auth, 500 internal.
    Rejection details (ride offsets, thresholds) ride along under "details".
    """
    code = ReasonCode(result.error.code)
    return error_response(http_status_for(code), code.value, result.error.message, details=result.error.details)


def validation_error_response(errors: List[Dict[str, Any]]) -> JSONResponse:
    """Request validation errors, one entry per field; the "body" prefix is dropped from paths."""
    details = [
        {
            "code": ErrorCode.VALIDATION_ERROR,
            "message": e.get("msg", "Invalid value"),
            "field": ".".join(str(p) for p in e.get("loc", ()) if p != "body") or None,
        }
        for e in errors
    ]
    return JSONResponse(status_code=422, content=make_errors(details, request_id=get_request_id()))


__all__ = [
    "ErrorCode",
    "ErrorDetail",
    "make_error",
    "make_errors",
    "error_response",
    "not_found_response",
    "service_error_response",
    "validation_error_response",
]
