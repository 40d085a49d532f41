"""
Log redaction for the ride boost API
====================================

Two kinds of value must never reach a log line:

- credentials: the API key, the HMAC secret and request signatures
- ride seeds: a seed regenerates the whole curve, crash point included,
  so a logged seed for a live ride tells the reader when to lock

Usage:
    from core.log_sanitizer import sanitize, sanitize_headers, sanitize_dict, seed_fingerprint

    safe_headers = sanitize_headers(request.headers)
    safe_payload = sanitize_dict(audit_payload)
    safe_text = sanitize(message)
    logger.debug("ride built for %s", seed_fingerprint(seed))
"""

import hashlib
import os
import re
from typing import Any, Dict, Mapping, Optional, Set, Union

REDACTED = "[REDACTED]"

MAX_DEPTH = 5
MIN_SECRET_LENGTH = 8

# Exact names, compared after normalising to snake_case
SENSITIVE_NAMES = frozenset({
    "seed",
    "ride_seed",
    "authorization",
    "bearer",
    "cookie",
    "set_cookie",
})

# A name containing any of these is sensitive (x_api_key, x_signature, hmac_secret, ...)
SENSITIVE_PARTS = ("key", "token", "secret", "password", "signature", "cookie")

# Env vars whose values are scrubbed from free text and string fields
SECRET_ENV_VARS = ("API_AUTH_KEY", "HMAC_SECRET", "DATABASE_URL")

_DIGEST = re.compile(r"\b[a-f0-9]{64}\b")
_BEARER = re.compile(r"Bearer\s+[A-Za-z0-9\-_\.]+", re.IGNORECASE)


def _normalise(name: str) -> str:
    return name.strip().lower().replace("-", "_").replace(" ", "_")


def is_sensitive_key(name: str) -> bool:
    """True for header or field names whose value must be redacted."""
    key = _normalise(name)
    return key in SENSITIVE_NAMES or any(part in key for part in SENSITIVE_PARTS)


def _get_env_values_to_redact() -> Set[str]:
    """Current values of the secret env vars, ignoring trivial ones."""
    values = (os.environ.get(name, "") for name in SECRET_ENV_VARS)
    return {value for value in values if len(value) >= MIN_SECRET_LENGTH}


def seed_fingerprint(seed: Optional[str]) -> Optional[str]:
    """Short one-way id for a seed, so log lines about one ride can be joined."""
    if not seed:
        return None
    return "seed-" + hashlib.sha256(seed.encode("utf-8")).hexdigest()[:10]


def sanitize_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Copy of a header mapping with credential headers redacted."""
    if not headers:
        return {}
    return {
        str(name): REDACTED if is_sensitive_key(str(name)) else str(value)
        for name, value in headers.items()
    }


def _clean(value: Any, secrets: Set[str], depth: int) -> Any:
    if depth > MAX_DEPTH:
        return value
    if isinstance(value, Mapping):
        return {
            str(k): REDACTED if is_sensitive_key(str(k)) else _clean(v, secrets, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_clean(item, secrets, depth + 1) for item in value]
    if isinstance(value, str) and value in secrets:
        return REDACTED
    return value


def sanitize_dict(data: Optional[Mapping[str, Any]], depth: int = 0) -> Dict[str, Any]:
    """
    Redacted copy of a (possibly nested) payload.

    Sensitive keys are replaced at any depth, including inside lists of
    records such as ticket selections. String values equal to a configured
    secret are replaced too. The input is never modified.
    """
    if not data:
        return {}
    return _clean(data, _get_env_values_to_redact(), depth)


def sanitize(text: str, redact_tokens: bool = True) -> str:
    """Scrub secret env values and, unless disabled, bearer tokens and 64-char hex digests."""
    if not text:
        return text

    for secret in _get_env_values_to_redact():
        text = text.replace(secret, REDACTED)

    if redact_tokens:
        text = _BEARER.sub(REDACTED, text)
        text = _DIGEST.sub(REDACTED, text)
    return text


def redact_sensitive(data: Union[str, Dict, None]) -> Union[str, Dict, None]:
    if isinstance(data, dict):
        return sanitize_dict(data)
    if isinstance(data, str):
        return sanitize(data)
    return data
