"""
AUTH.PY - API Authentication Utilities

Single source of truth for API authentication across all routers.

Two accepted methods:
    1. X-API-Key header, compared in constant time
    2. HMAC-SHA256 signature: X-Signature + X-Timestamp (epoch ms) over
           "{timestamp}\\n{METHOD}\\n{path}\\n{body}"
       Timestamps outside the skew window are rejected, and each signature
       is accepted once (replay cache).

The replay cache is a bounded object owned by the Authenticator instance
stored on app.state, so independent apps (and tests) never share it.

Usage:
    from core.auth import verify_api_key

    @router.post("/protected")
    async def protected_endpoint(auth: bool = Depends(verify_api_key)):
        return {"status": "ok"}
"""

import hashlib
import hmac
import logging
import time
from collections import OrderedDict
from typing import Optional

from fastapi import Header, HTTPException, Request

from env_config import Config

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ReplayCache:
    """Fixed-capacity map of seen signatures -> request timestamp (ms)."""

    def __init__(self, max_entries: int = 10000, max_age_ms: int = 300000):
        self.max_entries = max(1, max_entries)
        self.max_age_ms = max_age_ms
        self._seen: "OrderedDict[str, int]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, signature: str) -> bool:
        return signature in self._seen

    def prune(self, now_ms: int) -> None:
        expired = [sig for sig, ts in self._seen.items() if now_ms - ts > self.max_age_ms]
        for sig in expired:
            del self._seen[sig]

        if len(self._seen) <= self.max_entries:
            return

        overflow = len(self._seen) - self.max_entries
        oldest = sorted(self._seen.items(), key=lambda item: item[1])[:overflow]
        for sig, _ in oldest:
            del self._seen[sig]

    def check_and_remember(self, signature: str, request_ms: int, now_ms: int) -> bool:
        """True the first time a signature is seen, False on replay."""
        self.prune(now_ms)
        if signature in self._seen:
            return False
        self._seen[signature] = request_ms
        self.prune(now_ms)
        return True


class HmacVerifier:
    def __init__(self, secret: str, max_skew_ms: int = 300000, replay_cache: Optional[ReplayCache] = None):
        self.secret = secret or ""
        self.max_skew_ms = max_skew_ms
        self.replay_cache = replay_cache or ReplayCache(max_age_ms=max_skew_ms)

    def sign(self, timestamp: str, method: str, path: str, body: str = "") -> str:
        message = f"{timestamp}\n{method.upper()}\n{path}\n{body}"
        return hmac.new(self.secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, signature: str, timestamp: str, method: str, path: str, body: str = "",
               now_ms: Optional[int] = None) -> bool:
        if not self.secret:
            return False
        try:
            request_ms = int(timestamp)
        except (TypeError, ValueError):
            return False

        now_ms = _now_ms() if now_ms is None else now_ms
        if abs(now_ms - request_ms) > self.max_skew_ms:
            return False

        expected = self.sign(timestamp, method, path, body)
        # Header values can carry any latin-1 text; compare as bytes
        if not hmac.compare_digest(expected.encode("ascii"), signature.lower().encode("utf-8")):
            return False

        return self.replay_cache.check_and_remember(signature.lower(), request_ms, now_ms)


class Authenticator:
    def __init__(self, api_key: Optional[str], hmac_verifier: HmacVerifier, enabled: bool = True):
        self.api_key = api_key or ""
        self.hmac_verifier = hmac_verifier
        self.enabled = enabled

        if self.enabled and not self.api_key and not self.hmac_verifier.secret:
            logger.warning("API_AUTH_ENABLED is true but no API key or HMAC secret set - all requests rejected")

    def check_api_key(self, provided: str) -> bool:
        if not self.api_key:
            return False
        return hmac.compare_digest(self.api_key.encode("utf-8"), provided.encode("utf-8"))

    @classmethod
    def from_config(cls, config=Config) -> "Authenticator":
        verifier = HmacVerifier(
            secret=config.HMAC_SECRET,
            max_skew_ms=config.HMAC_MAX_SKEW_MS,
            replay_cache=ReplayCache(
                max_entries=config.HMAC_REPLAY_CACHE_SIZE,
                max_age_ms=config.HMAC_MAX_SKEW_MS,
            ),
        )
        return cls(api_key=config.API_AUTH_KEY, hmac_verifier=verifier, enabled=config.API_AUTH_ENABLED)


def _request_target(request: Request) -> str:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return path


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    x_signature: Optional[str] = Header(None, alias="X-Signature"),
    x_timestamp: Optional[str] = Header(None, alias="X-Timestamp"),
):
    """
    Verify X-API-Key or HMAC signature if authentication is enabled.

    Returns:
        True if authentication passes

    Raises:
        HTTPException: 401 on missing or invalid credentials
    """
    authenticator: Authenticator = request.app.state.authenticator
    if not authenticator.enabled:
        return True  # Auth disabled, allow all

    if x_api_key:
        if authenticator.check_api_key(x_api_key):
            return True
        logger.warning("Rejected request with invalid API key", extra={"path": request.url.path})
        raise HTTPException(status_code=401, detail="Invalid API key")

    if x_signature and x_timestamp:
        body = (await request.body()).decode("utf-8", errors="replace")
        if authenticator.hmac_verifier.verify(x_signature, x_timestamp, request.method, _request_target(request), body):
            return True
        logger.warning("Rejected request with invalid signature", extra={"path": request.url.path})
        raise HTTPException(status_code=401, detail="Invalid signature")

    raise HTTPException(
        status_code=401,
        detail="Authentication required. Provide X-API-Key or X-Signature header.",
    )


__all__ = [
    'ReplayCache',
    'HmacVerifier',
    'Authenticator',
    'verify_api_key',
]
