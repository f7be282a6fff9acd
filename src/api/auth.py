"""Request signing for trade-mutating endpoints.

  X-API-Key     shared key (when API_KEY is configured)
  X-User-Id     must equal the body ``userId`` when both are present
  X-Timestamp   unix seconds, within ±300s of server time
  X-Nonce       single use within its TTL (10 min)
  X-Signature   hex HMAC-SHA256(secret, METHOD\\nURI\\ntimestamp\\nnonce\\nbody)
"""

import hashlib
import hmac
import json
import threading
import time
from collections.abc import Callable

from fastapi import HTTPException, status

DEFAULT_NONCE_TTL_SEC = 600
DEFAULT_SIGNATURE_WINDOW_SEC = 300


def build_signature_payload(method: str, uri: str, timestamp: str, nonce: str, body: bytes) -> bytes:
    return f"{method}\n{uri}\n{timestamp}\n{nonce}\n".encode() + body


def sign_request(secret: str, method: str, uri: str, timestamp: str, nonce: str, body: bytes) -> str:
    payload = build_signature_payload(method, uri, timestamp, nonce, body)
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


class NonceCache:
    """Seen-nonce set with a TTL.

    Entries are inserted in clock order, so the dict's head is always the
    oldest; each check pops expired entries from the front and stops at the
    first live one.
    """

    def __init__(
        self, ttl_sec: float = DEFAULT_NONCE_TTL_SEC, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def seen_or_add(self, nonce: str) -> bool:
        """True if ``nonce`` was already used within the TTL; otherwise record it."""
        now = self._clock()
        with self._lock:
            while self._seen:
                oldest, seen_at = next(iter(self._seen.items()))
                if now - seen_at <= self._ttl:
                    break
                del self._seen[oldest]
            if nonce in self._seen:
                return True
            self._seen[nonce] = now
            return False


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def check_api_key(expected: str, provided: str | None) -> None:
    if expected and not hmac.compare_digest(provided or "", expected):
        raise _unauthorized("unauthorized")


def body_user_id(body: bytes) -> str:
    if not body:
        return ""
    try:
        payload = json.loads(body)
    except ValueError:
        return ""
    if isinstance(payload, dict) and isinstance(payload.get("userId"), str):
        return payload["userId"]
    return ""


def check_user_match(header_user: str | None, body: bytes) -> None:
    from_body = body_user_id(body)
    if header_user and from_body and header_user != from_body:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="userId mismatch")


def verify_signature(
    *,
    secret: str,
    method: str,
    uri: str,
    timestamp: str | None,
    nonce: str | None,
    signature: str | None,
    body: bytes,
    nonce_cache: NonceCache,
    window_sec: int = DEFAULT_SIGNATURE_WINDOW_SEC,
    now: float | None = None,
) -> None:
    """Raise 401 unless the request carries a fresh, valid, unused signature.

    No-op when no secret is configured.
    """
    if not secret:
        return
    if not timestamp or not nonce or not signature:
        raise _unauthorized("missing signature headers")
    try:
        ts = int(timestamp)
    except ValueError:
        raise _unauthorized("invalid timestamp")
    current = int(now if now is not None else time.time())
    if abs(current - ts) > window_sec:
        raise _unauthorized("timestamp out of range")

    expected = sign_request(secret, method, uri, timestamp, nonce, body)
    if not hmac.compare_digest(expected, signature.lower()):
        raise _unauthorized("invalid signature")
    if nonce_cache.seen_or_add(nonce):
        raise _unauthorized("nonce replay")
