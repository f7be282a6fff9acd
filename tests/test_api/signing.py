"""Signed-request helpers shared by the API tests."""

import json
import time
import uuid

from src.api.auth import sign_request

API_KEY = "test-api-key"
SECRET = "test-hmac-secret"
MASTER = "test-master-key"
TX_HASH = "0x" + "cd" * 32


def signed_headers(
    method: str,
    uri: str,
    body: bytes = b"",
    *,
    user_id: str = "",
    timestamp: int | None = None,
    nonce: str | None = None,
) -> dict[str, str]:
    ts = str(timestamp if timestamp is not None else int(time.time()))
    nonce = nonce or uuid.uuid4().hex
    headers = {
        "X-API-Key": API_KEY,
        "X-Timestamp": ts,
        "X-Nonce": nonce,
        "X-Signature": sign_request(SECRET, method, uri, ts, nonce, body),
        "Content-Type": "application/json",
    }
    if user_id:
        headers["X-User-Id"] = user_id
    return headers


def json_body(payload: dict) -> bytes:
    return json.dumps(payload).encode()
