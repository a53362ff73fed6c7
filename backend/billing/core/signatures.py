"""Webhook signature verification.

Two on-wire formats are supported:

* ``paddle``: ``Paddle-Signature: ts=1671552777;h1=<hex>`` where the HMAC-SHA256
  is computed over ``b"<ts>:" + raw_body``. Several ``h1`` values may be present
  while a secret is being rotated.
* ``raw``: the header carries the bare HMAC-SHA256 of the body, hex or base64
  encoded.

All checks run on the raw request bytes before anything is parsed as JSON.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

SCHEME_PADDLE = "paddle"
SCHEME_RAW = "raw"
SCHEMES = (SCHEME_PADDLE, SCHEME_RAW)


def _to_bytes(value: bytes | str | None) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def compute_digest(secret: bytes | str, message: bytes) -> bytes:
    return hmac.new(_to_bytes(secret), message, hashlib.sha256).digest()


def parse_paddle_header(header: str) -> tuple[str | None, list[str]]:
    ts: str | None = None
    signatures: list[str] = []
    for part in (header or "").split(";"):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if key == "ts" and value:
            ts = value
        elif key == "h1" and value:
            signatures.append(value)
    return ts, signatures


def build_paddle_header(raw_body: bytes, secret: bytes | str, ts: int | None = None) -> str:
    ts = int(time.time()) if ts is None else int(ts)
    digest = compute_digest(secret, f"{ts}:".encode("ascii") + raw_body).hex()
    return f"ts={ts};h1={digest}"


def build_raw_header(raw_body: bytes, secret: bytes | str) -> str:
    return base64.b64encode(compute_digest(secret, raw_body)).decode("ascii")


def _decode_supplied(value: str) -> bytes | None:
    v = (value or "").strip()
    if not v:
        return None
    if len(v) == 64:
        try:
            return bytes.fromhex(v)
        except ValueError:
            pass
    try:
        return base64.b64decode(v, validate=True)
    except (binascii.Error, ValueError):
        return None


def _verify_paddle(
    raw_body: bytes,
    header: str,
    secret: bytes,
    max_age_s: int,
    now: float | None,
) -> bool:
    ts, supplied = parse_paddle_header(header)
    if ts is None or not supplied:
        logger.info("signatures.paddle.unparseable_header")
        return False
    try:
        ts_value = int(ts)
    except ValueError:
        return False
    if max_age_s and max_age_s > 0:
        current = time.time() if now is None else now
        if abs(current - ts_value) > max_age_s:
            logger.warning("signatures.paddle.stale ts=%s max_age_s=%s", ts_value, max_age_s)
            return False
    expected = compute_digest(secret, ts.encode("utf-8") + b":" + raw_body)
    matched = False
    for candidate in supplied:
        decoded = _decode_supplied(candidate)
        # keep looping so every candidate costs the same
        if decoded is not None and hmac.compare_digest(expected, decoded):
            matched = True
    return matched


def _verify_raw(raw_body: bytes, header: str, secret: bytes) -> bool:
    decoded = _decode_supplied(header)
    if decoded is None:
        return False
    return hmac.compare_digest(compute_digest(secret, raw_body), decoded)


def verify_signature(
    raw_body: bytes,
    signature_header: str | None,
    shared_secret: bytes | str | None,
    *,
    scheme: str = SCHEME_PADDLE,
    max_age_s: int = 0,
    now: float | None = None,
) -> bool:
    body = _to_bytes(raw_body)
    header = (signature_header or "").strip()
    secret = _to_bytes(shared_secret)
    if scheme not in SCHEMES:
        logger.error("signatures.unknown_scheme scheme=%s", scheme)
        return False
    if not body or not header or not secret:
        return False
    if scheme == SCHEME_PADDLE:
        return _verify_paddle(body, header, secret, max_age_s, now)
    return _verify_raw(body, header, secret)
