from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone

from fastapi import Header

from bemestar.domain.errors import NotAuthenticated
from bemestar.settings import env_int, env_str

JWT_SECRET = env_str("JWT_SECRET", "dev-secret") or "dev-secret"
JWT_TTL_MINUTES = env_int("JWT_TTL_MINUTES", 480, min_value=1)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(raw: str) -> bytes:
    padding = "=" * (-len(raw) % 4)
    return base64.urlsafe_b64decode(raw + padding)


def _sign(message: bytes) -> str:
    digest = hmac.new(JWT_SECRET.encode("utf-8"), message, hashlib.sha256).digest()
    return _b64url_encode(digest)


def encode_jwt(payload: dict[str, object]) -> str:
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signature = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"))
    return f"{header_b64}.{payload_b64}.{signature}"


def decode_jwt(token: str) -> dict[str, object]:
    try:
        header_b64, payload_b64, signature = token.split(".")
    except ValueError as exc:
        raise ValueError("invalid token") from exc

    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    if not hmac.compare_digest(signature, _sign(signing_input)):
        raise ValueError("invalid signature")

    try:
        payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("invalid payload") from exc
    if not isinstance(payload, dict):
        raise ValueError("invalid payload")
    exp = payload.get("exp")
    if isinstance(exp, (int, float)) and datetime.now(timezone.utc).timestamp() > exp:
        raise ValueError("token expired")
    return payload


def issue_token(caller_id: str, *, ttl_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=ttl_minutes or JWT_TTL_MINUTES)
    return encode_jwt(
        {
            "sub": str(caller_id),
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
    )


def get_current_caller(authorization: str | None = Header(default=None)) -> str:
    """Caller id from the bearer token. Profile lookups happen in scope resolution."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise NotAuthenticated("missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise NotAuthenticated("missing bearer token")
    try:
        payload = decode_jwt(token)
    except ValueError as exc:
        raise NotAuthenticated(str(exc)) from exc
    caller_id = payload.get("sub")
    if not isinstance(caller_id, str) or not caller_id.strip():
        raise NotAuthenticated("invalid token subject")
    return caller_id
