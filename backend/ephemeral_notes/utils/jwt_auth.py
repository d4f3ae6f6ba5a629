from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from ephemeral_notes.config import get_settings


def _secret() -> str:
    s = get_settings().JWT_SECRET
    if not s:
        # tests/dev set it in env; production must configure it
        raise RuntimeError("JWT_SECRET is not set")
    return s


def _algo() -> str:
    return get_settings().JWT_ALGORITHM


def create_access_token(subject: str, claims: Optional[dict[str, Any]] = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=get_settings().JWT_EXP_MINUTES)
    payload = dict(claims or {})
    payload.update({
        "sub": subject,
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    })
    return jwt.encode(payload, _secret(), algorithm=_algo())


def decode_token(token: str) -> dict:
    return jwt.decode(token, _secret(), algorithms=[_algo()])


def create_state_token(purpose: str, minutes: int = 10) -> str:
    """Short-lived signed value round-tripped through a third party (OAuth ``state``)."""
    now = datetime.now(timezone.utc)
    payload = {
        "purpose": purpose,
        "nonce": uuid.uuid4().hex,
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, _secret(), algorithm=_algo())


def verify_state_token(token: str, purpose: str) -> bool:
    try:
        payload = decode_token(token)
    except JWTError:
        return False
    return payload.get("purpose") == purpose
