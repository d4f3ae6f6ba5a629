"""Password hashing helpers using passlib.

Provides the two functions used by the email/password sign-in flow:
- hash_password(plain: str) -> str
- verify_password(plain: str, hashed: str) -> bool

Uses bcrypt via passlib's CryptContext. The bcrypt cost can be set with the
``BCRYPT_ROUNDS`` setting. When the bcrypt backend cannot be loaded the
context falls back to pbkdf2_sha256 and a RuntimeWarning is issued.
"""
from __future__ import annotations

import logging
import warnings

from passlib.context import CryptContext

from ephemeral_notes.config import get_settings

logger = logging.getLogger("ephemeral_notes.auth")

_contexts: dict[int | None, CryptContext] = {}


def _build_context(rounds: int | None) -> CryptContext:
    try:
        if rounds:
            ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)
        else:
            ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
        ctx.hash("test")
        return ctx
    except Exception as exc:
        warnings.warn(
            "bcrypt backend not available or failed to initialize; falling back to pbkdf2_sha256. "
            f"Original error: {exc}",
            RuntimeWarning,
        )
    if rounds:
        return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto", pbkdf2_sha256__rounds=max(rounds, 1000))
    return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def pwd_context() -> CryptContext:
    rounds = get_settings().BCRYPT_ROUNDS
    if rounds not in _contexts:
        _contexts[rounds] = _build_context(rounds)
    return _contexts[rounds]


def hash_password(plain: str) -> str:
    """Hash a plaintext password and return the encoded hash string."""
    if plain is None:
        raise ValueError("Password must not be None")
    return pwd_context().hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against a stored hash.

    Returns True if the password matches, False otherwise.
    """
    if plain is None or hashed is None:
        return False
    try:
        return pwd_context().verify(plain, hashed)
    except (ValueError, TypeError):
        logger.warning("PASSWORD_VERIFY_UNREADABLE_HASH")
        return False
