from __future__ import annotations

import logging
import re
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from jose import JWTError

from ephemeral_notes.auth import errors
from ephemeral_notes.auth.errors import AuthError
from ephemeral_notes.logging_setup import mask_user_id
from ephemeral_notes.storage.users_store import RevokedTokens, UserRecord, UsersStore
from ephemeral_notes.utils.auth_hash import hash_password, verify_password
from ephemeral_notes.utils.jwt_auth import create_access_token, decode_token

logger = logging.getLogger("ephemeral_notes.auth")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

USER_REGISTERED = "user_registered"
SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"


@dataclass(frozen=True)
class Identity:
    uid: str
    display_name: Optional[str]
    email: Optional[str]
    provider: str

    @classmethod
    def from_record(cls, rec: UserRecord) -> "Identity":
        return cls(uid=rec.uid, display_name=rec.display_name, email=rec.email, provider=rec.provider)


@dataclass(frozen=True)
class TokenClaims:
    jti: str
    expires_at: datetime


IdentityListener = Callable[[str, Identity], None]


class IdentityProvider:
    """Email/password and federated accounts, bearer tokens, and identity-change events."""

    def __init__(self, users: UsersStore, revoked: RevokedTokens):
        self.users = users
        self.revoked = revoked
        self._listeners: list[IdentityListener] = []
        self._lock = threading.Lock()

    # -- identity-change subscription ---------------------------------

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, event: str, identity: Identity) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event, identity)

    # -- email/password ------------------------------------------------

    @staticmethod
    def _validate_credentials(email: str, password: str) -> str:
        email = (email or "").strip()
        if not email:
            raise AuthError(errors.INVALID_EMAIL, "Email is required.")
        if not EMAIL_RE.match(email):
            raise AuthError(errors.INVALID_EMAIL, "Enter a valid email address.")
        if not password:
            raise AuthError(errors.WEAK_PASSWORD, "Password is required.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(
                errors.WEAK_PASSWORD,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
            )
        return email.lower()

    def register(self, email: str, password: str, display_name: Optional[str] = None) -> Identity:
        email = self._validate_credentials(email, password)
        if self.users.find_by_email(email) is not None:
            raise AuthError(errors.EMAIL_IN_USE, "Email already registered")

        rec = self.users.create(
            uuid.uuid4().hex,
            email=email,
            hashed_password=hash_password(password),
            display_name=display_name or email.split("@", 1)[0],
        )
        identity = Identity.from_record(rec)
        logger.info("USER_REGISTERED uid=%s provider=password", mask_user_id(identity.uid))
        self._publish(USER_REGISTERED, identity)
        return identity

    def sign_in(self, email: str, password: str) -> Identity:
        email = self._validate_credentials(email, password)
        rec = self.users.find_by_email(email)
        if rec is None or rec.hashed_password is None:
            logger.warning("AUTH_DENY reason=unknown_email")
            raise AuthError(errors.INVALID_CREDENTIAL, "Invalid credentials")
        if not verify_password(password, rec.hashed_password):
            logger.warning("AUTH_DENY reason=bad_password uid=%s", mask_user_id(rec.uid))
            raise AuthError(errors.INVALID_CREDENTIAL, "Invalid credentials")

        identity = Identity.from_record(rec)
        logger.info("SIGNED_IN uid=%s provider=password", mask_user_id(identity.uid))
        self._publish(SIGNED_IN, identity)
        return identity

    # -- federated -----------------------------------------------------

    def sign_in_federated(
        self,
        provider: str,
        subject: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Identity:
        rec = self.users.find_by_subject(provider, subject)
        if rec is None:
            rec = self.users.create(
                uuid.uuid4().hex,
                email=email,
                hashed_password=None,
                display_name=display_name or (email.split("@", 1)[0] if email else None),
                provider=provider,
                provider_subject=subject,
            )
            identity = Identity.from_record(rec)
            logger.info("USER_REGISTERED uid=%s provider=%s", mask_user_id(identity.uid), provider)
            self._publish(USER_REGISTERED, identity)

        identity = Identity.from_record(rec)
        logger.info("SIGNED_IN uid=%s provider=%s", mask_user_id(identity.uid), provider)
        self._publish(SIGNED_IN, identity)
        return identity

    # -- tokens --------------------------------------------------------

    def issue_token(self, identity: Identity) -> str:
        return create_access_token(
            subject=identity.uid,
            claims={"name": identity.display_name, "provider": identity.provider},
        )

    def resolve_token(self, token: str) -> tuple[Identity, TokenClaims]:
        try:
            payload = decode_token(token)
        except JWTError:
            raise AuthError(errors.INVALID_TOKEN, "Invalid or expired token")

        sub = payload.get("sub")
        jti = payload.get("jti")
        if not sub or not jti:
            raise AuthError(errors.INVALID_TOKEN, "Invalid token")
        if self.revoked.is_revoked(jti):
            raise AuthError(errors.INVALID_TOKEN, "Token has been revoked")

        rec = self.users.get(sub)
        if rec is None:
            raise AuthError(errors.INVALID_TOKEN, "Unknown user")

        claims = TokenClaims(jti=jti, expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc))
        return Identity.from_record(rec), claims

    def sign_out(self, identity: Identity, claims: TokenClaims) -> None:
        self.revoked.revoke(claims.jti, identity.uid, claims.expires_at)
        logger.info("SIGNED_OUT uid=%s", mask_user_id(identity.uid))
        self._publish(SIGNED_OUT, identity)
