from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

from ephemeral_notes.storage.document_store import DocumentStore

USERS = "users"
REVOKED_TOKENS = "revoked_tokens"


@dataclass(frozen=True)
class UserRecord:
    uid: str
    email: Optional[str]
    hashed_password: Optional[str]
    display_name: Optional[str]
    provider: str
    provider_subject: Optional[str]
    created_at: str


class UsersStore:
    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def get(self, uid: str) -> Optional[UserRecord]:
        raw = self.documents.get(USERS, uid)
        if raw is None:
            return None
        return UserRecord(**raw)

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        docs = self.documents.query(USERS, "email", email.lower())
        return UserRecord(**docs[0].data) if docs else None

    def find_by_subject(self, provider: str, subject: str) -> Optional[UserRecord]:
        for doc in self.documents.query(USERS, "provider_subject", subject):
            if doc.data.get("provider") == provider:
                return UserRecord(**doc.data)
        return None

    def create(
        self,
        uid: str,
        *,
        email: Optional[str],
        hashed_password: Optional[str],
        display_name: Optional[str],
        provider: str = "password",
        provider_subject: Optional[str] = None,
    ) -> UserRecord:
        rec = UserRecord(
            uid=uid,
            email=email.lower() if email else None,
            hashed_password=hashed_password,
            display_name=display_name,
            provider=provider,
            provider_subject=provider_subject,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.documents.create(USERS, uid, asdict(rec))
        return rec


class RevokedTokens:
    """Token ids invalidated by sign-out, kept until the token would have expired anyway."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def revoke(self, jti: str, uid: str, expires_at: datetime) -> None:
        self.documents.set(REVOKED_TOKENS, jti, {"jti": jti, "uid": uid, "expires_at": expires_at.isoformat()})

    def is_revoked(self, jti: str) -> bool:
        return self.documents.get(REVOKED_TOKENS, jti) is not None
