from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ephemeral_notes.auth.errors import AuthError
from ephemeral_notes.auth.identity import Identity, TokenClaims
from ephemeral_notes.backend import Backend, get_backend
from ephemeral_notes.notes.service import NoteContext

logger = logging.getLogger("ephemeral_notes.auth")

bearer = HTTPBearer(auto_error=False)


def _resolve(creds: HTTPAuthorizationCredentials, backend: Backend) -> tuple[Identity, TokenClaims]:
    try:
        return backend.identity.resolve_token(creds.credentials)
    except AuthError as exc:
        logger.warning("AUTH_DENY reason=%s", exc.code)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.message)


def get_current_session(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    backend: Backend = Depends(get_backend),
) -> tuple[Identity, TokenClaims]:
    if creds is None or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing credentials")
    return _resolve(creds, backend)


def get_current_identity(session: tuple[Identity, TokenClaims] = Depends(get_current_session)) -> Identity:
    return session[0]


def get_optional_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    backend: Backend = Depends(get_backend),
) -> Optional[Identity]:
    """Anonymous callers get None; a bad token is still rejected."""
    if creds is None or creds.scheme.lower() != "bearer":
        return None
    return _resolve(creds, backend)[0]


def get_note_context(
    identity: Optional[Identity] = Depends(get_optional_identity),
    backend: Backend = Depends(get_backend),
) -> NoteContext:
    return NoteContext(identity=identity, notes=backend.notes, settings=backend.settings)
