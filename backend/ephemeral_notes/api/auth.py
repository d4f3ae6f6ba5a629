from __future__ import annotations

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from ephemeral_notes.api.deps import get_current_identity, get_current_session
from ephemeral_notes.auth import errors
from ephemeral_notes.auth.errors import AuthError
from ephemeral_notes.auth.federated import FederatedProfile, RedirectRequired
from ephemeral_notes.auth.identity import Identity, TokenClaims
from ephemeral_notes.backend import Backend, get_backend
from ephemeral_notes.models.auth import (
    IdentityOut,
    LoginRequest,
    PopupSignInRequest,
    RedirectResponseOut,
    RegisterRequest,
    TokenResponse,
)
from ephemeral_notes.storage.document_store import StorageError

logger = logging.getLogger("ephemeral_notes.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


def _identity_out(identity: Identity) -> IdentityOut:
    return IdentityOut(
        uid=identity.uid,
        display_name=identity.display_name,
        email=identity.email,
        provider=identity.provider,
    )


def _token_response(backend: Backend, identity: Identity) -> TokenResponse:
    return TokenResponse(access_token=backend.identity.issue_token(identity), user=_identity_out(identity))


def _http_error(exc: AuthError) -> HTTPException:
    # an empty redirect callback is routine, not worth a log line
    if exc.status_code >= 500:
        logger.error("AUTH_PROVIDER_ERROR code=%s message=%s", exc.code, exc.message)
    elif exc.code != errors.NO_AUTH_EVENT:
        logger.warning("AUTH_ERROR code=%s", exc.code)
    return HTTPException(status_code=exc.status_code, detail=exc.describe())


def _storage_http_error(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Code: {exc.code}. Message: {exc.message}",
    )


@router.post("/register", response_model=IdentityOut, status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, backend: Backend = Depends(get_backend)) -> IdentityOut:
    try:
        identity = backend.identity.register(req.email, req.password, req.display_name)
    except AuthError as exc:
        raise _http_error(exc)
    except StorageError as exc:
        raise _storage_http_error(exc)
    return _identity_out(identity)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, backend: Backend = Depends(get_backend)) -> TokenResponse:
    try:
        identity = backend.identity.sign_in(req.email, req.password)
    except AuthError as exc:
        raise _http_error(exc)
    except StorageError as exc:
        raise _storage_http_error(exc)
    return _token_response(backend, identity)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    session: tuple[Identity, TokenClaims] = Depends(get_current_session),
    backend: Backend = Depends(get_backend),
) -> None:
    identity, claims = session
    backend.identity.sign_out(identity, claims)
    return None


@router.get("/me", response_model=IdentityOut)
def me(identity: Identity = Depends(get_current_identity)) -> IdentityOut:
    return _identity_out(identity)


# Federated sign-in: popup first, redirect when the popup cannot be used


@router.post("/oauth/google/popup", response_model=Union[TokenResponse, RedirectResponseOut])
def google_popup(req: PopupSignInRequest, backend: Backend = Depends(get_backend)):
    def popup() -> FederatedProfile:
        if req.error_code:
            raise AuthError(req.error_code, req.error_message or "")
        if not req.credential:
            raise AuthError("auth/argument-error", "A credential or an error code is required")
        return backend.google.client.verify_id_token(req.credential)

    try:
        result = backend.google.sign_in(popup)
    except AuthError as exc:
        raise _http_error(exc)
    except StorageError as exc:
        raise _storage_http_error(exc)

    if isinstance(result, RedirectRequired):
        return RedirectResponseOut(redirect_url=result.redirect_url)
    return _token_response(backend, result)


@router.get("/oauth/google/redirect")
def google_redirect(backend: Backend = Depends(get_backend)) -> RedirectResponse:
    try:
        target = backend.google.begin_redirect()
    except AuthError as exc:
        raise _http_error(exc)
    return RedirectResponse(target.redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/oauth/google/callback", response_model=TokenResponse)
def google_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    backend: Backend = Depends(get_backend),
) -> TokenResponse:
    try:
        identity = backend.google.complete_redirect(code, state)
    except AuthError as exc:
        raise _http_error(exc)
    except StorageError as exc:
        raise _storage_http_error(exc)
    return _token_response(backend, identity)
