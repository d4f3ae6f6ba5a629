"""Federated (OAuth) sign-in.

Sign-in is attempted through a popup first. When the popup cannot be shown
the flow switches to a full-page redirect instead of reporting an error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union
from urllib.parse import urlencode, urlparse

import httpx

from ephemeral_notes.auth import errors
from ephemeral_notes.auth.errors import AuthError
from ephemeral_notes.auth.identity import Identity, IdentityProvider
from ephemeral_notes.config import Settings
from ephemeral_notes.utils.jwt_auth import create_state_token, verify_state_token

logger = logging.getLogger("ephemeral_notes.auth")

REDIRECT_FALLBACK_CODES = {errors.POPUP_BLOCKED, errors.OPERATION_NOT_SUPPORTED}


@dataclass(frozen=True)
class FederatedProfile:
    subject: str
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class RedirectRequired:
    redirect_url: str


class GoogleOAuthClient:
    provider = "google"

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.OAUTH_REDIRECT_URI
        self.authorized_domains = settings.authorized_domains
        self.transport = transport

    def _http(self) -> httpx.Client:
        return httpx.Client(timeout=10, transport=self.transport)

    def _require_configured(self) -> None:
        if not self.client_id:
            raise AuthError(errors.PROVIDER_NOT_CONFIGURED, "Google sign-in is not configured")

    def _require_authorized_domain(self) -> None:
        host = (urlparse(self.redirect_uri).hostname or "").lower()
        if host not in self.authorized_domains:
            logger.warning("AUTH_DENY reason=unauthorized_domain host=%s", host or "-")
            raise AuthError(errors.UNAUTHORIZED_DOMAIN, f"{host} is not an authorized domain")

    def verify_id_token(self, credential: str) -> FederatedProfile:
        """Popup result: an ID token obtained by the browser."""
        self._require_configured()
        self._require_authorized_domain()
        try:
            with self._http() as http:
                resp = http.get(self.TOKENINFO_URL, params={"id_token": credential})
        except httpx.HTTPError as exc:
            raise AuthError(errors.PROVIDER_ERROR, str(exc)) from exc

        if resp.status_code != 200:
            raise AuthError(errors.INVALID_CREDENTIAL, "Invalid ID token")
        data = resp.json()
        if data.get("aud") != self.client_id or not data.get("sub"):
            raise AuthError(errors.INVALID_CREDENTIAL, "ID token was issued for another client")
        return FederatedProfile(subject=data["sub"], email=data.get("email"), display_name=data.get("name"))

    def authorization_url(self) -> str:
        self._require_configured()
        self._require_authorized_domain()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "prompt": "select_account",
            "state": create_state_token(self.provider),
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, state: str) -> FederatedProfile:
        self._require_configured()
        if not verify_state_token(state, self.provider):
            raise AuthError(errors.INVALID_CREDENTIAL, "Invalid or expired sign-in state")
        try:
            with self._http() as http:
                token_resp = http.post(self.TOKEN_URL, data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                })
                if token_resp.status_code != 200:
                    raise AuthError(errors.INVALID_CREDENTIAL, "Authorization code was rejected")
                access_token = token_resp.json().get("access_token")
                info_resp = http.get(self.USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as exc:
            raise AuthError(errors.PROVIDER_ERROR, str(exc)) from exc

        if info_resp.status_code != 200:
            raise AuthError(errors.PROVIDER_ERROR, "Could not read the user profile")
        info = info_resp.json()
        if not info.get("sub"):
            raise AuthError(errors.PROVIDER_ERROR, "Profile has no subject")
        return FederatedProfile(subject=info["sub"], email=info.get("email"), display_name=info.get("name"))


class FederatedSignIn:
    def __init__(self, client: GoogleOAuthClient, identity: IdentityProvider):
        self.client = client
        self.identity = identity

    def _complete(self, profile: FederatedProfile) -> Identity:
        return self.identity.sign_in_federated(
            self.client.provider,
            profile.subject,
            email=profile.email,
            display_name=profile.display_name,
        )

    def sign_in(self, popup: Callable[[], FederatedProfile]) -> Union[Identity, RedirectRequired]:
        try:
            profile = popup()
        except AuthError as exc:
            if exc.code not in REDIRECT_FALLBACK_CODES:
                raise
            logger.info("OAUTH_REDIRECT_FALLBACK provider=%s reason=%s", self.client.provider, exc.code)
            return RedirectRequired(redirect_url=self.client.authorization_url())
        return self._complete(profile)

    def begin_redirect(self) -> RedirectRequired:
        return RedirectRequired(redirect_url=self.client.authorization_url())

    def complete_redirect(self, code: Optional[str], state: Optional[str]) -> Identity:
        if not code or not state:
            raise AuthError(errors.NO_AUTH_EVENT, "No pending redirect sign-in")
        return self._complete(self.client.exchange_code(code, state))
