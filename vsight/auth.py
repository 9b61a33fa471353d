from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import Request, Response
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from vsight.config import AppConfig
from vsight.errors import AuthenticationRequired, InvalidParameter, ProviderNotConfigured


logger = logging.getLogger(__name__)

SESSION_COOKIE = "vsight_session"
OAUTH_STATE_COOKIE = "vsight_oauth_state"
OAUTH_STATE_MAX_AGE_SEC = 600
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


@dataclass(frozen=True)
class UserSession:
    access_token: str
    email: str = "user"
    refresh_token: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UserSession":
        return cls(
            access_token=str(payload.get("access_token") or ""),
            email=str(payload.get("email") or "user"),
            refresh_token=str(payload.get("refresh_token") or ""),
        )


class SessionSigner:
    """Signed, time-limited cookie values for the session and OAuth state."""

    def __init__(self, secret: str, max_age_sec: int) -> None:
        self.max_age_sec = int(max_age_sec)
        self._sessions = URLSafeTimedSerializer(secret, salt="vsight-session")
        self._states = URLSafeTimedSerializer(secret, salt="vsight-oauth-state")

    def dumps_session(self, session: UserSession) -> str:
        return self._sessions.dumps(session.to_dict())

    def loads_session(self, raw: str) -> UserSession | None:
        try:
            payload = self._sessions.loads(raw, max_age=self.max_age_sec)
        except SignatureExpired:
            logger.info("Session cookie expired.")
            return None
        except BadSignature:
            logger.warning("Session cookie failed signature check.")
            return None
        if not isinstance(payload, dict):
            return None
        session = UserSession.from_dict(payload)
        return session if session.access_token else None

    def dumps_state(self, state: str, code_verifier: str | None) -> str:
        return self._states.dumps({"state": state, "code_verifier": code_verifier or ""})

    def loads_state(self, raw: str) -> dict[str, str]:
        try:
            payload = self._states.loads(raw, max_age=OAUTH_STATE_MAX_AGE_SEC)
        except BadSignature as exc:
            raise InvalidParameter("OAuth state expired or invalid; sign in again.") from exc
        return payload if isinstance(payload, dict) else {}


def signer_for(config: AppConfig) -> SessionSigner:
    return SessionSigner(config.session_secret, config.session_max_age_sec)


def _client_config(config: AppConfig) -> dict[str, Any]:
    return {
        "web": {
            "client_id": config.google_client_id,
            "client_secret": config.google_client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": [config.google_redirect_uri],
        }
    }


def build_flow(config: AppConfig, state: str | None = None, code_verifier: str | None = None) -> Flow:
    if not config.oauth_enabled:
        raise ProviderNotConfigured(
            "Google OAuth not configured. Required: GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET."
        )
    return Flow.from_client_config(
        _client_config(config),
        scopes=list(config.oauth_scopes),
        redirect_uri=config.google_redirect_uri,
        state=state,
        code_verifier=code_verifier or None,
    )


def authorization_url(config: AppConfig) -> tuple[str, str, str]:
    """Return ``(url, state, code_verifier)`` for the consent redirect."""
    flow = build_flow(config)
    url, state = flow.authorization_url(
        access_type="offline",
        prompt="consent",
        include_granted_scopes="true",
    )
    return url, state, getattr(flow, "code_verifier", None) or ""


def fetch_email(credentials: Credentials) -> str:
    response = AuthorizedSession(credentials).get(USERINFO_URL, timeout=20)
    if not response.ok:
        logger.warning("Userinfo lookup failed (%s).", response.status_code)
        return "user"
    payload = response.json()
    return str(payload.get("email") or "user")


def exchange_code(config: AppConfig, code: str, state: str, code_verifier: str = "") -> UserSession:
    flow = build_flow(config, state=state, code_verifier=code_verifier)
    # Google reports granted scopes in its own order and spelling.
    os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")
    flow.fetch_token(code=code)
    credentials = flow.credentials
    email = fetch_email(credentials)
    logger.info("Signed in %s", email)
    return UserSession(
        access_token=str(credentials.token or ""),
        email=email,
        refresh_token=str(credentials.refresh_token or ""),
    )


def set_session_cookie(response: Response, config: AppConfig, session: UserSession) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        signer_for(config).dumps_session(session),
        max_age=config.session_max_age_sec,
        httponly=True,
        secure=config.session_cookie_secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)


def session_from_request(request: Request, config: AppConfig) -> UserSession | None:
    raw = request.cookies.get(SESSION_COOKIE)
    if not raw:
        return None
    return signer_for(config).loads_session(raw)


def require_session(request: Request) -> UserSession:
    session = session_from_request(request, request.app.state.config)
    if session is None:
        raise AuthenticationRequired()
    return session
