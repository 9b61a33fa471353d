from __future__ import annotations

import logging
from typing import Any

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

from vsight.errors import AuthenticationRequired, UpstreamError
from vsight.utils import error_message


logger = logging.getLogger(__name__)


class GoogleApiClient:
    """Bearer-token REST access shared by the Google API adapters.

    The access token comes from the signed-in user's session and is never
    refreshed here; an expired token surfaces as the upstream 401.
    """

    SERVICE = "Google API"
    HTTP_TIMEOUT_SEC = 40

    def __init__(
        self,
        access_token: str,
        timeout_sec: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.access_token = (access_token or "").strip()
        self.timeout_sec = int(timeout_sec or self.HTTP_TIMEOUT_SEC)
        self._session = session

    def _build_session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        if not self.access_token:
            raise AuthenticationRequired()
        credentials = Credentials(token=self.access_token)
        self._session = AuthorizedSession(credentials, refresh_status_codes=())
        return self._session

    def _request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        session = self._build_session()
        logger.debug("%s %s %s", self.SERVICE, method.upper(), url)
        response = session.request(method.upper(), url, timeout=self.timeout_sec, **kwargs)

        text = response.text or ""
        if text.lstrip().startswith("<"):
            logger.warning("%s returned HTML (%s) for %s", self.SERVICE, response.status_code, url)
            raise UpstreamError(
                502,
                f"{self.SERVICE} returned non-JSON (HTML). Enable the API and verify access.",
                service=self.SERVICE,
            )
        if not response.ok:
            message = error_message(response, f"{self.SERVICE} error")
            logger.warning("%s request failed (%s): %s", self.SERVICE, response.status_code, message)
            raise UpstreamError(response.status_code, message, service=self.SERVICE)
        if not text.strip():
            return {}

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(502, f"{self.SERVICE} returned invalid JSON.", service=self.SERVICE) from exc
        if isinstance(payload, dict):
            return payload
        raise UpstreamError(502, f"{self.SERVICE} returned non-object payload.", service=self.SERVICE)

    def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._request_json("GET", url, params=params)

    def _post(self, url: str, body: Any, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self._request_json("POST", url, json=body, params=params)
