from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv


try:
    load_dotenv(find_dotenv(usecwd=True), override=False)
except OSError:
    pass


SERP_PROVIDERS = ("brave", "dataforseo")

DEFAULT_OAUTH_SCOPES = (
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/analytics.readonly",
    "https://www.googleapis.com/auth/webmasters.readonly",
    "https://www.googleapis.com/auth/business.manage",
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
)


def _env(name: str, default: str = "") -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default.strip()
    value = raw.strip()
    placeholder = f"{name}="
    unquoted = value.strip("'\"").strip()
    if unquoted.lower() == placeholder.lower():
        return default.strip()
    return value if value else default.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str = "") -> tuple[str, ...]:
    raw = _env(name, default)
    values = [part.strip() for part in raw.split(",") if part.strip()]
    return tuple(values)


def _normalize_serp_provider(raw: str) -> str:
    return raw.strip().strip("'\"").lower()


@dataclass(frozen=True)
class AppConfig:
    session_secret: str
    session_max_age_sec: int
    session_cookie_secure: bool

    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str
    oauth_scopes: tuple[str, ...]

    serp_provider: str
    brave_api_key: str
    dataforseo_login: str
    dataforseo_password: str
    dataforseo_language: str

    encryption_key: str
    spreadsheet_prefix: str

    http_timeout_sec: int
    max_pages: int
    tracker_default_top_n: int
    tracker_max_rows: int

    preferences_path: str
    log_level: str

    llm_endpoint: str
    llm_api_key: str
    llm_api_version: str
    llm_model: str
    llm_temperature: float
    llm_timeout_sec: int

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            session_secret=_env("SESSION_SECRET", _env("NEXTAUTH_SECRET", "vsight-dev-session")),
            session_max_age_sec=_env_int("SESSION_MAX_AGE_SEC", 24 * 3600),
            session_cookie_secure=_env_bool("SESSION_COOKIE_SECURE", False),
            google_client_id=_env("GOOGLE_CLIENT_ID"),
            google_client_secret=_env("GOOGLE_CLIENT_SECRET"),
            google_redirect_uri=_env(
                "GOOGLE_REDIRECT_URI", "http://localhost:8000/api/auth/callback"
            ),
            oauth_scopes=_env_csv("GOOGLE_OAUTH_SCOPES", ",".join(DEFAULT_OAUTH_SCOPES)),
            serp_provider=_normalize_serp_provider(_env("SERP_PROVIDER")),
            brave_api_key=_env("BRAVE_API_KEY"),
            dataforseo_login=_env("DATAFORSEO_LOGIN"),
            dataforseo_password=_env("DATAFORSEO_PASSWORD"),
            dataforseo_language=_env("DATAFORSEO_LANGUAGE", "English"),
            encryption_key=_env("APP_ENCRYPTION_KEY", "vsight-dev-key"),
            spreadsheet_prefix=_env("SPREADSHEET_PREFIX", "VSight_"),
            http_timeout_sec=max(5, _env_int("HTTP_TIMEOUT_SEC", 40)),
            max_pages=max(1, _env_int("MAX_PAGES", 10)),
            tracker_default_top_n=max(1, _env_int("TRACKER_TOP_N", 100)),
            tracker_max_rows=max(1, _env_int("TRACKER_MAX_ROWS", 1000)),
            preferences_path=_env("PREFERENCES_PATH", ".vsight_preferences.json"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            llm_endpoint=_env("LLM_ENDPOINT", _env("AZURE_OPENAI_ENDPOINT")),
            llm_api_key=_env("LLM_API_KEY", _env("AZURE_OPENAI_API_KEY")),
            llm_api_version=_env("LLM_API_VERSION", _env("AZURE_OPENAI_API_VERSION")),
            llm_model=_env("LLM_MODEL", _env("AZURE_OPENAI_DEPLOYMENT", "gpt-4o-mini")),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.2),
            llm_timeout_sec=max(10, _env_int("LLM_TIMEOUT_SEC", 60)),
        )

    @property
    def oauth_enabled(self) -> bool:
        return bool(
            self.google_client_id
            and self.google_client_secret
            and self.google_redirect_uri
        )

    @property
    def serp_provider_enabled(self) -> bool:
        if self.serp_provider == "brave":
            return bool(self.brave_api_key)
        if self.serp_provider == "dataforseo":
            return bool(self.dataforseo_login and self.dataforseo_password)
        return False

    @property
    def llm_enabled(self) -> bool:
        return bool(
            self.llm_endpoint
            and self.llm_api_key
            and self.llm_api_version
            and self.llm_model
        )
