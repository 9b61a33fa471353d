import pytest

from vsight.config import AppConfig


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SERP_PROVIDER", "APP_ENCRYPTION_KEY", "MAX_PAGES", "TRACKER_TOP_N", "SPREADSHEET_PREFIX"):
        monkeypatch.delenv(name, raising=False)
    config = AppConfig.from_env()
    assert config.serp_provider == ""
    assert config.serp_provider_enabled is False
    assert config.encryption_key == "vsight-dev-key"
    assert config.max_pages == 10
    assert config.tracker_default_top_n == 100
    assert config.spreadsheet_prefix == "VSight_"


def test_serp_provider_is_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERP_PROVIDER", " 'Brave' ")
    monkeypatch.setenv("BRAVE_API_KEY", "brave_key")
    config = AppConfig.from_env()
    assert config.serp_provider == "brave"
    assert config.serp_provider_enabled is True


def test_placeholder_value_is_treated_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERP_PROVIDER", "dataforseo")
    monkeypatch.setenv("DATAFORSEO_LOGIN", "DATAFORSEO_LOGIN=")
    monkeypatch.setenv("DATAFORSEO_PASSWORD", "secret")
    config = AppConfig.from_env()
    assert config.dataforseo_login == ""
    assert config.serp_provider_enabled is False


def test_session_secret_falls_back_to_nextauth(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SESSION_SECRET", raising=False)
    monkeypatch.setenv("NEXTAUTH_SECRET", "legacy_secret")
    assert AppConfig.from_env().session_secret == "legacy_secret"


def test_oauth_and_llm_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "client")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")
    for name in ("LLM_ENDPOINT", "AZURE_OPENAI_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    config = AppConfig.from_env()
    assert config.oauth_enabled is True
    assert config.llm_enabled is False
    assert "https://www.googleapis.com/auth/spreadsheets" in config.oauth_scopes
