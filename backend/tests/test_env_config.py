"""Startup configuration check and env knob parsing."""
import pytest

from utils.env_config import (
    REQUIRED_ENV,
    ConfigurationError,
    check_required_env,
    env_flag,
    env_int,
    missing_env,
)
from utils.public_url import get_public_api_url


def _complete_env():
    return {name: f"value-for-{name.lower()}" for name in REQUIRED_ENV}


def test_complete_environment_passes():
    check_required_env(_complete_env())


def test_all_missing_variables_reported_together():
    env = _complete_env()
    del env["POSTMARK_SERVER_TOKEN"]
    env["STRIPE_WEBHOOK_SECRET"] = "   "
    with pytest.raises(ConfigurationError) as exc:
        check_required_env(env)
    assert exc.value.missing == ["POSTMARK_SERVER_TOKEN", "STRIPE_WEBHOOK_SECRET"]
    assert "POSTMARK_SERVER_TOKEN" in str(exc.value)


def test_missing_env_keeps_declaration_order():
    assert missing_env({}) == list(REQUIRED_ENV)


def test_env_int_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("EMAIL_DUPLICATE_COOLDOWN_MINUTES", "ten")
    assert env_int("EMAIL_DUPLICATE_COOLDOWN_MINUTES", 5) == 5
    monkeypatch.setenv("EMAIL_DUPLICATE_COOLDOWN_MINUTES", "15")
    assert env_int("EMAIL_DUPLICATE_COOLDOWN_MINUTES", 5) == 15


@pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("off", False), ("", True)])
def test_env_flag(monkeypatch, raw, expected):
    monkeypatch.setenv("VERIFY_UPLOAD_URLS", raw)
    assert env_flag("VERIFY_UPLOAD_URLS", True) is expected


@pytest.mark.parametrize("raw,expected", [
    ("https://api.ai-chatflows.com/", "https://api.ai-chatflows.com"),
    ("http://api.ai-chatflows.com", "https://api.ai-chatflows.com"),
    ("http://localhost:8001", "http://localhost:8001"),
])
def test_public_api_url_normalized(monkeypatch, raw, expected):
    monkeypatch.setenv("PUBLIC_API_URL", raw)
    assert get_public_api_url() == expected


def test_public_api_url_falls_back_to_render(monkeypatch):
    monkeypatch.delenv("PUBLIC_API_URL", raising=False)
    monkeypatch.setenv("RENDER_EXTERNAL_URL", "https://onboarding.onrender.com")
    assert get_public_api_url() == "https://onboarding.onrender.com"
