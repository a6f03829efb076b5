from __future__ import annotations

import logging

import pytest

from config import Settings, get_settings
from logging_utils import configure_logging


@pytest.fixture()
def clean_env(monkeypatch):
    for name in (
        "APP_ENV",
        "JWT_SECRET",
        "ADMIN_USERNAME",
        "ADMIN_PASSWORD",
        "TRANSLATE_DELAY_SECONDS",
        "CORS_ORIGINS",
        "PUBLIC_BASE_URL",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


def test_defaults(clean_env):
    settings = Settings.from_env()
    assert settings.app_env == "development"
    assert not settings.is_production
    assert not settings.admin_credentials_configured
    assert settings.translate_delay_seconds == 1.0
    assert settings.cors_origins == ["*"]
    assert settings.log_level == "INFO"


def test_values_are_parsed(clean_env):
    clean_env.setenv("APP_ENV", " Production ")
    clean_env.setenv("JWT_SECRET", "s3cret")
    clean_env.setenv("CORS_ORIGINS", "https://club.example, ,https://admin.example")
    clean_env.setenv("PUBLIC_BASE_URL", "https://club.example/")
    clean_env.setenv("TRANSLATE_DELAY_SECONDS", "0.25")
    clean_env.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env()
    assert settings.is_production
    assert settings.cookie_secure
    assert settings.jwt_secret == "s3cret"
    assert settings.cors_origins == ["https://club.example", "https://admin.example"]
    assert settings.public_base_url == "https://club.example"
    assert settings.translate_delay_seconds == 0.25
    assert settings.log_level == "DEBUG"


def test_bad_delay_falls_back_with_warning(clean_env, caplog):
    clean_env.setenv("TRANSLATE_DELAY_SECONDS", "soon")
    with caplog.at_level(logging.WARNING):
        settings = Settings.from_env()
    assert settings.translate_delay_seconds == 1.0
    assert "TRANSLATE_DELAY_SECONDS" in caplog.text


def test_jwt_secret_required_in_production(clean_env):
    clean_env.setenv("APP_ENV", "production")
    with pytest.raises(RuntimeError):
        Settings.from_env().jwt_secret


def test_development_jwt_secret_fallback(clean_env, caplog):
    with caplog.at_level(logging.WARNING):
        secret = Settings.from_env().jwt_secret
    assert secret
    assert "insecure" in caplog.text


def test_get_settings_is_cached(clean_env):
    first = get_settings()
    clean_env.setenv("APP_ENV", "staging")
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings().app_env == "staging"


def test_configure_logging_installs_handler_once():
    root = logging.getLogger()
    before = list(root.handlers)
    previous_level = root.level
    marker = logging.NullHandler()
    try:
        configure_logging("DEBUG", handlers=[marker])
        configure_logging("WARNING", handlers=[logging.NullHandler()])
        added = [handler for handler in root.handlers if handler not in before]
        assert added == [marker]
        assert root.level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(previous_level)


def test_create_app_refuses_production_without_jwt_secret(settings_env, monkeypatch):
    from main import create_app

    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("JWT_SECRET")
    get_settings.cache_clear()
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        create_app()

    monkeypatch.setenv("JWT_SECRET", "prod-secret")
    get_settings.cache_clear()
    assert create_app().title == "Student Club Portal API"
