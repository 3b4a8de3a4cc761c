from __future__ import annotations

import pytest

from core import settings as settings_module


def _set_minimal_valid_env(monkeypatch: pytest.MonkeyPatch) -> None:
    values = {
        "MONGO_URL": "mongodb://localhost:27017",
        "DB_NAME": "payments",
        "WEBHOOK_SECRET": "generic-webhook-secret",
        "LOG_LEVEL": "INFO",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    for key in (*settings_module.SQS_ENV_VARS, *settings_module.POSITIVE_INT_ENV_VARS):
        monkeypatch.delenv(key, raising=False)


def test_collect_missing_required_env_vars_reports_base_keys(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("WEBHOOK_SECRET", raising=False)
    monkeypatch.setenv("DB_NAME", "   ")

    missing = settings_module.collect_missing_required_env_vars()

    assert missing == ["DB_NAME", "WEBHOOK_SECRET"]


def test_queue_credentials_are_optional_as_a_group(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)

    assert settings_module.collect_missing_required_env_vars() == []


def test_partial_queue_credentials_are_reported(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("AWS_SQS_QUEUE_URL", "https://sqs.us-east-1.amazonaws.com/1/payment-events")

    missing = settings_module.collect_missing_required_env_vars()

    assert missing == ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]


def test_validate_required_environment_raises_with_missing_and_invalid_values(
    monkeypatch: pytest.MonkeyPatch,
):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.delenv("MONGO_URL", raising=False)
    monkeypatch.setenv("SQS_MAX_RETRIES", "not-a-number")
    monkeypatch.setenv("PAYMENT_EXPIRY_MINUTES", "0")
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    with pytest.raises(RuntimeError) as exc_info:
        settings_module.validate_required_environment()

    message = str(exc_info.value)
    assert "Missing required environment variables" in message
    assert "- MONGO_URL" in message
    assert "Invalid environment values" in message
    assert "SQS_MAX_RETRIES must be a positive integer" in message
    assert "PAYMENT_EXPIRY_MINUTES must be a positive integer" in message
    assert "LOG_LEVEL must be one of" in message


def test_get_settings_applies_defaults(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
    settings_module.get_settings.cache_clear()

    try:
        settings = settings_module.get_settings()
    finally:
        settings_module.get_settings.cache_clear()

    assert settings.webhook_timestamp_tolerance_seconds == 300
    assert settings.sqs_max_retries == 3
    assert settings.sqs_max_redeliveries == 3
    assert settings.payment_expiry_minutes == 30
    assert settings.sqs_enabled is False
    assert settings.cors_origins == ("https://a.example", "https://b.example")


def test_sqs_enabled_when_all_queue_credentials_present(monkeypatch: pytest.MonkeyPatch):
    _set_minimal_valid_env(monkeypatch)
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "key")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.setenv("AWS_SQS_QUEUE_URL", "https://sqs.us-east-1.amazonaws.com/1/payment-events")
    settings_module.get_settings.cache_clear()

    try:
        assert settings_module.get_settings().sqs_enabled is True
    finally:
        settings_module.get_settings.cache_clear()
