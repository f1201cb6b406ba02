from __future__ import annotations

import pytest

from moperator.config import Settings
from moperator.context import BulkLimits


_ENV_VARS = (
    "SLACK_BOT_TOKEN",
    "SLACK_SIGNING_SECRET",
    "SLACK_APPROVER_GROUP_ID",
    "AUTHORIZED_USER_EMAILS",
    "REDIS_URL",
    "KV_URL",
    "MOPERATOR_AUTHORIZED_BULK_LIMIT",
    "MOPERATOR_UNAUTHORIZED_BULK_LIMIT",
    "SALESFORCE_INSTANCE_URL",
    "SALESFORCE_ACCESS_TOKEN",
    "MOPERATOR_REQUESTER_ID",
    "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings.from_env()

    assert settings.bulk_limits == BulkLimits(authorized=1500, unauthorized=500)
    assert settings.redis_url == ""
    assert settings.port == 8080
    assert settings.authorized_emails == frozenset()


def test_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-1")
    monkeypatch.setenv("AUTHORIZED_USER_EMAILS", "A@example.com, b@example.com")
    monkeypatch.setenv("KV_URL", "redis://kv:6379/0")
    monkeypatch.setenv("MOPERATOR_UNAUTHORIZED_BULK_LIMIT", "25")
    monkeypatch.setenv("SALESFORCE_INSTANCE_URL", "https://acme.my.salesforce.com")
    monkeypatch.setenv("SALESFORCE_ACCESS_TOKEN", "tok")

    settings = Settings.from_env()

    assert settings.redis_url == "redis://kv:6379/0"
    assert settings.authorized_emails == frozenset({"a@example.com", "b@example.com"})
    assert settings.bulk_limits.unauthorized == 25
    assert settings.salesforce_config.configured is True
    assert settings.validate() == []


def test_redis_url_wins_over_kv_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_URL", "redis://primary")
    monkeypatch.setenv("KV_URL", "redis://fallback")

    assert Settings.from_env().redis_url == "redis://primary"


def test_validate_reports_missing_settings() -> None:
    errors = Settings().validate()

    assert "SLACK_BOT_TOKEN is required" in errors
    assert "REDIS_URL (or KV_URL) is required for approvals" in errors
    assert "AUTHORIZED_USER_EMAILS is empty; nobody can approve" in errors
