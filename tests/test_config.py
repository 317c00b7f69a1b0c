from __future__ import annotations

import json
from pathlib import Path

import pytest

from cryptobot.config import (
    DEFAULT_CONVERSATION_URL,
    DEFAULT_PRICE_FEED_URL,
    ConfigError,
    cloudant_url_from_vcap,
    load_settings,
)

ENV_KEYS = [
    "WORKSPACE_ID",
    "CONVERSATION_URL",
    "PRICE_FEED_URL",
    "HTTP_TIMEOUT",
    "CLOUDANT_URL",
    "CLOUDANT_DB",
    "AUDIT_LOG_PATH",
    "VCAP_SERVICES",
    "LOG_USER",
    "LOG_PASS",
    "DISCOVERY_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_environment() -> None:
    settings = load_settings()

    assert settings.workspace_configured is False
    assert settings.conversation_url == DEFAULT_CONVERSATION_URL
    assert settings.price_feed_url == DEFAULT_PRICE_FEED_URL
    assert settings.http_timeout == 10.0
    assert settings.audit_enabled is False


def test_workspace_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKSPACE_ID", "abc-123")
    monkeypatch.setenv("DISCOVERY_URL", "https://search.test/api/")
    monkeypatch.setenv("HTTP_TIMEOUT", "2.5")

    settings = load_settings()

    assert settings.workspace_configured is True
    assert settings.discovery_url == "https://search.test/api"
    assert settings.http_timeout == 2.5


def test_placeholder_workspace_counts_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKSPACE_ID", "<workspace-id>")

    assert load_settings().workspace_configured is False


@pytest.mark.parametrize("present", [[], ["LOG_USER"], ["LOG_PASS"]])
def test_audit_logging_requires_both_credentials(monkeypatch: pytest.MonkeyPatch, present: list) -> None:
    monkeypatch.setenv("CLOUDANT_URL", "https://couch.test")
    for key in present:
        monkeypatch.setenv(key, "secret")

    with pytest.raises(ConfigError):
        load_settings()


def test_audit_logging_with_credentials(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AUDIT_LOG_PATH", str(tmp_path / "audit.json"))
    monkeypatch.setenv("LOG_USER", "admin")
    monkeypatch.setenv("LOG_PASS", "hunter2")

    settings = load_settings()

    assert settings.audit_enabled is True
    assert settings.audit_log_path == tmp_path / "audit.json"
    assert settings.cloudant_db == "car_logs"


def test_vcap_services_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    vcap = {"cloudantNoSQLDB": [{"credentials": {"url": "https://bound.couch.test"}}]}
    monkeypatch.setenv("VCAP_SERVICES", json.dumps(vcap))
    monkeypatch.setenv("CLOUDANT_URL", "https://env.couch.test")
    monkeypatch.setenv("LOG_USER", "admin")
    monkeypatch.setenv("LOG_PASS", "hunter2")

    assert load_settings().cloudant_url == "https://bound.couch.test"


@pytest.mark.parametrize("raw", [None, "", "not json", "{}", '{"cloudantNoSQLDB": []}'])
def test_vcap_without_cloudant_binding(raw: str) -> None:
    assert cloudant_url_from_vcap(raw) is None


def test_invalid_timeout_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HTTP_TIMEOUT", "soon")

    with pytest.raises(ValueError):
        load_settings()
