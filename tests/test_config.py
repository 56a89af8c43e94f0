"""Tests for acme_orchestrator.config."""

import pytest

_ENV_VARS = (
    "ACME_DATABASE_URL",
    "ACME_USER_AGENT",
    "ACME_HTTP_TIMEOUT",
    "ACME_DOWNLOAD_RETRY_DELAY",
    "ACME_RENEW_BEFORE_DAYS",
    "ACME_POLL_INTERVAL",
    "DNS_PROVIDER",
    "CLOUDFLARE_API_TOKEN",
    "AZURE_SUBSCRIPTION_ID",
    "AZURE_DNS_RESOURCE_GROUP",
    "HTTP01_WEBROOT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ACME_DATABASE_URL", "sqlite:///acme.db")


def test_load_config_required_var(monkeypatch):
    from acme_orchestrator.config import load_config

    cfg = load_config()
    assert cfg.database_url == "sqlite:///acme.db"


def test_load_config_defaults():
    from acme_orchestrator.config import load_config

    cfg = load_config()
    assert cfg.user_agent == "acme-orchestrator"
    assert cfg.http_timeout == 30.0
    assert cfg.download_retry_delay == 2.0
    assert cfg.dns_provider is None
    assert cfg.http01_webroot is None


def test_load_config_custom_optionals(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("ACME_USER_AGENT", "my-client/1.0")
    monkeypatch.setenv("ACME_HTTP_TIMEOUT", "12.5")
    monkeypatch.setenv("ACME_DOWNLOAD_RETRY_DELAY", "0.5")
    monkeypatch.setenv("DNS_PROVIDER", "Cloudflare")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "cf-token-123")
    monkeypatch.setenv("HTTP01_WEBROOT", "/var/www/html")

    cfg = load_config()
    assert cfg.user_agent == "my-client/1.0"
    assert cfg.http_timeout == 12.5
    assert cfg.download_retry_delay == 0.5
    assert cfg.dns_provider == "cloudflare"
    assert cfg.cloudflare_api_token == "cf-token-123"
    assert cfg.http01_webroot == "/var/www/html"


def test_load_config_missing_database_url(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.delenv("ACME_DATABASE_URL")

    with pytest.raises(ValueError, match="ACME_DATABASE_URL"):
        load_config()


def test_load_config_invalid_timeout(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("ACME_HTTP_TIMEOUT", "not-a-number")

    with pytest.raises(ValueError, match="ACME_HTTP_TIMEOUT must be a number"):
        load_config()


def test_load_config_zero_retry_delay(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("ACME_DOWNLOAD_RETRY_DELAY", "0")

    with pytest.raises(ValueError, match="ACME_DOWNLOAD_RETRY_DELAY must be a positive number"):
        load_config()


def test_load_config_negative_timeout(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("ACME_HTTP_TIMEOUT", "-5")

    with pytest.raises(ValueError, match="ACME_HTTP_TIMEOUT must be a positive number"):
        load_config()


def test_load_config_azure_dns_fields(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("DNS_PROVIDER", "azure")
    monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", "sub-123")
    monkeypatch.setenv("AZURE_DNS_RESOURCE_GROUP", "rg-dns")

    cfg = load_config()
    assert cfg.azure_subscription_id == "sub-123"
    assert cfg.azure_dns_resource_group == "rg-dns"


def test_load_config_azure_dns_fields_default_none(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("DNS_PROVIDER", "cloudflare")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "cf-tok")

    cfg = load_config()
    assert cfg.azure_subscription_id is None
    assert cfg.azure_dns_resource_group is None


def test_load_config_renewal_timing(monkeypatch):
    from acme_orchestrator.config import load_config

    cfg = load_config()
    assert cfg.renew_before_days == 30.0
    assert cfg.poll_interval == 5.0

    monkeypatch.setenv("ACME_RENEW_BEFORE_DAYS", "14")
    monkeypatch.setenv("ACME_POLL_INTERVAL", "1.5")

    cfg = load_config()
    assert cfg.renew_before_days == 14.0
    assert cfg.poll_interval == 1.5


def test_load_config_zero_poll_interval(monkeypatch):
    from acme_orchestrator.config import load_config

    monkeypatch.setenv("ACME_POLL_INTERVAL", "0")

    with pytest.raises(ValueError, match="ACME_POLL_INTERVAL must be a positive number"):
        load_config()
