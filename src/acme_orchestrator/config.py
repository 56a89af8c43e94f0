"""Configuration loading and validation from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_USER_AGENT = "acme-orchestrator"
_DEFAULT_HTTP_TIMEOUT = 30.0
_DEFAULT_DOWNLOAD_RETRY_DELAY = 2.0
_DEFAULT_RENEW_BEFORE_DAYS = 30.0
_DEFAULT_POLL_INTERVAL = 5.0


@dataclass(frozen=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    database_url: str
    user_agent: str = _DEFAULT_USER_AGENT
    http_timeout: float = _DEFAULT_HTTP_TIMEOUT
    download_retry_delay: float = _DEFAULT_DOWNLOAD_RETRY_DELAY
    renew_before_days: float = _DEFAULT_RENEW_BEFORE_DAYS
    poll_interval: float = _DEFAULT_POLL_INTERVAL
    dns_provider: str | None = None
    cloudflare_api_token: str | None = None
    azure_subscription_id: str | None = None
    azure_dns_resource_group: str | None = None
    http01_webroot: str | None = None


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"Required environment variable {name} is not set")
    return value


def _positive_float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got: {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be a positive number, got: {value}")
    return value


def load_config() -> AppConfig:
    """Load and validate application configuration from environment variables."""
    database_url = _require_env("ACME_DATABASE_URL")
    user_agent = os.environ.get("ACME_USER_AGENT") or _DEFAULT_USER_AGENT
    http_timeout = _positive_float_env("ACME_HTTP_TIMEOUT", _DEFAULT_HTTP_TIMEOUT)
    download_retry_delay = _positive_float_env("ACME_DOWNLOAD_RETRY_DELAY", _DEFAULT_DOWNLOAD_RETRY_DELAY)
    renew_before_days = _positive_float_env("ACME_RENEW_BEFORE_DAYS", _DEFAULT_RENEW_BEFORE_DAYS)
    poll_interval = _positive_float_env("ACME_POLL_INTERVAL", _DEFAULT_POLL_INTERVAL)

    dns_provider = os.environ.get("DNS_PROVIDER") or None
    if dns_provider:
        dns_provider = dns_provider.lower()

    return AppConfig(
        database_url=database_url,
        user_agent=user_agent,
        http_timeout=http_timeout,
        download_retry_delay=download_retry_delay,
        renew_before_days=renew_before_days,
        poll_interval=poll_interval,
        dns_provider=dns_provider,
        cloudflare_api_token=os.environ.get("CLOUDFLARE_API_TOKEN"),
        azure_subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID"),
        azure_dns_resource_group=os.environ.get("AZURE_DNS_RESOURCE_GROUP"),
        http01_webroot=os.environ.get("HTTP01_WEBROOT"),
    )
