"""DNS providers for the dns-01 challenge handler, selected by ``DNS_PROVIDER``."""

from __future__ import annotations

from collections.abc import Callable

from azure.identity import DefaultAzureCredential

from acme_orchestrator.config import AppConfig
from acme_orchestrator.dns.azure_dns import AzureDnsProvider
from acme_orchestrator.dns.base import DnsProvider
from acme_orchestrator.dns.cloudflare import CloudflareDnsProvider


def _azure(config: AppConfig) -> DnsProvider:
    for setting, value in (
        ("AZURE_SUBSCRIPTION_ID", config.azure_subscription_id),
        ("AZURE_DNS_RESOURCE_GROUP", config.azure_dns_resource_group),
    ):
        if not value:
            raise ValueError(f"{setting} is required when DNS_PROVIDER=azure")
    return AzureDnsProvider(
        credential=DefaultAzureCredential(),
        subscription_id=config.azure_subscription_id,
        resource_group=config.azure_dns_resource_group,
    )


def _cloudflare(config: AppConfig) -> DnsProvider:
    if not config.cloudflare_api_token:
        raise ValueError("CLOUDFLARE_API_TOKEN is required when DNS_PROVIDER=cloudflare")
    return CloudflareDnsProvider(api_token=config.cloudflare_api_token)


_PROVIDERS: dict[str, Callable[[AppConfig], DnsProvider]] = {
    "azure": _azure,
    "cloudflare": _cloudflare,
}


def get_dns_provider(config: AppConfig, provider_name: str | None = None) -> DnsProvider:
    """Instantiate the configured DNS provider.

    Args:
        config: Application configuration.
        provider_name: Use this provider instead of the one named by ``DNS_PROVIDER``.

    Raises:
        ValueError: for an unknown provider or missing provider credentials.
    """
    name = (provider_name or config.dns_provider or "").lower()
    try:
        build = _PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unknown DNS provider: '{name}'") from None
    return build(config)
