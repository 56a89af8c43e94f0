"""Cloudflare DNS provider — manage challenge TXT values via the Cloudflare REST API."""

from __future__ import annotations

import logging

import httpx

from acme_orchestrator.dns.base import DnsProvider
from acme_orchestrator.dns.util import candidate_zones

logger = logging.getLogger(__name__)

_API_BASE = "https://api.cloudflare.com/client/v4"
_CHALLENGE_TTL = 60


def _unquote(content: str) -> str:
    # Cloudflare may return TXT content wrapped in double quotes
    return content.strip('"')


class CloudflareDnsProvider(DnsProvider):
    """DNS provider backed by the Cloudflare API. Each TXT value is its own record."""

    def __init__(
        self,
        api_token: str,
        _http_client: httpx.Client | None = None,
    ) -> None:
        self._client = _http_client or httpx.Client(
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=30,
        )

    def _get_zone_id(self, fqdn: str) -> str:
        """Return the ID of the most specific Cloudflare zone containing ``fqdn``."""
        for zone in candidate_zones(fqdn):
            resp = self._client.get(f"{_API_BASE}/zones", params={"name": zone})
            resp.raise_for_status()
            results = resp.json()["result"]
            if results:
                return results[0]["id"]
        raise ValueError(f"No Cloudflare zone found for '{fqdn}'")

    def _txt_records(self, zone_id: str, fqdn: str) -> list[dict]:
        resp = self._client.get(
            f"{_API_BASE}/zones/{zone_id}/dns_records",
            params={"type": "TXT", "name": fqdn},
        )
        resp.raise_for_status()
        return resp.json()["result"]

    def add_txt_value(self, fqdn: str, value: str) -> None:
        zone_id = self._get_zone_id(fqdn)
        if any(_unquote(record["content"]) == value for record in self._txt_records(zone_id, fqdn)):
            logger.info("TXT value already present on %s", fqdn)
            return
        resp = self._client.post(
            f"{_API_BASE}/zones/{zone_id}/dns_records",
            json={"type": "TXT", "name": fqdn, "content": value, "ttl": _CHALLENGE_TTL},
        )
        resp.raise_for_status()
        logger.info("Created TXT record %s in Cloudflare zone %s", fqdn, zone_id)

    def remove_txt_value(self, fqdn: str, value: str) -> None:
        zone_id = self._get_zone_id(fqdn)
        matching = [r for r in self._txt_records(zone_id, fqdn) if _unquote(r["content"]) == value]
        if not matching:
            logger.warning("TXT value for %s not found in Cloudflare, skipping delete", fqdn)
            return
        for record in matching:
            self._client.delete(f"{_API_BASE}/zones/{zone_id}/dns_records/{record['id']}").raise_for_status()
        logger.info("Deleted %d TXT record(s) %s from Cloudflare", len(matching), fqdn)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()
