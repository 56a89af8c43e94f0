"""Azure DNS provider — manage challenge TXT values via azure-mgmt-dns."""

from __future__ import annotations

import logging

from azure.core.exceptions import ResourceNotFoundError
from azure.mgmt.dns import DnsManagementClient
from azure.mgmt.dns.models import RecordSet, TxtRecord

from acme_orchestrator.dns.base import DnsProvider
from acme_orchestrator.dns.util import candidate_zones, relative_name

logger = logging.getLogger(__name__)

_CHALLENGE_TTL = 60


class AzureDnsProvider(DnsProvider):
    """DNS provider backed by the Azure DNS zones of one resource group."""

    def __init__(
        self,
        credential,
        subscription_id: str,
        resource_group: str,
        _dns_client: DnsManagementClient | None = None,
    ) -> None:
        self._resource_group = resource_group
        self._dns_client = _dns_client or DnsManagementClient(credential, subscription_id)

    def _find_zone(self, fqdn: str) -> str:
        for zone in candidate_zones(fqdn):
            try:
                self._dns_client.zones.get(self._resource_group, zone)
            except ResourceNotFoundError:
                continue
            return zone
        raise ValueError(f"No Azure DNS zone in resource group '{self._resource_group}' contains '{fqdn}'")

    def _current_values(self, zone: str, record_name: str) -> list[str]:
        try:
            record_set = self._dns_client.record_sets.get(
                resource_group_name=self._resource_group,
                zone_name=zone,
                relative_record_set_name=record_name,
                record_type="TXT",
            )
        except ResourceNotFoundError:
            return []
        return [value for txt in record_set.txt_records or [] for value in txt.value]

    def _write_values(self, zone: str, record_name: str, values: list[str]) -> None:
        self._dns_client.record_sets.create_or_update(
            resource_group_name=self._resource_group,
            zone_name=zone,
            relative_record_set_name=record_name,
            record_type="TXT",
            parameters=RecordSet(ttl=_CHALLENGE_TTL, txt_records=[TxtRecord(value=[v]) for v in values]),
        )

    def add_txt_value(self, fqdn: str, value: str) -> None:
        zone = self._find_zone(fqdn)
        record_name = relative_name(fqdn, zone)
        values = self._current_values(zone, record_name)
        if value in values:
            logger.info("TXT value already present on %s.%s", record_name, zone)
            return
        self._write_values(zone, record_name, values + [value])
        logger.info("Added TXT value to %s.%s", record_name, zone)

    def remove_txt_value(self, fqdn: str, value: str) -> None:
        zone = self._find_zone(fqdn)
        record_name = relative_name(fqdn, zone)
        values = self._current_values(zone, record_name)
        if value not in values:
            logger.warning("TXT value not found on %s.%s, skipping delete", record_name, zone)
            return
        remaining = [v for v in values if v != value]
        if remaining:
            self._write_values(zone, record_name, remaining)
        else:
            self._dns_client.record_sets.delete(
                resource_group_name=self._resource_group,
                zone_name=zone,
                relative_record_set_name=record_name,
                record_type="TXT",
            )
        logger.info("Removed TXT value from %s.%s", record_name, zone)
