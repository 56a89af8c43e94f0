"""Abstract base class for DNS providers used by the dns-01 challenge handler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Self


class DnsProvider(ABC):
    """Adds and removes individual values of ``_acme-challenge`` TXT records.

    A certificate for both ``example.com`` and ``*.example.com`` needs two values
    under the same record name at the same time, so providers manage single
    values and never replace the whole record.
    """

    def close(self) -> None:
        """Release resources. Override in subclasses that hold open connections."""

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @abstractmethod
    def add_txt_value(self, fqdn: str, value: str) -> None:
        """Publish ``value`` under the TXT record ``fqdn``, keeping existing values.

        Args:
            fqdn: Fully qualified record name (e.g. "_acme-challenge.example.com").
            value: TXT record value (the base64url digest of the key authorization).
        """

    @abstractmethod
    def remove_txt_value(self, fqdn: str, value: str) -> None:
        """Remove ``value`` from the TXT record ``fqdn``; a missing value is not an error.

        Args:
            fqdn: Fully qualified record name (e.g. "_acme-challenge.example.com").
            value: The value previously passed to :meth:`add_txt_value`.
        """
