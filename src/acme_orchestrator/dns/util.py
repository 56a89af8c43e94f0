"""DNS name helpers."""

from __future__ import annotations

from collections.abc import Iterator


def candidate_zones(fqdn: str) -> Iterator[str]:
    """Yield the zones that could contain ``fqdn``, most specific first.

    ``_acme-challenge.www.example.com`` yields ``www.example.com`` then
    ``example.com``. Top-level domains are never yielded.
    """
    labels = fqdn.rstrip(".").lower().split(".")
    for start in range(1, len(labels) - 1):
        yield ".".join(labels[start:])


def relative_name(fqdn: str, zone: str) -> str:
    """Return ``fqdn`` relative to ``zone`` (e.g. ``_acme-challenge.www`` in ``example.com``)."""
    fqdn = fqdn.rstrip(".").lower()
    suffix = f".{zone}"
    if not fqdn.endswith(suffix):
        raise ValueError(f"Record '{fqdn}' is not under zone '{zone}'")
    return fqdn.removesuffix(suffix)
