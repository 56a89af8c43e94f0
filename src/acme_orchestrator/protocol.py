"""Per-generation protocol details: HTTP methods, payload shapes and feature support.

Every call site that used to branch on the server's protocol generation asks a
:class:`ProtocolStrategy` instead. :func:`get_protocol_strategy` is the only
place that maps a stored version to behaviour, and it rejects anything it does
not know before a request is built.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from acme_orchestrator.errors import UnrecognizedProtocolVersionError, UnsupportedFeatureError
from acme_orchestrator.models import AuthorizationChallenge, Certificate, Domain, ProtocolVersion, Server


def _identifier(domain: Domain) -> dict[str, str]:
    return {"type": "dns", "value": domain.punycode}


class ProtocolStrategy(ABC):
    """Protocol-generation-specific request shapes."""

    version: ProtocolVersion
    # Method used to read a resource (order, authorization, challenge, certificate)
    fetch_method: str
    supports_wildcard: bool
    # Whether signed requests carry the account URL (kid) instead of the public key (jwk)
    uses_key_id: bool
    # Whether certificates come from finalizing an order rather than a new-cert request
    issues_via_order: bool

    @property
    @abstractmethod
    def new_order_method(self) -> str:
        """HTTP method for order creation."""

    @abstractmethod
    def new_order_payload(self, certificate: Certificate) -> dict[str, Any]:
        """Body of the new-order request."""

    @abstractmethod
    def new_authorization_payload(self, domain: Domain) -> dict[str, Any]:
        """Body of a new-authorization request for one domain."""

    @abstractmethod
    def challenge_start_payload(self, challenge: AuthorizationChallenge) -> dict[str, Any]:
        """Body of the request telling the authority a challenge is ready."""

    @abstractmethod
    def new_certificate_payload(self, csr_b64: str) -> dict[str, Any]:
        """Body of the direct certificate request."""

    @abstractmethod
    def nonce_url(self, server: Server) -> str:
        """URL to HEAD when a fresh anti-replay nonce is needed."""


class AcmeV1Strategy(ProtocolStrategy):
    """Legacy ACME: every body names its ``resource``; no orders, no wildcards."""

    version = ProtocolVersion.ACME_01
    fetch_method = "GET"
    supports_wildcard = False
    uses_key_id = False
    issues_via_order = False

    @property
    def new_order_method(self) -> str:
        raise UnsupportedFeatureError("ACME v1 does not support certificate orders")

    def new_order_payload(self, certificate: Certificate) -> dict[str, Any]:
        raise UnsupportedFeatureError("ACME v1 does not support certificate orders")

    def new_authorization_payload(self, domain: Domain) -> dict[str, Any]:
        if domain.is_wildcard and not self.supports_wildcard:
            raise UnsupportedFeatureError("ACME v1 does not support wildcard domains")
        return {"identifier": _identifier(domain), "resource": "new-authz"}

    def challenge_start_payload(self, challenge: AuthorizationChallenge) -> dict[str, Any]:
        return {"resource": "challenge", "keyAuthorization": challenge.challenge_authorization_key}

    def new_certificate_payload(self, csr_b64: str) -> dict[str, Any]:
        return {"resource": "new-cert", "csr": csr_b64}

    def nonce_url(self, server: Server) -> str:
        # v1 servers hand out nonces on every response, the directory included
        return server.directory_url


class AcmeV2Strategy(ProtocolStrategy):
    """RFC 8555: order-centric, POST-as-GET reads, key-id signed requests."""

    version = ProtocolVersion.ACME_02
    fetch_method = "POST"
    supports_wildcard = True
    uses_key_id = True
    issues_via_order = True

    @property
    def new_order_method(self) -> str:
        return "POST"

    def new_order_payload(self, certificate: Certificate) -> dict[str, Any]:
        return {
            "identifiers": [
                {"type": "dns", "value": domain.punycode_display_name} for domain in certificate.domain_list
            ]
        }

    def new_authorization_payload(self, domain: Domain) -> dict[str, Any]:
        payload: dict[str, Any] = {"identifier": _identifier(domain)}
        if domain.is_wildcard:
            payload["wildcard"] = True
        return payload

    def challenge_start_payload(self, challenge: AuthorizationChallenge) -> dict[str, Any]:
        return {}

    def new_certificate_payload(self, csr_b64: str) -> dict[str, Any]:
        raise UnsupportedFeatureError("ACME v2 issues certificates by finalizing an order")

    def nonce_url(self, server: Server) -> str:
        if not server.new_nonce_url:
            raise ValueError(f"Server '{server.name}' has no newNonce URL")
        return server.new_nonce_url


_STRATEGIES: dict[ProtocolVersion, ProtocolStrategy] = {
    ProtocolVersion.ACME_01: AcmeV1Strategy(),
    ProtocolVersion.ACME_02: AcmeV2Strategy(),
}


def get_protocol_strategy(version: object) -> ProtocolStrategy:
    """Return the strategy for a stored protocol version.

    Raises:
        UnrecognizedProtocolVersionError: for any value outside :class:`ProtocolVersion`.
    """
    try:
        return _STRATEGIES[ProtocolVersion(version)]
    except (ValueError, KeyError):
        raise UnrecognizedProtocolVersionError(version) from None


def strategy_for_server(server: Server) -> ProtocolStrategy:
    return get_protocol_strategy(server.protocol_version)
