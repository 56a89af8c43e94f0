"""Projects ACME order, authorization and challenge resources onto persisted records."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import josepy
from acme import challenges

from acme_orchestrator.errors import AcmeProtocolError, UnsupportedChallengeError
from acme_orchestrator.keys import load_account_key
from acme_orchestrator.models import (
    AuthorizationChallenge,
    Certificate,
    Domain,
    Order,
    OrderType,
    Status,
    utc_datetime,
)
from acme_orchestrator.transport import AcmeResponse

logger = logging.getLogger(__name__)

_FAILED_AUTHORIZATION_STATUSES = frozenset({Status.INVALID, Status.EXPIRED, Status.DEACTIVATED, Status.REVOKED})


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return utc_datetime(datetime.fromisoformat(str(value)))
    except ValueError:
        logger.debug("Ignoring unparseable timestamp %r", value)
        return None


def _describe_error(error: Any) -> str | None:
    if not error:
        return None
    if isinstance(error, dict):
        return error.get("detail") or error.get("type") or str(error)
    return str(error)


def _challenge_url(challenge_data: dict[str, Any]) -> str | None:
    # RFC 8555 calls it "url", ACME v1 "uri"
    return challenge_data.get("url") or challenge_data.get("uri")


class OrderUnserializer:
    """Maps raw protocol responses onto :class:`Order` and :class:`AuthorizationChallenge`."""

    def unserialize_order(
        self,
        certificate: Certificate,
        main_response: AcmeResponse,
        child_responses: Iterable[AcmeResponse],
    ) -> Order:
        """Build an order-centric :class:`Order` from a new-order response and its authorizations."""
        if not main_response.location:
            raise AcmeProtocolError("The new-order response did not include the order URL")
        order = Order(type=OrderType.ORDER, order_url=main_response.location)
        self.update_main_order_record(order, main_response.data or {})
        if not order.finalize_url:
            raise AcmeProtocolError(f"Order {order.order_url} has no finalize URL")
        for child in child_responses:
            order.authorization_challenges.append(self._build_authorization_challenge(certificate, child.url, child.data))
        # Attached last: a half-built order must not reach the session
        order.certificate = certificate
        return order

    def unserialize_authorization_requests(
        self,
        certificate: Certificate,
        responses: Iterable[AcmeResponse],
    ) -> Order:
        """Build an authorization-set :class:`Order` from new-authorization responses."""
        order = Order(type=OrderType.AUTHORIZATION)
        for response in responses:
            if not response.location:
                raise AcmeProtocolError("A new-authorization response did not include the authorization URL")
            order.authorization_challenges.append(
                self._build_authorization_challenge(certificate, response.location, response.data)
            )
        self.update_main_authorization_set_record(order)
        order.certificate = certificate
        return order

    def update_authorization_challenge(
        self,
        challenge: AuthorizationChallenge,
        authorization_data: dict[str, Any] | None,
        challenge_data: dict[str, Any] | None,
    ) -> None:
        if authorization_data:
            if "status" in authorization_data:
                challenge.authorization_status = authorization_data["status"]
            challenge.authorization_expires = _parse_timestamp(authorization_data.get("expires"))
        if challenge_data:
            if "status" in challenge_data:
                challenge.challenge_status = challenge_data["status"]
            challenge.challenge_error = _describe_error(challenge_data.get("error"))

    def update_main_order_record(self, order: Order, order_data: dict[str, Any] | None) -> None:
        if not order_data:
            return
        if "status" in order_data:
            order.status = order_data["status"]
        order.expires = _parse_timestamp(order_data.get("expires"))
        if order_data.get("finalize"):
            order.finalize_url = order_data["finalize"]
        if order_data.get("certificate"):
            order.certificate_url = order_data["certificate"]

    def update_main_authorization_set_record(self, order: Order) -> None:
        """Derive the status and expiry of an authorization set from its members."""
        statuses = [c.authorization_status for c in order.authorization_challenges]
        if any(status in _FAILED_AUTHORIZATION_STATUSES for status in statuses):
            order.status = Status.INVALID
        elif statuses and all(status == Status.VALID for status in statuses):
            order.status = Status.VALID
        else:
            order.status = Status.PENDING
        expirations = [c.authorization_expires for c in order.authorization_challenges if c.authorization_expires]
        order.expires = min(expirations) if expirations else None

    def _build_authorization_challenge(
        self,
        certificate: Certificate,
        authorization_url: str,
        authorization_data: dict[str, Any] | None,
    ) -> AuthorizationChallenge:
        if not isinstance(authorization_data, dict):
            raise AcmeProtocolError(f"Authorization {authorization_url} returned no data")
        domain = self._find_domain(certificate, authorization_data)
        handle = domain.challenge_type_handle
        for challenge_data in authorization_data.get("challenges", []):
            if challenge_data.get("type") == handle:
                break
        else:
            raise UnsupportedChallengeError(
                f"The authority did not offer a {handle} challenge for {domain.host_display_name}"
            )
        challenge_url = _challenge_url(challenge_data)
        if not challenge_url:
            raise AcmeProtocolError(f"The {handle} challenge of {authorization_url} has no URL")

        authorization_challenge = AuthorizationChallenge(
            domain=domain,
            authorization_url=authorization_url,
            challenge_type=handle,
            challenge_url=challenge_url,
            challenge_token=challenge_data.get("token", ""),
            challenge_authorization_key=self._key_authorization(certificate, challenge_data),
        )
        self.update_authorization_challenge(authorization_challenge, authorization_data, challenge_data)
        return authorization_challenge

    @staticmethod
    def _find_domain(certificate: Certificate, authorization_data: dict[str, Any]) -> Domain:
        identifier = authorization_data.get("identifier") or {}
        value = str(identifier.get("value", "")).lower()
        wildcard = bool(authorization_data.get("wildcard"))
        for domain in certificate.domain_list:
            if domain.punycode == value and domain.is_wildcard == wildcard:
                return domain
        name = f"*.{value}" if wildcard else value
        raise AcmeProtocolError(f"Received an authorization for {name}, which is not part of the certificate")

    @staticmethod
    def _key_authorization(certificate: Certificate, challenge_data: dict[str, Any]) -> str:
        try:
            chall = challenges.Challenge.from_json(challenge_data)
        except josepy.DeserializationError as err:
            raise AcmeProtocolError(f"Malformed {challenge_data.get('type')} challenge: {err}") from err
        if not isinstance(chall, challenges.KeyAuthorizationChallenge):
            return ""
        return chall.key_authorization(load_account_key(certificate.account))
