"""Order lifecycle orchestration — create orders, run challenges, finalize, download.

Every public method is one "advance the order" step: it performs its round
trips one after the other, projects what the authority reports onto the
persisted records, and commits right after each observable change. Nothing is
kept between calls except what is in the database.
"""

from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from functools import partial
from typing import Any, Self

from sqlalchemy.orm import Session

from acme_orchestrator.challenges import ChallengeHandlerRegistry, build_challenge_registry
from acme_orchestrator.config import AppConfig
from acme_orchestrator.csr import CsrGenerator, csr_pem_to_base64url
from acme_orchestrator.database import UnitOfWork
from acme_orchestrator.errors import (
    CertificateDownloadError,
    ChallengeConfigurationError,
    OrderStateError,
    UnsupportedFeatureError,
)
from acme_orchestrator.guards import Tentative, revert_unless_kept
from acme_orchestrator.models import Account, AuthorizationChallenge, Certificate, Order, OrderType, Status
from acme_orchestrator.protocol import strategy_for_server
from acme_orchestrator.transport import AcmeResponse, AcmeTransport
from acme_orchestrator.unserializer import OrderUnserializer

logger = logging.getLogger(__name__)

_DOWNLOAD_ATTEMPTS = 2


class OrderService:
    """Drives orders and authorization sets through their lifecycle."""

    def __init__(
        self,
        transport: AcmeTransport,
        unserializer: OrderUnserializer,
        challenge_handlers: ChallengeHandlerRegistry,
        csr_generator: CsrGenerator,
        unit_of_work: UnitOfWork,
        download_retry_delay: float = 2.0,
    ) -> None:
        self._transport = transport
        self._unserializer = unserializer
        self._challenge_handlers = challenge_handlers
        self._csr_generator = csr_generator
        self._uow = unit_of_work
        self._download_retry_delay = download_retry_delay

    @classmethod
    def from_config(cls, config: AppConfig, session: Session) -> OrderService:
        """Wire the default collaborators for ``config`` around ``session``."""
        return cls(
            transport=AcmeTransport(user_agent=config.user_agent, timeout=config.http_timeout),
            unserializer=OrderUnserializer(),
            challenge_handlers=build_challenge_registry(config),
            csr_generator=CsrGenerator(),
            unit_of_work=UnitOfWork(session),
            download_retry_delay=config.download_retry_delay,
        )

    def close(self) -> None:
        """Close the transport and the challenge handlers' connections."""
        try:
            self._transport.close()
        finally:
            self._challenge_handlers.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- Creation ---

    def create_order(self, certificate: Certificate) -> Order:
        """Create an RFC 8555 order for every domain of ``certificate`` (ACME v2 only)."""
        account = certificate.account
        strategy = strategy_for_server(account.server)
        payload = strategy.new_order_payload(certificate)

        main_response = self._transport.send(
            account, strategy.new_order_method, account.server.new_order_url, payload, (201,)
        )
        child_responses = [
            self._transport.send(account, strategy.fetch_method, authorization_url, None, (200,))
            for authorization_url in (main_response.data or {}).get("authorizations", [])
        ]

        order = self._unserializer.unserialize_order(certificate, main_response, child_responses)
        self._uow.commit(order)
        logger.info(
            "Created order %s with %d authorization(s) for certificate %s",
            order.order_url,
            len(order.authorization_challenges),
            certificate.id,
        )
        return order

    def create_authorization_challenges(self, certificate: Certificate) -> Order:
        """Request one standalone authorization per domain of ``certificate``."""
        account = certificate.account
        strategy = strategy_for_server(account.server)
        # Build every payload first: an unsupported domain must fail before any request
        payloads = [strategy.new_authorization_payload(domain) for domain in certificate.domain_list]

        responses = [
            self._transport.send(account, "POST", account.server.new_authorization_url, payload, (201,))
            for payload in payloads
        ]

        order = self._unserializer.unserialize_authorization_requests(certificate, responses)
        self._uow.commit(order)
        logger.info("Created %d authorization(s) for certificate %s", len(responses), certificate.id)
        return order

    # --- Challenges ---

    def start_authorization_challenges(self, order: Order) -> None:
        """Start every challenge that is still pending. The order must already be persisted."""
        strategy_for_server(order.certificate.account.server)  # fail fast on an unknown protocol version
        started_any = False
        for challenge in order.authorization_challenges:
            if challenge.is_pending:
                self.start_authorization_challenge(challenge)
                started_any = True
        if started_any:
            self._refresh_order_record(order)
            self._uow.commit(order)

    def start_authorization_challenge(self, challenge: AuthorizationChallenge) -> None:
        """Publish the validation artifact and ask the authority to check it.

        A failed start request is reconciled against the authority's view: it is
        raised only when the challenge is still pending afterwards. When this call
        published the artifact and the challenge does not end up durably started,
        the artifact is removed and the started flag cleared.
        """
        domain = challenge.domain
        account = domain.account
        strategy = strategy_for_server(account.server)
        handler = self._challenge_handlers.get_challenge_by_handle(domain.challenge_type_handle)
        if handler is None:
            raise ChallengeConfigurationError(f"Invalid challenge type set for domain {domain.host_display_name}")
        payload = strategy.challenge_start_payload(challenge)

        newly_started = not challenge.is_challenge_started
        if newly_started:
            handler.before_challenge(challenge)

        with revert_unless_kept(
            partial(handler.after_challenge, challenge),
            partial(self._clear_started_flag, challenge),
            active=newly_started,
            suppress_errors=True,
        ) as started:
            self._start_and_reconcile(account, challenge, payload, started)

    def _start_and_reconcile(
        self,
        account: Account,
        challenge: AuthorizationChallenge,
        payload: dict[str, Any],
        started: Tentative,
    ) -> None:
        challenge.is_challenge_started = True
        self._uow.commit(challenge)

        start_error: Exception | None = None
        try:
            challenge_data = self._transport.send(account, "POST", challenge.challenge_url, payload, (200, 202)).data
        except Exception as err:
            logger.info(
                "Starting the %s challenge for %s failed (%s); checking its state with the authority",
                challenge.challenge_type,
                challenge.domain.host_display_name,
                err,
            )
            start_error = err
            challenge_data = self._fetch_challenge_data(challenge)
        authorization_data = self._fetch_authorization_data(challenge)
        self._unserializer.update_authorization_challenge(challenge, authorization_data, challenge_data)

        if start_error is not None and challenge.challenge_status == Status.PENDING:
            raise start_error
        self._uow.commit(challenge)
        started.keep()
        logger.info(
            "Started %s challenge for %s (challenge %s)",
            challenge.challenge_type,
            challenge.domain.host_display_name,
            challenge.challenge_status,
        )

    def _clear_started_flag(self, challenge: AuthorizationChallenge) -> None:
        challenge.is_challenge_started = False
        self._uow.commit(challenge)

    def refresh(self, order: Order) -> None:
        """Re-read every authorization and challenge and the order aggregate from the authority."""
        strategy_for_server(order.certificate.account.server)  # fail fast on an unknown protocol version
        for challenge in order.authorization_challenges:
            self._unserializer.update_authorization_challenge(
                challenge,
                self._fetch_authorization_data(challenge),
                self._fetch_challenge_data(challenge),
            )
        self._refresh_order_record(order)
        self._uow.commit(order)

    def stop_authorization_challenges(self, order: Order) -> None:
        """Remove the validation artifacts of every started challenge."""
        for challenge in order.authorization_challenges:
            self._stop_authorization_challenge(challenge)

    def _stop_authorization_challenge(self, challenge: AuthorizationChallenge) -> None:
        if not challenge.is_challenge_started:
            return
        domain = challenge.domain
        try:
            handler = self._challenge_handlers.get_challenge_by_handle(domain.challenge_type_handle)
            if handler is not None:
                handler.after_challenge(challenge)
        except Exception:
            logger.warning("Ignoring failure while removing the challenge for %s", domain.host_display_name, exc_info=True)
        self._clear_started_flag(challenge)
        logger.info("Stopped %s challenge for %s", challenge.challenge_type, domain.host_display_name)

    def _refresh_order_record(self, order: Order) -> None:
        if order.type == OrderType.AUTHORIZATION:
            self._unserializer.update_main_authorization_set_record(order)
        elif order.type == OrderType.ORDER:
            self._unserializer.update_main_order_record(order, self._fetch_order_data(order))
        else:
            raise OrderStateError(f"Unknown order type: {order.type!r}")

    # --- Finalization and download ---

    def finalize_order(self, order: Order) -> None:
        """Submit the certificate's CSR to the order's finalize URL (ACME v2 orders only)."""
        if order.type != OrderType.ORDER:
            raise OrderStateError("Only ACME v2 orders can be finalized")
        certificate = order.certificate
        strategy_for_server(certificate.account.server)  # fail fast on an unknown protocol version

        with self._scratch_csr(certificate) as csr:
            response = self._transport.send(
                certificate.account,
                "POST",
                order.finalize_url,
                {"csr": csr_pem_to_base64url(certificate.csr)},
                (200,),
            )
            self._unserializer.update_main_order_record(order, response.data)
            self._uow.commit(order)
            if csr.active:
                self._uow.commit(certificate)
            csr.keep()
        logger.info("Finalized order %s (status %s)", order.order_url, order.status)

    def call_acme01_new_cert(self, certificate: Certificate) -> AcmeResponse:
        """Request the certificate directly (ACME v1).

        Returns the response: 201 when the certificate was issued, 403 when some
        authorization is missing. The caller decides what to do with a 403.
        """
        account = certificate.account
        strategy = strategy_for_server(account.server)
        if strategy.issues_via_order:
            raise UnsupportedFeatureError("ACME v2 issues certificates by finalizing an order")

        with self._scratch_csr(certificate) as csr:
            payload = strategy.new_certificate_payload(csr_pem_to_base64url(certificate.csr))
            response = self._transport.send(account, "POST", account.server.new_certificate_url, payload, (201, 403))
            if 200 <= response.code < 300:
                if csr.active:
                    self._uow.commit(certificate)
                csr.keep()
        logger.info("new-cert request for certificate %s returned %d", certificate.id, response.code)
        return response

    def _scratch_csr(self, certificate: Certificate) -> AbstractContextManager[Tentative]:
        """Generate a CSR when the certificate has none; drop it again unless kept."""
        generated = certificate.csr == ""
        if generated:
            certificate.csr = self._csr_generator.generate_csr_from_certificate(certificate)

        def reset_csr() -> None:
            certificate.csr = ""

        return revert_unless_kept(reset_csr, active=generated)

    def download_actual_certificate(
        self,
        account: Account,
        url: str,
        retry_on_empty_response: bool = False,
    ) -> str:
        """Download the issued certificate chain as PEM text.

        Some authorities answer with an empty body while the certificate is still
        being assembled; with ``retry_on_empty_response`` the download is tried
        once more after a short pause.
        """
        strategy = strategy_for_server(account.server)
        for attempt in range(1, _DOWNLOAD_ATTEMPTS + 1):
            response = self._transport.send(account, strategy.fetch_method, url, None, (200,))
            if response.data or not retry_on_empty_response or attempt == _DOWNLOAD_ATTEMPTS:
                break
            logger.info("Empty certificate from %s, retrying in %s second(s)", url, self._download_retry_delay)
            time.sleep(self._download_retry_delay)

        result = response.data
        if not isinstance(result, str):
            raise CertificateDownloadError(
                f"Error downloading the certificate: expected a string, got {type(result).__name__}"
            )
        if result == "":
            raise CertificateDownloadError("Error downloading the certificate: empty result")
        return result

    # --- Fetch helpers ---

    def _fetch_order_data(self, order: Order) -> dict[str, Any]:
        return self._fetch_data(order.certificate.account, order.order_url)

    def _fetch_authorization_data(self, challenge: AuthorizationChallenge) -> dict[str, Any]:
        return self._fetch_data(challenge.domain.account, challenge.authorization_url)

    def _fetch_challenge_data(self, challenge: AuthorizationChallenge) -> dict[str, Any]:
        return self._fetch_data(challenge.domain.account, challenge.challenge_url)

    def _fetch_data(self, account: Account, url: str) -> dict[str, Any]:
        strategy = strategy_for_server(account.server)
        return self._transport.send(account, strategy.fetch_method, url, None, (200, 202)).data
