"""Step-wise issuance and renewal of a certificate.

Each :meth:`Renewer.next_step` call looks at what is persisted for a
certificate, runs the one :class:`OrderService` operation that state calls
for, and reports how long the caller should wait before the next call.
Nothing blocks on the authority; a scheduler (cron, a worker loop) keeps
calling until ``next_step_after`` is ``None``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Self

from cryptography import x509
from sqlalchemy.orm import Session

from acme_orchestrator.config import AppConfig
from acme_orchestrator.database import UnitOfWork
from acme_orchestrator.errors import CertificateDownloadError
from acme_orchestrator.models import Certificate, Order, OrderType, Status
from acme_orchestrator.orders import OrderService
from acme_orchestrator.protocol import strategy_for_server

logger = logging.getLogger(__name__)

_WAITING_STATUSES = frozenset({Status.PENDING, Status.PROCESSING})
_FAILED_STATUSES = frozenset({Status.INVALID, Status.EXPIRED, Status.DEACTIVATED, Status.REVOKED})


@dataclass(frozen=True)
class RenewerOptions:
    # Request a new certificate even if the current one is not due for renewal yet
    force_certificate_renewal: bool = False


@dataclass
class StepResult:
    """What one step did and when to take the next.

    ``next_step_after`` is in seconds; ``None`` means there is nothing left
    to do for now. ``certificate_pem`` is set only by the step that stored a
    newly issued certificate.
    """

    messages: list[str] = field(default_factory=list)
    next_step_after: float | None = None
    order: Order | None = None
    certificate_pem: str | None = None


def current_order(certificate: Certificate) -> Order | None:
    """The certificate's latest order, unless it has already completed."""
    if not certificate.orders:
        return None
    latest = certificate.orders[-1]
    return latest if latest.completed_at is None else None


def certificate_expiry(certificate: Certificate) -> datetime | None:
    """``notAfter`` of the stored certificate (the first one of the chain)."""
    if not certificate.certificate_pem:
        return None
    return x509.load_pem_x509_certificate(certificate.certificate_pem.encode()).not_valid_after_utc


class Renewer:
    """Moves a certificate through ordering, validation, issuance and download."""

    def __init__(
        self,
        order_service: OrderService,
        unit_of_work: UnitOfWork,
        renew_before: timedelta = timedelta(days=30),
        poll_interval: float = 5.0,
    ) -> None:
        self._orders = order_service
        self._uow = unit_of_work
        self._renew_before = renew_before
        self._poll_interval = poll_interval

    @classmethod
    def from_config(cls, config: AppConfig, session: Session) -> Renewer:
        return cls(
            OrderService.from_config(config, session),
            UnitOfWork(session),
            renew_before=timedelta(days=config.renew_before_days),
            poll_interval=config.poll_interval,
        )

    def close(self) -> None:
        self._orders.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def renewal_due_at(self, certificate: Certificate) -> datetime | None:
        """When the stored certificate should be replaced; ``None`` if there is none yet."""
        expiry = certificate_expiry(certificate)
        return None if expiry is None else expiry - self._renew_before

    def next_step(self, certificate: Certificate, options: RenewerOptions | None = None) -> StepResult:
        """Run the next operation for ``certificate``.

        Errors from the authority or the challenge handlers propagate; the
        persisted state is left so that a later call resumes where this one
        stopped.
        """
        options = options or RenewerOptions()
        order = current_order(certificate)
        if order is None:
            result = self._start(certificate, options)
        elif order.status in _FAILED_STATUSES:
            result = self._give_up(order)
        elif order.type == OrderType.AUTHORIZATION:
            result = self._advance_authorization_set(order)
        else:
            result = self._advance_order(order)
        for message in result.messages:
            logger.info("Certificate %s: %s", certificate.id, message)
        return result

    def _start(self, certificate: Certificate, options: RenewerOptions) -> StepResult:
        due_at = self.renewal_due_at(certificate)
        if due_at is not None and not options.force_certificate_renewal and datetime.now(UTC) < due_at:
            return StepResult([f"The certificate does not need to be renewed before {due_at.isoformat()}"])

        if strategy_for_server(certificate.account.server).issues_via_order:
            order = self._orders.create_order(certificate)
            message = f"Created order {order.order_url}"
        else:
            order = self._orders.create_authorization_challenges(certificate)
            message = f"Requested {len(order.authorization_challenges)} authorization(s)"
        return StepResult([message], 0, order)

    def _validate(self, order: Order) -> StepResult | None:
        """Start pending challenges or re-read a waiting order; ``None`` once it stopped waiting."""
        pending = [c for c in order.authorization_challenges if c.is_pending]
        if pending:
            self._orders.start_authorization_challenges(order)
            return StepResult([f"Started {len(pending)} challenge(s)"], self._poll_interval, order)
        if order.status not in _WAITING_STATUSES:
            return None

        self._orders.refresh(order)
        if order.status in _FAILED_STATUSES:
            return self._give_up(order)
        if order.status in _WAITING_STATUSES:
            message = f"Waiting for the authority ({order.type} is {order.status})"
            return StepResult([message], self._poll_interval, order)
        return StepResult([f"The {order.type} is now {order.status}"], 0, order)

    def _advance_order(self, order: Order) -> StepResult:
        result = self._validate(order)
        if result is not None:
            return result

        if order.status == Status.READY:
            self._orders.finalize_order(order)
            if order.status in _FAILED_STATUSES:
                return self._give_up(order)
            delay = 0 if order.status == Status.VALID else self._poll_interval
            return StepResult([f"Finalized the order ({order.status})"], delay, order)

        if order.status == Status.VALID:
            if not order.certificate_url:
                self._orders.refresh(order)
                return StepResult(["Waiting for the certificate URL"], self._poll_interval, order)
            pem = self._orders.download_actual_certificate(
                order.certificate.account, order.certificate_url, retry_on_empty_response=True
            )
            return self._complete(order, pem)

        return StepResult([f"Nothing to do for an order in status {order.status}"], self._poll_interval, order)

    def _advance_authorization_set(self, order: Order) -> StepResult:
        result = self._validate(order)
        if result is not None:
            return result

        certificate = order.certificate
        response = self._orders.call_acme01_new_cert(certificate)
        if response.code != 201:
            detail = response.data.get("detail") if isinstance(response.data, dict) else None
            return self._give_up(order, f"The authority refused to issue the certificate: {detail or response.code}")

        pem = response.data if isinstance(response.data, str) else ""
        if not pem:
            if not response.location:
                raise CertificateDownloadError("The new-cert response has neither a certificate nor a Location")
            pem = self._orders.download_actual_certificate(
                certificate.account, response.location, retry_on_empty_response=True
            )
        return self._complete(order, pem)

    def _complete(self, order: Order, certificate_pem: str) -> StepResult:
        self._orders.stop_authorization_challenges(order)
        certificate = order.certificate
        certificate.certificate_pem = certificate_pem
        certificate.csr = ""
        order.completed_at = datetime.now(UTC)
        self._uow.commit(certificate, order)
        return StepResult(["The certificate has been issued"], None, order, certificate_pem=certificate_pem)

    def _give_up(self, order: Order, reason: str | None = None) -> StepResult:
        self._orders.stop_authorization_challenges(order)
        order.completed_at = datetime.now(UTC)
        self._uow.commit(order)
        messages = [reason or f"The {order.type} is {order.status}"]
        messages.extend(
            f"{c.domain.host_display_name}: {c.challenge_error}"
            for c in order.authorization_challenges
            if c.challenge_error
        )
        return StepResult(messages, None, order)
