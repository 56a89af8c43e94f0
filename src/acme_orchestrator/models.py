"""Persisted entities: servers, accounts, domains, certificates, orders and their challenges."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    pass


def utc_datetime(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UtcDateTime(TypeDecorator):
    """Stored as naive UTC, loaded as aware UTC, whatever the backend keeps of the offset."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return utc_datetime(value).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class ProtocolVersion(StrEnum):
    """ACME protocol generations a server record can declare."""

    ACME_01 = "acme_01"
    ACME_02 = "acme_02"


class OrderType(StrEnum):
    # One independent authorization per domain (ACME v1, or v2 pre-authorization)
    AUTHORIZATION = "authorization"
    # RFC 8555 order with a finalize URL
    ORDER = "order"


class Status(StrEnum):
    """Status values used by ACME orders, authorizations and challenges."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    VALID = "valid"
    INVALID = "invalid"
    REVOKED = "revoked"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"


def to_punycode(hostname: str) -> str:
    """IDNA-encode a host name label by label, leaving ASCII labels untouched."""
    labels = []
    for label in hostname.split("."):
        if label.isascii():
            labels.append(label)
            continue
        try:
            labels.append(label.encode("idna").decode("ascii"))
        except UnicodeError as err:
            raise ValueError(f"Invalid internationalized domain label '{label}' in '{hostname}'") from err
    return ".".join(labels)


class Server(Base):
    """An ACME certificate authority endpoint."""

    __tablename__ = "acme_servers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    directory_url: Mapped[str] = mapped_column(String(1024))
    protocol_version: Mapped[str] = mapped_column(String(20))
    new_nonce_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    new_order_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    new_authorization_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    new_certificate_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    accounts: Mapped[list[Account]] = relationship(back_populates="server")


class Account(Base):
    """A registered ACME account. Its key signs every request."""

    __tablename__ = "acme_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    server_id: Mapped[int] = mapped_column(ForeignKey("acme_servers.id"))
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    key_json: Mapped[str] = mapped_column(Text)
    registration_uri: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    server: Mapped[Server] = relationship(back_populates="accounts")
    domains: Mapped[list[Domain]] = relationship(back_populates="account")


class Domain(Base):
    """A DNS name that certificates of an account may cover."""

    __tablename__ = "acme_domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("acme_accounts.id"))
    hostname: Mapped[str] = mapped_column(String(255))
    punycode: Mapped[str] = mapped_column(String(255))
    is_wildcard: Mapped[bool] = mapped_column(Boolean, default=False)
    challenge_type_handle: Mapped[str] = mapped_column(String(50))

    account: Mapped[Account] = relationship(back_populates="domains")

    @classmethod
    def from_name(cls, account: Account, name: str, challenge_type_handle: str) -> Domain:
        """Build a domain from a user-entered name such as ``*.Example.com``."""
        name = name.strip().rstrip(".").lower()
        is_wildcard = name.startswith("*.")
        hostname = name.removeprefix("*.")
        if not hostname or hostname == "*":
            raise ValueError("Domain name must not be empty")
        if "*" in hostname:
            raise ValueError(f"'{name}' is not a valid domain name: '*' is only allowed as the leftmost label")
        return cls(
            account=account,
            hostname=hostname,
            punycode=to_punycode(hostname),
            is_wildcard=is_wildcard,
            challenge_type_handle=challenge_type_handle,
        )

    @property
    def punycode_display_name(self) -> str:
        return f"*.{self.punycode}" if self.is_wildcard else self.punycode

    @property
    def host_display_name(self) -> str:
        return f"*.{self.hostname}" if self.is_wildcard else self.hostname


class Certificate(Base):
    """A requested certificate: its domains, scratch CSR and issued material."""

    __tablename__ = "acme_certificates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("acme_accounts.id"))
    csr: Mapped[str] = mapped_column(Text, default="")
    private_key_pem: Mapped[str] = mapped_column(Text, default="")
    certificate_pem: Mapped[str | None] = mapped_column(Text, nullable=True)

    account: Mapped[Account] = relationship()
    domains: Mapped[list[CertificateDomain]] = relationship(
        back_populates="certificate",
        order_by="CertificateDomain.position",
        cascade="all, delete-orphan",
    )
    orders: Mapped[list[Order]] = relationship(
        back_populates="certificate",
        order_by="Order.id",
        cascade="all, delete-orphan",
    )

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("csr", "")
        kwargs.setdefault("private_key_pem", "")
        super().__init__(**kwargs)

    def add_domain(self, domain: Domain) -> CertificateDomain:
        certificate_domain = CertificateDomain(domain=domain, position=len(self.domains))
        self.domains.append(certificate_domain)
        return certificate_domain

    @property
    def domain_list(self) -> list[Domain]:
        return [cd.domain for cd in self.domains]


class CertificateDomain(Base):
    __tablename__ = "acme_certificate_domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    certificate_id: Mapped[int] = mapped_column(ForeignKey("acme_certificates.id"))
    domain_id: Mapped[int] = mapped_column(ForeignKey("acme_domains.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)

    certificate: Mapped[Certificate] = relationship(back_populates="domains")
    domain: Mapped[Domain] = relationship()


class Order(Base):
    """One issuance attempt: an RFC 8555 order or a set of standalone authorizations."""

    __tablename__ = "acme_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    certificate_id: Mapped[int] = mapped_column(ForeignKey("acme_certificates.id"))
    type: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=Status.PENDING)
    expires: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    order_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    finalize_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    certificate_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=lambda: datetime.now(UTC))
    # Set once the attempt has issued a certificate or been given up
    completed_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)

    certificate: Mapped[Certificate] = relationship(back_populates="orders")
    authorization_challenges: Mapped[list[AuthorizationChallenge]] = relationship(
        back_populates="order",
        order_by="AuthorizationChallenge.id",
        cascade="all, delete-orphan",
    )


class AuthorizationChallenge(Base):
    """Validation state of one domain within an order."""

    __tablename__ = "acme_authorization_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("acme_orders.id"))
    domain_id: Mapped[int] = mapped_column(ForeignKey("acme_domains.id"))
    authorization_url: Mapped[str] = mapped_column(String(1024))
    authorization_status: Mapped[str] = mapped_column(String(20), default=Status.PENDING)
    authorization_expires: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    challenge_type: Mapped[str] = mapped_column(String(50))
    challenge_url: Mapped[str] = mapped_column(String(1024))
    challenge_token: Mapped[str] = mapped_column(String(255), default="")
    challenge_status: Mapped[str] = mapped_column(String(20), default=Status.PENDING)
    challenge_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    challenge_authorization_key: Mapped[str] = mapped_column(Text, default="")
    is_challenge_started: Mapped[bool] = mapped_column(Boolean, default=False)

    order: Mapped[Order] = relationship(back_populates="authorization_challenges")
    domain: Mapped[Domain] = relationship()

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("authorization_status", Status.PENDING)
        kwargs.setdefault("challenge_status", Status.PENDING)
        kwargs.setdefault("is_challenge_started", False)
        super().__init__(**kwargs)

    @property
    def is_pending(self) -> bool:
        return self.authorization_status == Status.PENDING and self.challenge_status == Status.PENDING
