"""Shared test fixtures for acme-orchestrator."""

import pytest
from acme import crypto_util
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from acme_orchestrator.database import init_db
from acme_orchestrator.keys import generate_account_key, generate_private_key_pem, serialize_key
from acme_orchestrator.models import Account, Certificate, Domain, Server
from helpers import BASE


@pytest.fixture(scope="session")
def account_key_json():
    return serialize_key(generate_account_key())


@pytest.fixture(scope="session")
def csr_pem():
    pem = crypto_util.make_csr(generate_private_key_pem().encode(), ["a.example.com", "b.example.com"])
    return pem.decode()


@pytest.fixture
def engine(tmp_path):
    # File-backed so a second connection only sees what was committed
    engine = create_engine(f"sqlite:///{tmp_path / 'acme.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def make_certificate(session, account_key_json):
    """Persist a server, account, domains and certificate; return the certificate."""

    def _make(
        domains=("a.example.com", "b.example.com"),
        protocol_version="acme_02",
        challenge_type_handle="http-01",
    ) -> Certificate:
        server = Server(
            name="Test CA",
            directory_url=f"{BASE}/directory",
            protocol_version=protocol_version,
            new_nonce_url=f"{BASE}/new-nonce",
            new_order_url=f"{BASE}/new-order",
            new_authorization_url=f"{BASE}/new-authz",
            new_certificate_url=f"{BASE}/new-cert",
        )
        account = Account(
            server=server,
            name="test-account",
            email="admin@example.com",
            key_json=account_key_json,
            registration_uri=f"{BASE}/acct/1",
        )
        certificate = Certificate(account=account)
        for name in domains:
            certificate.add_domain(Domain.from_name(account, name, challenge_type_handle))
        session.add(certificate)
        session.commit()
        return certificate

    return _make
