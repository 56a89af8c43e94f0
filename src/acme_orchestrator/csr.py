"""Certificate signing request generation and wire encoding."""

from __future__ import annotations

import logging

import josepy
from acme import crypto_util
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from acme_orchestrator.keys import generate_private_key_pem
from acme_orchestrator.models import Certificate

logger = logging.getLogger(__name__)


def csr_pem_to_der(csr_pem: str | bytes) -> bytes:
    if isinstance(csr_pem, str):
        csr_pem = csr_pem.encode()
    return x509.load_pem_x509_csr(csr_pem).public_bytes(serialization.Encoding.DER)


def csr_pem_to_base64url(csr_pem: str | bytes) -> str:
    """Encode a PEM CSR the way ACME expects it: DER, base64url, no padding."""
    return josepy.encode_b64jose(csr_pem_to_der(csr_pem))


class CsrGenerator:
    """Builds CSRs covering every domain of a certificate."""

    def generate_csr_from_certificate(self, certificate: Certificate) -> str:
        """Return a PEM CSR for ``certificate``.

        The certificate's private key is created on first use and kept on the
        record, so later CSRs for the same certificate reuse it.
        """
        names = [domain.punycode_display_name for domain in certificate.domain_list]
        if not names:
            raise ValueError("Cannot generate a CSR for a certificate without domains")
        if not certificate.private_key_pem:
            certificate.private_key_pem = generate_private_key_pem()
            logger.info("Generated a new private key for certificate %s", certificate.id)
        csr_pem = crypto_util.make_csr(certificate.private_key_pem.encode(), names)
        return csr_pem.decode() if isinstance(csr_pem, bytes) else csr_pem
