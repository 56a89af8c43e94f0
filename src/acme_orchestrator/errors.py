"""Exception types raised by the order orchestrator and its collaborators."""

from __future__ import annotations

from typing import Any


class AcmeOrchestratorError(Exception):
    """Base class for every error raised by this package."""


class UnrecognizedProtocolVersionError(AcmeOrchestratorError):
    """The server record names a protocol generation we cannot speak."""

    def __init__(self, version: object) -> None:
        super().__init__(f"Unrecognized ACME protocol version: {version!r}")
        self.version = version


class UnsupportedFeatureError(AcmeOrchestratorError):
    """The requested feature is not available under the server's protocol generation."""


class OrderStateError(AcmeOrchestratorError):
    """The operation is not legal for this kind of order."""


class ChallengeConfigurationError(AcmeOrchestratorError):
    """No challenge handler is available for a domain's challenge type."""


class UnsupportedChallengeError(AcmeOrchestratorError):
    """The authority did not offer the challenge type configured for a domain."""


class CertificateDownloadError(AcmeOrchestratorError):
    """The certificate download returned something other than a certificate."""


class AcmeProtocolError(AcmeOrchestratorError):
    """A request failed at the network level or returned an unexpected status code.

    ``status_code`` is ``None`` for network failures. ``problem`` holds the decoded
    RFC 7807 problem document when the authority sent one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        problem: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.problem = problem

    @property
    def problem_type(self) -> str | None:
        if not self.problem:
            return None
        return self.problem.get("type")
