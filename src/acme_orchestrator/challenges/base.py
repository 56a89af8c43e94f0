"""Abstract base class for challenge handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from acme_orchestrator.models import AuthorizationChallenge


class ChallengeHandler(ABC):
    """Publishes and removes the artifact the authority checks to validate a domain."""

    @abstractmethod
    def before_challenge(self, challenge: AuthorizationChallenge) -> None:
        """Make the validation artifact available before the authority is asked to check it.

        Args:
            challenge: The record carrying the domain, token and key authorization.
        """

    @abstractmethod
    def after_challenge(self, challenge: AuthorizationChallenge) -> None:
        """Remove the validation artifact once it is no longer needed.

        Must tolerate being called when the artifact is already gone.
        """

    def close(self) -> None:
        """Release resources. Override in subclasses that hold open connections."""
