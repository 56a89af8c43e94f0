"""DNS-01 handler that publishes the validation TXT record through a DNS provider."""

from __future__ import annotations

import logging

import josepy
from acme import challenges

from acme_orchestrator.challenges.base import ChallengeHandler
from acme_orchestrator.dns.base import DnsProvider
from acme_orchestrator.keys import load_account_key
from acme_orchestrator.models import AuthorizationChallenge

logger = logging.getLogger(__name__)


def txt_record_name(challenge: AuthorizationChallenge) -> str:
    # RFC 8555 §8.4: *.example.com is validated at _acme-challenge.example.com
    return f"_acme-challenge.{challenge.domain.punycode}"


def txt_record_value(challenge: AuthorizationChallenge) -> str:
    """Base64url SHA-256 digest of the key authorization made with the domain's account key."""
    chall = challenges.DNS01(token=josepy.b64decode(challenge.challenge_token))
    return chall.validation(load_account_key(challenge.domain.account))


class Dns01Handler(ChallengeHandler):
    def __init__(self, provider: DnsProvider) -> None:
        self._provider = provider

    def before_challenge(self, challenge: AuthorizationChallenge) -> None:
        name = txt_record_name(challenge)
        logger.info("Publishing dns-01 TXT value at %s", name)
        self._provider.add_txt_value(name, txt_record_value(challenge))

    def after_challenge(self, challenge: AuthorizationChallenge) -> None:
        name = txt_record_name(challenge)
        logger.info("Removing dns-01 TXT value at %s", name)
        self._provider.remove_txt_value(name, txt_record_value(challenge))

    def close(self) -> None:
        self._provider.close()
