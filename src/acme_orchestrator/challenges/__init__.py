"""Challenge handler registry — resolve a domain's challenge type handle to a handler."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from acme_orchestrator.challenges.base import ChallengeHandler
from acme_orchestrator.challenges.dns01 import Dns01Handler
from acme_orchestrator.challenges.http01 import Http01WebrootHandler
from acme_orchestrator.config import AppConfig
from acme_orchestrator.dns import get_dns_provider

logger = logging.getLogger(__name__)

HTTP_01 = "http-01"
DNS_01 = "dns-01"


class ChallengeHandlerRegistry:
    """Handlers keyed by challenge type handle (``http-01``, ``dns-01``, ...)."""

    def __init__(self, handlers: Mapping[str, ChallengeHandler] | None = None) -> None:
        self._handlers: dict[str, ChallengeHandler] = dict(handlers or {})

    def register(self, handle: str, handler: ChallengeHandler) -> None:
        self._handlers[handle] = handler

    def get_challenge_by_handle(self, handle: str) -> ChallengeHandler | None:
        return self._handlers.get(handle)

    @property
    def handles(self) -> list[str]:
        return sorted(self._handlers)

    def close(self) -> None:
        for handler in self._handlers.values():
            handler.close()


def build_challenge_registry(config: AppConfig) -> ChallengeHandlerRegistry:
    """Register a handler for every challenge type the configuration enables.

    ``http-01`` needs ``HTTP01_WEBROOT``; ``dns-01`` needs ``DNS_PROVIDER`` and
    that provider's credentials.
    """
    registry = ChallengeHandlerRegistry()
    if config.http01_webroot:
        registry.register(HTTP_01, Http01WebrootHandler(config.http01_webroot))
    if config.dns_provider:
        registry.register(DNS_01, Dns01Handler(get_dns_provider(config)))
    if not registry.handles:
        logger.warning("No challenge handlers configured: set HTTP01_WEBROOT and/or DNS_PROVIDER")
    return registry
