"""HTTP-01 handler that serves key authorizations from a web server's document root."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from acme_orchestrator.challenges.base import ChallengeHandler
from acme_orchestrator.models import AuthorizationChallenge

logger = logging.getLogger(__name__)

_CHALLENGE_DIR = Path(".well-known") / "acme-challenge"
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class Http01WebrootHandler(ChallengeHandler):
    """Writes ``<webroot>/.well-known/acme-challenge/<token>`` for the authority to fetch."""

    def __init__(self, webroot: str | Path) -> None:
        self._webroot = Path(webroot)

    def challenge_path(self, challenge: AuthorizationChallenge) -> Path:
        token = challenge.challenge_token
        if not _TOKEN_RE.match(token or ""):
            raise ValueError(f"Refusing to use challenge token {token!r} as a file name")
        return self._webroot / _CHALLENGE_DIR / token

    def before_challenge(self, challenge: AuthorizationChallenge) -> None:
        path = self.challenge_path(challenge)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(challenge.challenge_authorization_key)
        logger.info("Published HTTP-01 response for %s at %s", challenge.domain.host_display_name, path)

    def after_challenge(self, challenge: AuthorizationChallenge) -> None:
        path = self.challenge_path(challenge)
        path.unlink(missing_ok=True)
        logger.info("Removed HTTP-01 response %s", path)
