"""Builders for ACME resources and a scripted transport used across the test suite."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import josepy

from acme_orchestrator.errors import AcmeProtocolError
from acme_orchestrator.transport import AcmeResponse

BASE = "https://acme.test"


def make_token(seed: str) -> str:
    """A base64url challenge token long enough for acme's 128-bit minimum."""
    return josepy.b64encode(seed.encode().ljust(32, b"0")).decode()


def challenge_json(kind: str, url: str, token: str, status: str = "pending", legacy: bool = False) -> dict:
    data = {"type": kind, "status": status, "token": token}
    data["uri" if legacy else "url"] = url
    return data


def authorization_json(
    domain: str,
    challenges: list[dict],
    status: str = "pending",
    wildcard: bool = False,
    expires: str = "2030-01-08T00:00:00Z",
) -> dict:
    data = {
        "identifier": {"type": "dns", "value": domain},
        "status": status,
        "expires": expires,
        "challenges": challenges,
    }
    if wildcard:
        data["wildcard"] = True
    return data


@dataclass
class Call:
    method: str
    url: str
    payload: dict | None
    expected_codes: tuple[int, ...]


class ScriptedTransport:
    """Stands in for AcmeTransport: answers from per-(method, url) scripts.

    A script entry is an AcmeResponse, an exception to raise, or a callable
    returning either. Entries are consumed in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._routes: dict[tuple[str, str], list[Any]] = {}

    def add(self, method: str, url: str, *entries: Any) -> None:
        self._routes.setdefault((method, url), []).extend(entries)

    def reply(self, method: str, url: str, data: Any, code: int = 200, location: str | None = None) -> None:
        self.add(method, url, AcmeResponse(code=code, data=data, url=url, location=location))

    def reset(self) -> None:
        self.calls.clear()
        self._routes.clear()

    def send(self, account, method, url, payload, expected_codes) -> AcmeResponse:
        self.calls.append(Call(method, url, payload, tuple(expected_codes)))
        script = self._routes.get((method, url))
        if not script:
            raise AssertionError(f"Unexpected request: {method} {url}")
        entry = script.pop(0) if len(script) > 1 else script[0]
        if callable(entry):
            entry = entry()
        if isinstance(entry, BaseException):
            raise entry
        if entry.code not in expected_codes:
            raise AcmeProtocolError(f"Unexpected HTTP status {entry.code}", status_code=entry.code)
        return entry
