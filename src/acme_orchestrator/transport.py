"""Signed ACME requests on top of :class:`acme.client.ClientNetwork`.

GET requests go out unsigned. POST requests are wrapped in a JWS signed with
the account key: under ACME v2 the protected header names the account URL
(``kid``), under ACME v1 it embeds the public key (``jwk``). A ``None`` payload
produces the empty-payload POST-as-GET of RFC 8555.

``ClientNetwork`` keeps the nonce pool and retries a ``badNonce`` rejection
once. Status codes are checked here against what each caller expects.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any, Self

import josepy
import requests
from acme import errors as acme_errors
from acme import messages
from acme.client import ClientNetwork
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from acme_orchestrator.errors import AcmeProtocolError
from acme_orchestrator.keys import load_account_key, signature_algorithm
from acme_orchestrator.models import Account
from acme_orchestrator.protocol import ProtocolStrategy, strategy_for_server

logger = logging.getLogger(__name__)

_DEFAULT_USER_AGENT = "acme-orchestrator"


@dataclass(frozen=True)
class AcmeResponse:
    """Decoded response: JSON bodies as Python objects, certificates as PEM text."""

    code: int
    data: Any
    url: str
    location: str | None = None


class _JsonPayload(josepy.JSONDeSerializable):
    """Plain dict body that ``ClientNetwork`` can serialize into the JWS payload."""

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data

    def to_partial_json(self) -> dict[str, Any]:
        return self.data

    @classmethod
    def from_json(cls, jobj: Any) -> _JsonPayload:
        return cls(jobj)


class _AccountNetwork(ClientNetwork):
    """A ``ClientNetwork`` that leaves status code checks to :class:`AcmeTransport`.

    Only ``badNonce`` problems are still raised, so :meth:`ClientNetwork.post`
    can retry them.
    """

    @classmethod
    def _check_response(cls, response: requests.Response, content_type: str | None = None) -> requests.Response:
        try:
            return super()._check_response(response, content_type=content_type)
        except messages.Error as error:
            if error.code == "badNonce":
                raise
        except acme_errors.ClientError:
            pass
        return response


def _content_type(response: requests.Response) -> str:
    return response.headers.get("Content-Type", "").split(";")[0].strip().lower()


def _problem_document(response: requests.Response) -> dict[str, Any] | None:
    if _content_type(response) != ClientNetwork.JSON_ERROR_CONTENT_TYPE or not response.content:
        return None
    try:
        problem = response.json()
    except ValueError:
        return None
    return problem if isinstance(problem, dict) else None


def _describe_problem(problem: dict[str, Any]) -> str:
    try:
        return str(messages.Error.from_json(problem))
    except josepy.DeserializationError:
        return problem.get("detail") or problem.get("type") or "unknown problem"


class AcmeTransport:
    """Sends requests on behalf of an :class:`Account` and decodes the responses."""

    def __init__(
        self,
        user_agent: str = _DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        _http_session: requests.Session | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._http_session = _http_session
        # One network per signing identity; each holds its own nonce pool
        self._networks: dict[tuple[str, str | None], ClientNetwork] = {}

    def close(self) -> None:
        for network in self._networks.values():
            network.session.close()
        self._networks.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def send(
        self,
        account: Account,
        method: str,
        url: str,
        payload: dict[str, Any] | None,
        expected_codes: Collection[int],
    ) -> AcmeResponse:
        """Perform one request and return its decoded response.

        Raises:
            AcmeProtocolError: on network failure or when the status code is not
                in ``expected_codes``.
        """
        strategy = strategy_for_server(account.server)
        method = method.upper()
        if method not in ("GET", "POST"):
            raise ValueError(f"Unsupported HTTP method: {method}")
        network = self._network(account, strategy)

        try:
            if method == "GET":
                response = network.get(url, content_type=None)
            else:
                body = None if payload is None else _JsonPayload(payload)
                response = network.post(url, body, new_nonce_url=strategy.nonce_url(account.server))
        except messages.Error as error:
            # A second badNonce after the retry
            raise AcmeProtocolError(
                f"{method} {url} was rejected: {error}", status_code=400, problem=error.to_partial_json()
            ) from error
        except acme_errors.NonceError as err:
            raise AcmeProtocolError(f"Server did not provide a usable Replay-Nonce header for {url}: {err}") from err
        except (requests.RequestException, acme_errors.Error) as err:
            raise AcmeProtocolError(f"{method} {url} failed: {err}") from err

        if response.status_code not in expected_codes:
            problem = _problem_document(response)
            message = f"Unexpected HTTP status {response.status_code} from {method} {url}"
            if problem:
                message = f"{message}: {_describe_problem(problem)}"
            raise AcmeProtocolError(message, status_code=response.status_code, problem=problem)

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return AcmeResponse(
            code=response.status_code,
            data=self._decode_body(response, url),
            url=url,
            location=response.headers.get("Location"),
        )

    def _network(self, account: Account, strategy: ProtocolStrategy) -> ClientNetwork:
        kid = None
        if strategy.uses_key_id:
            if not account.registration_uri:
                raise ValueError(f"Account '{account.name}' has no registration URL")
            kid = account.registration_uri
        cache_key = (account.key_json, kid)
        network = self._networks.get(cache_key)
        if network is None:
            key = load_account_key(account)
            network = _AccountNetwork(
                key,
                alg=signature_algorithm(key),
                user_agent=self._user_agent,
                timeout=self._timeout,
            )
            if kid:
                network.account = messages.RegistrationResource(uri=kid, body=messages.Registration())
            if self._http_session is not None:
                network.session = self._http_session
            self._networks[cache_key] = network
        return network

    def _decode_body(self, response: requests.Response, url: str) -> Any:
        content_type = _content_type(response)
        if content_type == ClientNetwork.JSON_CONTENT_TYPE or content_type.endswith("+json"):
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as err:
                raise AcmeProtocolError(f"Invalid JSON in response from {url}", status_code=response.status_code) from err
        if content_type == "application/pkix-cert":
            # ACME v1 serves the bare DER certificate
            if not response.content:
                return ""
            try:
                cert = x509.load_der_x509_certificate(response.content)
            except ValueError as err:
                raise AcmeProtocolError(
                    f"Invalid DER certificate in response from {url}", status_code=response.status_code
                ) from err
            return cert.public_bytes(serialization.Encoding.PEM).decode()
        return response.text
