# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/service_api.py

"""
HTTP transport for UCAN-invoked services.

An invocation is a delegation from the agent to the service DID carrying a
single capability. Invocations are POSTed as CAR archives
(Content-Type: application/car) and the service answers with a DAG-CBOR
array holding one result per invocation.

Debug logging:
    Enable with: W3_DEBUG=1 or by setting log level to DEBUG
    Example: W3_DEBUG=1 w3 whoami
"""

import logging
import os
from typing import Iterable, Optional

import dag_cbor
import requests
from requests_toolbelt.utils import dump

from w3_client import car
from w3_client.delegation import Delegation, delegate
from w3_client.principal import SigningPrincipal


CONTENT_TYPE_CAR = "application/car"
CONTENT_TYPE_CBOR = "application/cbor"

# Invocations only need to live long enough to reach the service
INVOCATION_LIFETIME = 60

# Configure logger for this module
logger = logging.getLogger(__name__)

# Enable debug logging via environment variable
if os.environ.get("W3_DEBUG"):
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    logger.setLevel(logging.DEBUG)


class ServiceAPIError(Exception):
    """Raised when the service returns an HTTP error."""

    def __init__(self, message: str, status_code: int = None, response: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class InvocationError(ServiceAPIError):
    """Raised when the service rejects an invocation."""

    def __init__(self, message: str, name: str = None, response: dict = None):
        super().__init__(message, status_code=None, response=response)
        self.name = name


class ServiceClient:
    """HTTP client for one UCAN service endpoint."""

    def __init__(self, url: str, audience: str, session: Optional[requests.Session] = None):
        """
        Initialize service client.

        Args:
            url: Base URL of the service
            audience: DID of the service (audience of every invocation)
            session: requests.Session to reuse (default: new session)
        """
        self.base_url = url.rstrip("/")
        self.audience = audience
        self.session = session or requests.Session()

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Make HTTP request to the service."""
        url = endpoint if endpoint.startswith(("http://", "https://")) else f"{self.base_url}{endpoint}"

        # Debug logging for request
        body = kwargs.get("data")
        logger.debug(f"Request: {method} {url} ({len(body) if body else 0} bytes)")

        response = self.session.request(method, url, **kwargs)

        # Debug logging for response
        logger.debug(f"Response status: {response.status_code}")
        logger.debug(f"Response headers: {dict(response.headers)}")
        if logger.isEnabledFor(logging.DEBUG) and not response.headers.get("Content-Type", "").startswith(CONTENT_TYPE_CBOR):
            # Truncate dump for logging (first 2000 chars)
            logger.debug(dump.dump_all(response).decode("utf-8", "replace")[:2000])

        if response.status_code == 401:
            raise ServiceAPIError("Unauthorized: check your delegations for this service", 401)
        if response.status_code >= 400:
            try:
                error_data = response.json()
                msg = error_data.get("message", response.text)
            except ValueError:
                msg = response.text
            raise ServiceAPIError(msg or f"HTTP {response.status_code}", response.status_code)

        return response

    def invocation(
        self,
        issuer: SigningPrincipal,
        capability: dict,
        proofs: Iterable[Delegation] = (),
    ) -> Delegation:
        """Build the delegation that invokes capability on this service."""
        return delegate(
            issuer,
            self.audience,
            [capability],
            lifetime_in_seconds=INVOCATION_LIFETIME,
            proofs=list(proofs),
        )

    def invoke(
        self,
        issuer: SigningPrincipal,
        capability: dict,
        proofs: Iterable[Delegation] = (),
    ):
        """
        Invoke a capability and return the service's result.

        Args:
            issuer: Agent signing the invocation
            capability: {"with": resource, "can": ability, "nb"?: {...}}
            proofs: Delegations authorizing the issuer

        Returns:
            The decoded result value

        Raises:
            ServiceAPIError: HTTP failure or undecodable response
            InvocationError: the service returned an error result
        """
        invocation = self.invocation(issuer, capability, proofs)
        body = car.encode([invocation.cid], invocation.export())
        logger.debug(f"invoke: {capability.get('can')} with={capability.get('with')} cid={invocation.cid}")

        response = self._request(
            "POST",
            "/",
            data=body,
            headers={"Content-Type": CONTENT_TYPE_CAR, "Accept": CONTENT_TYPE_CBOR},
        )

        try:
            results = dag_cbor.decode(response.content)
        except Exception as e:
            raise ServiceAPIError(f"Invalid response from service: {e}", response.status_code) from e

        if not isinstance(results, list) or not results:
            raise ServiceAPIError(f"Unexpected response shape from service: {results!r}")

        return unwrap_result(results[0])

    def put(self, url: str, data: bytes, headers: dict = None) -> requests.Response:
        """Upload bytes to a (presigned) URL."""
        return self._request("PUT", url, data=data, headers=headers or {})

    def get_json(self, url: str, params: dict = None):
        response = self._request("GET", url, params=params)
        return response.json()


def unwrap_result(result):
    """
    Turn a single invocation result into a value or an InvocationError.

    Accepts both envelopes services have used:
        {"ok": value} / {"error": {"name", "message"}}
        value / {"error": true, "name", "message"}
    """
    if isinstance(result, dict):
        if "ok" in result and len(result) == 1:
            return result["ok"]
        error = result.get("error")
        if isinstance(error, dict):
            raise InvocationError(
                error.get("message", "invocation failed"),
                name=error.get("name"),
                response=result,
            )
        if error is True:
            raise InvocationError(
                result.get("message", "invocation failed"),
                name=result.get("name"),
                response=result,
            )
    return result
