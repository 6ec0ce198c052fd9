"""HTTP transport for OBF API calls.

The Transport protocol lets the enrollment and request components run
against a real TLS client or a test double. HttpxTransport always verifies
the server certificate and hostname and attaches the client certificate
when one is given.
"""

from __future__ import annotations

import ssl
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Protocol

import httpx

from obf_client.exceptions import TransportError

JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class TransportOptions:
    """Per-call TLS and timeout options."""

    client_cert: tuple[Path, Path] | None = None
    ca_bundle: Path | None = None
    timeout: float = 30.0

    def with_client_cert(self, cert_file: Path, key_file: Path) -> TransportOptions:
        """Same options with the given client certificate and key attached."""
        return replace(self, client_cert=(cert_file, key_file))

    def without_client_cert(self) -> TransportOptions:
        """Same options with no client certificate attached."""
        return replace(self, client_cert=None)


@dataclass(frozen=True)
class TransportResponse:
    """Raw HTTP response returned by a transport."""

    status_code: int
    content: bytes

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.content.decode("utf-8", errors="replace")


class Transport(Protocol):
    """Protocol for transports used by the OBF client.

    Implementations raise TransportError when no HTTP response is received.
    """

    def get(self, url: str, params: Mapping[str, Any], options: TransportOptions) -> TransportResponse:
        """Send a GET with query-encoded params."""
        ...

    def post(self, url: str, body: str, options: TransportOptions) -> TransportResponse:
        """Send a POST with a JSON body."""
        ...

    def delete(self, url: str, params: Mapping[str, Any], options: TransportOptions) -> TransportResponse:
        """Send a DELETE with query-encoded params."""
        ...


def build_ssl_context(options: TransportOptions) -> ssl.SSLContext:
    """Create the TLS context for a call.

    Peer verification and hostname checking are always on.

    Args:
        options: Transport options with optional CA bundle and client cert.

    Returns:
        Configured SSL context.

    Raises:
        TransportError: If the CA bundle or client credentials cannot be loaded.
    """
    try:
        cafile = str(options.ca_bundle) if options.ca_bundle else None
        context = ssl.create_default_context(cafile=cafile)
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
        if options.client_cert is not None:
            cert_file, key_file = options.client_cert
            context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    except (ssl.SSLError, OSError) as e:
        raise TransportError(f"Failed to set up TLS: {e}", details={"reason": str(e)}) from e
    return context


class HttpxTransport:
    """Transport backed by a short-lived httpx.Client per call."""

    def __init__(self, client_factory: Callable[..., httpx.Client] = httpx.Client) -> None:
        """Initialize with the factory used to open clients.

        Args:
            client_factory: Called with ``verify``, ``timeout`` and
                ``follow_redirects`` keyword arguments.
        """
        self._client_factory = client_factory

    def get(self, url: str, params: Mapping[str, Any], options: TransportOptions) -> TransportResponse:
        """Send a GET with query-encoded params."""
        return self._send("GET", url, options, params=params)

    def post(self, url: str, body: str, options: TransportOptions) -> TransportResponse:
        """Send a POST with a JSON body."""
        return self._send("POST", url, options, content=body.encode("utf-8"))

    def delete(self, url: str, params: Mapping[str, Any], options: TransportOptions) -> TransportResponse:
        """Send a DELETE with query-encoded params."""
        return self._send("DELETE", url, options, params=params)

    def _send(
        self,
        method: str,
        url: str,
        options: TransportOptions,
        *,
        params: Mapping[str, Any] | None = None,
        content: bytes | None = None,
    ) -> TransportResponse:
        context = build_ssl_context(options)
        try:
            with self._client_factory(
                verify=context,
                timeout=options.timeout,
                follow_redirects=False,
            ) as client:
                response = client.request(
                    method,
                    url,
                    params=dict(params) if params else None,
                    content=content,
                    headers=JSON_HEADERS if content is not None else None,
                )
        except httpx.HTTPError as e:
            raise TransportError.request_failed(method=method, url=url, reason=str(e) or type(e).__name__) from e

        return TransportResponse(status_code=response.status_code, content=response.content)
