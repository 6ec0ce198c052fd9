"""Authenticated API requests.

Every call goes through ApiRequester.request, which attaches the stored
client certificate, encodes params per method, decodes the JSON body and
maps non-2xx responses to HttpError.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from obf_client.audit.logger import (
    clear_correlation_id,
    log_api_failure,
    log_api_request,
    set_correlation_id,
)
from obf_client.exceptions import (
    HttpError,
    MissingClientIdError,
    NotEnrolledError,
    TransportError,
)
from obf_client.models import ApiResponse, HttpMethod

if TYPE_CHECKING:
    from collections.abc import Mapping

    from obf_client.models import ResponsePreprocessor
    from obf_client.pki.store import CredentialStore
    from obf_client.transport.http import Transport, TransportOptions, TransportResponse


class ApiRequester:
    """Sends mutual-TLS requests with the stored client credentials.

    Keeps the status code, error message and decoded response of the last
    call for diagnostics. The raw body is kept only when enabled.
    """

    def __init__(
        self,
        store: CredentialStore,
        transport: Transport,
        options: TransportOptions,
        *,
        retain_raw_response: bool = False,
    ) -> None:
        """Initialize with credential store and transport.

        Args:
            store: Store holding client id, certificate and key.
            transport: Transport used for every call.
            options: Base TLS and timeout options.
            retain_raw_response: Keep the raw body of the last call.
        """
        self._store = store
        self._transport = transport
        self._options = options
        self._retain_raw_response = retain_raw_response
        self._raw_response: bytes | None = None
        self.last_http_code: int | None = None
        self.last_error = ""
        self.last_response: ApiResponse | None = None

    @property
    def raw_response(self) -> bytes | None:
        """Raw body of the last call, when retention is enabled."""
        return self._raw_response

    @property
    def retain_raw_response(self) -> bool:
        """Whether raw bodies are retained."""
        return self._retain_raw_response

    def set_retain_raw_response(self, enable: bool) -> ApiRequester:
        """Enable or disable raw body retention, dropping any retained body."""
        self._retain_raw_response = enable
        self._raw_response = None
        return self

    def require_client_id(self) -> str:
        """Return the stored client id.

        Raises:
            MissingClientIdError: If no client id is stored.
        """
        client_id = self._store.client_id
        if not client_id:
            raise MissingClientIdError
        return client_id

    def request(
        self,
        url: str,
        method: HttpMethod = HttpMethod.GET,
        params: Mapping[str, Any] | None = None,
        preprocessor: ResponsePreprocessor | None = None,
    ) -> Any:
        """Send an authenticated request and return the decoded body.

        Args:
            url: Absolute API url.
            method: HTTP method.
            params: Query params for GET/DELETE, JSON body for POST.
            preprocessor: Rewrites the raw body before JSON decoding.

        Returns:
            Decoded JSON body, or None when the body is not JSON.

        Raises:
            MissingClientIdError: If no client id is stored.
            NotEnrolledError: If the certificate or key is missing.
            TransportError: If no HTTP response was received.
            HttpError: If the status code is outside 2xx.
        """
        self.require_client_id()
        if not self._store.has_credentials():
            raise NotEnrolledError.missing_credentials(
                cert_path=str(self._store.cert_path),
                key_path=str(self._store.key_path),
            )

        params = params or {}
        set_correlation_id()
        try:
            try:
                response = self._send(url, method, params)
            except TransportError as e:
                self.last_http_code = None
                self._raw_response = None
                self.last_error = e.message
                self.last_response = None
                log_api_failure(method=method.value, url=url, status_code=None, reason=e.message)
                raise

            return self._handle_response(url, method, response, preprocessor)
        finally:
            clear_correlation_id()

    def _send(self, url: str, method: HttpMethod, params: Mapping[str, Any]) -> TransportResponse:
        options = self._options.with_client_cert(self._store.cert_path, self._store.key_path)
        if method == HttpMethod.GET:
            return self._transport.get(url, params, options)
        if method == HttpMethod.DELETE:
            return self._transport.delete(url, params, options)
        return self._transport.post(url, json.dumps(params), options)

    def _handle_response(
        self,
        url: str,
        method: HttpMethod,
        response: TransportResponse,
        preprocessor: ResponsePreprocessor | None,
    ) -> Any:
        output = response.text
        if preprocessor is not None:
            output = preprocessor(output)
        body = decode_json(output)

        if self._retain_raw_response:
            self._raw_response = response.content

        self.last_http_code = response.status_code
        self.last_error = ""
        self.last_response = ApiResponse(status_code=response.status_code, body=body)

        if not self.last_response.ok:
            # error bodies are plain JSON even where the preprocessor expects lines
            self.last_error = error_message(body) or error_message(decode_json(response.text)) or ""
            log_api_failure(
                method=method.value,
                url=url,
                status_code=response.status_code,
                reason=self.last_error,
            )
            raise HttpError(response.status_code, self.last_error, url=url)

        log_api_request(method=method.value, url=url, status_code=response.status_code)
        return body


def decode_json(output: str) -> Any:
    """Decode a JSON body, returning None when it is not valid JSON."""
    try:
        return json.loads(output)
    except ValueError:
        return None


def error_message(body: Any) -> str | None:
    """Return the ``error`` field of a decoded body, if it has one."""
    if isinstance(body, dict):
        error = body.get("error")
        if error is not None:
            return str(error)
    return None
