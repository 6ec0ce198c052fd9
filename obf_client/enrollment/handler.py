"""Client enrollment against the OBF API.

The handshake turns a signed enrollment token into a client certificate:

1. Fetch the API public key over plain TLS.
2. Decrypt the token with it to learn the client id.
3. Generate a client key pair and a CSR for that id.
4. Submit the CSR with the original token and store the returned certificate.

The client id is persisted as soon as it is known. A failure after the key
is written leaves the certificate absent, which the request component
treats as not enrolled.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import TYPE_CHECKING
from urllib.parse import quote

from obf_client.audit.logger import (
    clear_correlation_id,
    log_certificate_stored,
    log_client_id_recorded,
    log_deauthenticated,
    log_enrollment_failed,
    log_enrollment_started,
    set_correlation_id,
)
from obf_client.crypto.cert import expiration_timestamp, load_issued_certificate, load_stored_certificate
from obf_client.crypto.csr import build_csr, encode_csr_pem
from obf_client.crypto.keys import (
    encode_private_key_pem,
    generate_client_key,
    load_api_public_key,
    recover_client_id,
)
from obf_client.exceptions import ObfClientError, ServerRejectedError, TokenDecryptError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric import rsa

    from obf_client.models import ClientIdentity
    from obf_client.pki.store import CredentialStore
    from obf_client.transport.http import Transport, TransportOptions

PUBLIC_KEY_PATH = "/client/OBF.rsa.pub"


class Enroller:
    """Runs the enrollment handshake and manages the resulting credentials."""

    def __init__(
        self,
        api_url: str,
        store: CredentialStore,
        transport: Transport,
        options: TransportOptions,
    ) -> None:
        """Initialize with API url, credential store and transport.

        Args:
            api_url: Base url of the OBF API, without trailing slash.
            store: Store receiving the client id, key and certificate.
            transport: Transport for the handshake calls.
            options: TLS and timeout options; the client cert is never attached.
        """
        self._api_url = api_url.rstrip("/")
        self._store = store
        self._transport = transport
        self._options = options.without_client_cert()

    def enroll(self, signature: str) -> ClientIdentity:
        """Enroll the client using a signed token from OBF.

        Args:
            signature: Base64 enrollment token.

        Returns:
            The stored client identity.

        Raises:
            ConfigurationError: If the certificate directory is not writable.
            TransportError: If an API call gets no HTTP response.
            ServerRejectedError: If the API answers a handshake step with non-200.
            KeyParseError: If the API public key cannot be parsed.
            TokenDecryptError: If the token cannot be decrypted.
            CsrExportError: If the CSR cannot be built or exported.
            CertificateWriteError: If a credential file cannot be written.
        """
        self._store.ensure_writable()

        set_correlation_id()
        log_enrollment_started(api_url=self._api_url)
        try:
            identity = self._enroll(signature.strip())
        except ObfClientError as e:
            log_enrollment_failed(error=e)
            raise
        finally:
            clear_correlation_id()
        return identity

    def _enroll(self, signature: str) -> ClientIdentity:
        token = _decode_token(signature)
        public_key = self._fetch_public_key()
        client_id = recover_client_id(public_key, token)

        self._store.save_client_id(client_id)
        log_client_id_recorded(client_id=client_id)

        private_key = generate_client_key()
        self._store.write_private_key(encode_private_key_pem(private_key))

        cert_pem = self._request_certificate(client_id, signature, private_key)
        cert = load_issued_certificate(cert_pem)
        self._store.write_certificate(cert_pem)

        log_certificate_stored(
            client_id=client_id,
            not_after=cert.not_valid_after_utc,
            path=str(self._store.cert_path),
        )
        return self._store.identity()

    def _fetch_public_key(self) -> rsa.RSAPublicKey:
        url = self._api_url + PUBLIC_KEY_PATH
        response = self._transport.get(url, {}, self._options)
        if response.status_code != 200:
            raise ServerRejectedError.public_key_request(status_code=response.status_code, url=url)
        return load_api_public_key(response.content)

    def _request_certificate(
        self,
        client_id: str,
        signature: str,
        private_key: rsa.RSAPrivateKey,
    ) -> bytes:
        csr_pem = encode_csr_pem(build_csr(private_key, client_id))
        url = f"{self._api_url}/client/{quote(client_id, safe='')}/sign_request"
        body = json.dumps({"signature": signature, "request": csr_pem})

        response = self._transport.post(url, body, self._options)
        if response.status_code != 200:
            raise ServerRejectedError.certificate_request(
                status_code=response.status_code,
                url=url,
                server_message=_server_error(response.text),
            )
        return response.content

    def deauthenticate(self) -> None:
        """Remove the stored certificate, key and client id.

        Never raises; missing files are ignored.
        """
        client_id = self._store.client_id
        self._store.clear()
        log_deauthenticated(client_id=client_id)

    def certificate_expiration(self) -> int | None:
        """Return the stored certificate's expiry as a Unix timestamp.

        Returns:
            Timestamp of notAfter, or None when no readable certificate is stored.
        """
        cert_pem = self._store.read_certificate()
        if cert_pem is None:
            return None
        cert = load_stored_certificate(cert_pem)
        if cert is None:
            return None
        return expiration_timestamp(cert)


def _decode_token(signature: str) -> bytes:
    try:
        return base64.b64decode("".join(signature.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise TokenDecryptError.undecryptable(reason="token is not valid base64") from e


def _server_error(text: str) -> str | None:
    try:
        body = json.loads(text)
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None
