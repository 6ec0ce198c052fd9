"""Custom exception hierarchy for the OBF client.

All exceptions inherit from ObfClientError for consistent handling.
Each exception carries a numeric code: the HTTP status for API failures,
0 for failures that happen before any HTTP response exists.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


class ObfClientError(Exception):
    """Base exception for all OBF client errors.

    Attributes:
        message: Human-readable error description.
        code: Numeric failure code (HTTP status or 0).
        details: Additional context for audit logging.
    """

    code: int = 0

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        details: Mapping[str, str | int | bool | None] | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Human-readable error description.
            code: Overrides the class-level failure code.
            details: Additional context for audit logging.
        """
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = dict(details) if details else {}

    def to_audit_dict(self) -> dict[str, str | int | bool | None]:
        """Return dictionary suitable for audit logging.

        Returns:
            Dictionary with exception type, message, code, and details.
        """
        return {
            "exception_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            **self.details,
        }


class ConfigurationError(ObfClientError):
    """Configuration or local environment error."""

    @classmethod
    def invalid_config(cls, *, field: str, reason: str) -> ConfigurationError:
        """Create exception for invalid configuration.

        Args:
            field: The configuration field with the error.
            reason: Why the configuration is invalid.

        Returns:
            ConfigurationError instance.
        """
        return cls(f"Invalid configuration for '{field}': {reason}", details={"field": field, "reason": reason})

    @classmethod
    def pki_dir_not_writable(cls, *, path: str) -> ConfigurationError:
        """Create exception for a missing or read-only certificate directory.

        Args:
            path: The certificate directory.

        Returns:
            ConfigurationError instance.
        """
        return cls(f"Certificate directory is not writable: {path}", details={"pki_dir": path})


class MissingClientIdError(ObfClientError):
    """No client id is stored; the client has not been enrolled."""

    def __init__(self, message: str = "OBF client id is missing, enroll the client first") -> None:
        super().__init__(message, code=0)


class NotEnrolledError(ObfClientError):
    """Client id is present but the certificate or private key is missing."""

    @classmethod
    def missing_credentials(cls, *, cert_path: str, key_path: str) -> NotEnrolledError:
        """Create exception for an incomplete credential pair.

        Args:
            cert_path: Expected certificate location.
            key_path: Expected private key location.

        Returns:
            NotEnrolledError instance.
        """
        return cls(
            "Client certificate or private key is missing, enroll the client again",
            details={"cert_path": cert_path, "key_path": key_path},
        )


class TransportError(ObfClientError):
    """Network or TLS failure before any HTTP response was received."""

    @classmethod
    def request_failed(cls, *, method: str, url: str, reason: str) -> TransportError:
        """Create exception for a failed transport call.

        Args:
            method: HTTP method of the request.
            url: Target URL.
            reason: Transport-level failure description.

        Returns:
            TransportError instance.
        """
        return cls(f"{method} {url} failed: {reason}", details={"method": method, "url": url, "reason": reason})


class HttpError(ObfClientError):
    """The API answered with a status code outside 2xx.

    Attributes:
        status_code: HTTP status of the response.
        server_message: The ``error`` field of the response body, or "".
    """

    def __init__(
        self,
        status_code: int,
        server_message: str = "",
        *,
        url: str | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"OBF API returned HTTP {status_code}"
            if server_message:
                message += f": {server_message}"
        super().__init__(
            message,
            code=status_code,
            details={"status_code": status_code, "server_message": server_message, "url": url},
        )
        self.status_code = status_code
        self.server_message = server_message
        self.url = url


class ServerRejectedError(HttpError):
    """The API rejected a step of the enrollment handshake."""

    @classmethod
    def public_key_request(cls, *, status_code: int, url: str) -> ServerRejectedError:
        """Create exception for a failed public key fetch.

        Args:
            status_code: HTTP status of the response.
            url: Public key URL.

        Returns:
            ServerRejectedError instance.
        """
        return cls(
            status_code,
            url=url,
            message=f"Public key request failed: HTTP {status_code}",
        )

    @classmethod
    def certificate_request(
        cls,
        *,
        status_code: int,
        url: str,
        server_message: str | None,
    ) -> ServerRejectedError:
        """Create exception for a rejected certificate signing request.

        Args:
            status_code: HTTP status of the response.
            url: Sign request URL.
            server_message: Error text from the response body, if any.

        Returns:
            ServerRejectedError instance.
        """
        extra = server_message or f"HTTP {status_code}"
        return cls(
            status_code,
            server_message or "",
            url=url,
            message=f"Certificate request failed: {extra}",
        )


class EnrollmentError(ObfClientError):
    """Base class for local failures of the enrollment handshake."""


class KeyParseError(EnrollmentError):
    """The API public key could not be parsed."""

    @classmethod
    def invalid_key(cls, *, reason: str) -> KeyParseError:
        """Create exception for an unparseable public key.

        Args:
            reason: Why parsing failed.

        Returns:
            KeyParseError instance.
        """
        return cls(f"Public key extraction failed: {reason}", details={"phase": "public_key", "reason": reason})


class TokenDecryptError(EnrollmentError):
    """The enrollment token could not be decrypted with the API public key."""

    @classmethod
    def undecryptable(cls, *, reason: str) -> TokenDecryptError:
        """Create exception for a token that fails decryption or decoding.

        Args:
            reason: Why decryption failed.

        Returns:
            TokenDecryptError instance.
        """
        return cls(f"Token decryption failed: {reason}", details={"phase": "token", "reason": reason})


class CsrExportError(EnrollmentError):
    """The certificate signing request could not be built or exported."""

    @classmethod
    def export_failed(cls, *, reason: str) -> CsrExportError:
        """Create exception for a CSR export failure.

        Args:
            reason: Why the export failed.

        Returns:
            CsrExportError instance.
        """
        return cls(f"CSR export failed: {reason}", details={"phase": "csr", "reason": reason})


class CertificateWriteError(EnrollmentError):
    """A credential file could not be written."""

    @classmethod
    def write_failed(cls, *, path: str, reason: str) -> CertificateWriteError:
        """Create exception for a credential write failure.

        Args:
            path: File that could not be written.
            reason: Why the write failed.

        Returns:
            CertificateWriteError instance.
        """
        return cls(f"Failed to write {path}: {reason}", details={"phase": "storage", "path": path, "reason": reason})
