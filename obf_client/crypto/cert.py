"""Issued client certificate parsing.

Reads the PEM certificate returned by the sign request endpoint and
exposes its validity period without any network access.
"""

from __future__ import annotations

from cryptography import x509

from obf_client.exceptions import EnrollmentError


def load_stored_certificate(pem_data: bytes) -> x509.Certificate | None:
    """Parse a certificate read back from storage, or None when it is corrupt."""
    try:
        return x509.load_pem_x509_certificate(pem_data)
    except ValueError:
        return None


def load_issued_certificate(pem_data: bytes) -> x509.Certificate:
    """Parse a PEM certificate returned by the API.

    Args:
        pem_data: Certificate in PEM format.

    Returns:
        Parsed certificate.

    Raises:
        EnrollmentError: If the data is not a PEM certificate.
    """
    try:
        return x509.load_pem_x509_certificate(pem_data)
    except ValueError as e:
        msg = f"API returned an unreadable certificate: {e}"
        raise EnrollmentError(msg, details={"phase": "certificate"}) from e


def expiration_timestamp(cert: x509.Certificate) -> int:
    """Return the certificate's notAfter time as a Unix timestamp.

    Args:
        cert: Certificate to inspect.

    Returns:
        Seconds since the epoch, UTC.
    """
    return int(cert.not_valid_after_utc.timestamp())
