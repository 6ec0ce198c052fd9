"""CSR (Certificate Signing Request) creation for client enrollment.

Builds the PKCS#10 request that binds a freshly generated client key to
the client id revealed by the enrollment token.
"""

from __future__ import annotations

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

from obf_client.exceptions import CsrExportError


def build_csr(private_key: rsa.RSAPrivateKey, client_id: str) -> x509.CertificateSigningRequest:
    """Build a CSR with the client id as Common Name.

    Args:
        private_key: Key the certificate will be issued for.
        client_id: Client id, used as the subject CN.

    Returns:
        Signed certificate signing request.

    Raises:
        CsrExportError: If the subject is invalid or signing fails.
    """
    try:
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, client_id)])
        return x509.CertificateSigningRequestBuilder().subject_name(subject).sign(private_key, hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CsrExportError.export_failed(reason=str(e)) from e


def encode_csr_pem(csr: x509.CertificateSigningRequest) -> str:
    """Encode CSR to PEM text.

    Args:
        csr: The CSR to encode.

    Returns:
        PEM-encoded CSR as text.

    Raises:
        CsrExportError: If encoding fails.
    """
    try:
        return csr.public_bytes(Encoding.PEM).decode("ascii")
    except (ValueError, UnicodeDecodeError) as e:
        raise CsrExportError.export_failed(reason=str(e)) from e
