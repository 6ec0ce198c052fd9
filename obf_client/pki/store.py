"""Client credential storage.

Keeps the client id, the client private key and the issued certificate in
one directory. The directory must already exist; it is never created here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from obf_client.audit.logger import log_credential_removal_failed
from obf_client.exceptions import CertificateWriteError, ConfigurationError
from obf_client.models import ClientIdentity

if TYPE_CHECKING:
    from obf_client.config import PKIConfig


class CredentialStore:
    """File-backed store for the client identity."""

    def __init__(
        self,
        directory: Path,
        *,
        key_filename: str = "obf.key",
        cert_filename: str = "obf.pem",
        client_id_filename: str = "client_id",
    ) -> None:
        """Initialize with the certificate directory and file names.

        Args:
            directory: Existing directory holding the credentials.
            key_filename: Private key file name.
            cert_filename: Certificate file name.
            client_id_filename: Client id file name.
        """
        self._directory = Path(directory)
        self._key_path = self._directory / key_filename
        self._cert_path = self._directory / cert_filename
        self._client_id_path = self._directory / client_id_filename

    @classmethod
    def from_config(cls, config: PKIConfig) -> CredentialStore:
        """Create store from configuration."""
        return cls(
            config.directory,
            key_filename=config.key_filename,
            cert_filename=config.cert_filename,
            client_id_filename=config.client_id_filename,
        )

    @property
    def directory(self) -> Path:
        """Directory holding the credentials."""
        return self._directory

    @property
    def key_path(self) -> Path:
        """Location of the client private key."""
        return self._key_path

    @property
    def cert_path(self) -> Path:
        """Location of the issued client certificate."""
        return self._cert_path

    @property
    def client_id(self) -> str | None:
        """The stored client id, or None when not set."""
        try:
            value = self._client_id_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return value or None

    def identity(self) -> ClientIdentity:
        """Snapshot of the stored identity."""
        return ClientIdentity(
            client_id=self.client_id,
            certificate_path=self._cert_path,
            private_key_path=self._key_path,
        )

    def has_credentials(self) -> bool:
        """True only when both the certificate and the private key exist."""
        return self._cert_path.is_file() and self._key_path.is_file()

    def ensure_writable(self) -> None:
        """Check the certificate directory exists and is writable.

        Raises:
            ConfigurationError: If the directory is missing or read-only.
        """
        if not self._directory.is_dir() or not os.access(self._directory, os.W_OK):
            raise ConfigurationError.pki_dir_not_writable(path=str(self._directory.resolve()))

    def save_client_id(self, client_id: str) -> None:
        """Persist the client id.

        Raises:
            CertificateWriteError: If the file cannot be written.
        """
        self._write(self._client_id_path, client_id.encode("utf-8"))

    def write_private_key(self, key_pem: bytes) -> None:
        """Persist a new private key, discarding any certificate issued for an older key.

        Raises:
            CertificateWriteError: If a file cannot be written or removed.
        """
        try:
            self._cert_path.unlink(missing_ok=True)
        except OSError as e:
            raise CertificateWriteError.write_failed(path=str(self._cert_path), reason=str(e)) from e

        self._write(self._key_path, key_pem, mode=0o600)

    def write_certificate(self, cert_pem: bytes) -> None:
        """Persist the issued client certificate.

        Raises:
            CertificateWriteError: If the file cannot be written.
        """
        self._write(self._cert_path, cert_pem)

    def read_certificate(self) -> bytes | None:
        """Return the stored certificate, or None when absent."""
        try:
            return self._cert_path.read_bytes()
        except FileNotFoundError:
            return None

    def clear(self) -> None:
        """Remove the certificate, private key and client id.

        Missing files are ignored and removal errors are only logged.
        """
        for path in (self._cert_path, self._key_path, self._client_id_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log_credential_removal_failed(path=str(path), reason=str(e))

    def _write(self, path: Path, data: bytes, *, mode: int | None = None) -> None:
        # the target only ever holds a complete file
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            tmp_path.write_bytes(data)
            if mode is not None:
                tmp_path.chmod(mode)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise CertificateWriteError.write_failed(path=str(path), reason=str(e)) from e
