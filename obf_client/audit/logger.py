"""Audit logging for enrollment and API traffic.

Provides structured logging with correlation IDs so that every step of an
enrollment handshake, and every authenticated API call, can be traced in
the audit trail.
"""

from __future__ import annotations

import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from obf_client.config import AuditConfig


_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation ID for request tracing."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for the current operation."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    """Clear the correlation ID after the operation completes."""
    _correlation_id.set("")


_AUDIT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} [{level}] "
    "[{extra[correlation_id]}] <{extra[event]}> {message} | {extra}"
)


def configure_audit_logger(config: AuditConfig) -> None:
    """Configure the audit logger based on settings."""
    logger.remove()

    logger.add(
        sys.stderr,
        level="DEBUG",
        format=_AUDIT_FORMAT,
        filter=lambda r: r["extra"].get("audit", False),
    )

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(log_path),
        level=config.log_level.value,
        format=_AUDIT_FORMAT,
        rotation="10 MB",
        retention="90 days",
        compression="gz",
        filter=lambda r: r["extra"].get("audit", False),
    )


def _get_audit_logger() -> Any:
    """Get logger bound with audit context."""
    return logger.bind(
        audit=True,
        correlation_id=get_correlation_id() or "-",
        event="",
    )


def log_enrollment_started(*, api_url: str) -> None:
    """Log the start of an enrollment handshake."""
    audit = _get_audit_logger().bind(event="enroll_started", api_url=api_url)
    audit.info("Enrollment started against {}", api_url)


def log_client_id_recorded(*, client_id: str) -> None:
    """Log that the client id revealed by the token was persisted."""
    audit = _get_audit_logger().bind(event="client_id_recorded", client_id=client_id)
    audit.info("Client id recorded: {}", client_id)


def log_certificate_stored(*, client_id: str, not_after: datetime, path: str) -> None:
    """Log that an issued client certificate was written to storage."""
    na = not_after.isoformat() if not_after.tzinfo else not_after.replace(tzinfo=UTC).isoformat()

    audit = _get_audit_logger().bind(
        event="cert_stored",
        client_id=client_id,
        not_after=na,
        cert_path=path,
    )
    audit.info("Client certificate stored for {}", client_id)


def log_enrollment_failed(*, error: Exception) -> None:
    """Log a failed enrollment handshake."""
    audit = _get_audit_logger().bind(
        event="enroll_failed",
        error_type=type(error).__name__,
        error_message=str(error),
    )
    audit.warning("Enrollment failed: {}", error)


def log_deauthenticated(*, client_id: str | None) -> None:
    """Log removal of the client credentials."""
    audit = _get_audit_logger().bind(event="deauthenticated", client_id=client_id)
    audit.info("Client credentials removed")


def log_credential_removal_failed(*, path: str, reason: str) -> None:
    """Log a credential file that could not be removed."""
    audit = _get_audit_logger().bind(event="credential_removal_failed", path=path, reason=reason)
    audit.warning("Could not remove {}: {}", path, reason)


def log_api_request(*, method: str, url: str, status_code: int) -> None:
    """Log a completed API request."""
    audit = _get_audit_logger().bind(
        event="api_request",
        method=method,
        url=url,
        status_code=status_code,
    )
    audit.debug("{} {} -> {}", method, url, status_code)


def log_api_failure(*, method: str, url: str, status_code: int | None, reason: str) -> None:
    """Log a failed API request."""
    audit = _get_audit_logger().bind(
        event="api_failure",
        method=method,
        url=url,
        status_code=status_code,
        reason=reason,
    )
    audit.warning("{} {} failed: {}", method, url, reason or status_code)
