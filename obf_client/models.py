"""Data types shared by the enrollment and request components."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# Rewrites a raw response body before JSON decoding.
ResponsePreprocessor = Callable[[str], str]


class HttpMethod(str, Enum):
    """HTTP methods supported by the OBF API."""

    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ClientIdentity:
    """Stored identity of an enrolled client."""

    client_id: str | None
    certificate_path: Path
    private_key_path: Path

    @property
    def enrolled(self) -> bool:
        """True when a client id and both credential files are present."""
        return bool(self.client_id) and self.certificate_path.is_file() and self.private_key_path.is_file()


@dataclass(frozen=True)
class ApiRequest:
    """A single API call, relative to the configured API url."""

    path: str
    method: HttpMethod = HttpMethod.GET
    params: Mapping[str, Any] = field(default_factory=dict)
    preprocessor: ResponsePreprocessor | None = None


@dataclass(frozen=True)
class ApiResponse:
    """Decoded result of an API call."""

    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        """True for 2xx status codes."""
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class BadgeEmail:
    """E-mail template sent to badge recipients."""

    subject: str = ""
    body: str = ""
    footer: str = ""


@dataclass(frozen=True)
class Badge:
    """Badge fields used when exporting or issuing a badge."""

    id: str
    name: str = ""
    description: str = ""
    image: str = ""
    criteria_html: str = ""
    criteria_css: str = ""
    email: BadgeEmail = BadgeEmail()
    expires: int | None = None
    draft: bool = False
