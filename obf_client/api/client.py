"""Open Badge Factory API client.

ObfClient is constructed explicitly and passed to callers; it wires the
credential store, the enrollment handshake and the authenticated request
primitive together. Each badge/event operation is a fixed ApiRequest shape
sent through ApiRequester.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from obf_client.api.preprocess import join_json_lines
from obf_client.api.request import ApiRequester
from obf_client.enrollment.handler import Enroller
from obf_client.exceptions import ObfClientError
from obf_client.models import ApiRequest, HttpMethod
from obf_client.pki.store import CredentialStore
from obf_client.transport.http import HttpxTransport, TransportOptions

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from obf_client.config import Settings
    from obf_client.models import ApiResponse, Badge, ClientIdentity
    from obf_client.transport.http import Transport


class ObfClient:
    """Client for one OBF account."""

    def __init__(
        self,
        api_url: str,
        consumer_id: str,
        store: CredentialStore,
        transport: Transport,
        options: TransportOptions | None = None,
        *,
        retain_raw_response: bool = False,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base url of the OBF API.
            consumer_id: API consumer identifier sent with events.
            store: Credential store for this account.
            transport: Transport for all calls.
            options: TLS and timeout options.
            retain_raw_response: Keep the raw body of the last call.
        """
        options = options or TransportOptions()
        self._api_url = api_url.rstrip("/")
        self._consumer_id = consumer_id
        self._store = store
        self._enroller = Enroller(self._api_url, store, transport, options)
        self._requester = ApiRequester(store, transport, options, retain_raw_response=retain_raw_response)

    @classmethod
    def from_config(cls, settings: Settings, transport: Transport | None = None) -> ObfClient:
        """Create a client from configuration.

        Args:
            settings: Loaded settings.
            transport: Transport to use; defaults to HttpxTransport.
        """
        options = TransportOptions(
            ca_bundle=settings.transport.ca_bundle,
            timeout=settings.transport.timeout,
        )
        return cls(
            settings.api.url,
            settings.api.consumer_id,
            CredentialStore.from_config(settings.pki),
            transport or HttpxTransport(),
            options,
            retain_raw_response=settings.transport.retain_raw_response,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def client_id(self) -> str | None:
        return self._store.client_id

    @property
    def identity(self) -> ClientIdentity:
        return self._store.identity()

    @property
    def last_http_code(self) -> int | None:
        """HTTP status of the last API call; 404 means the item was not found."""
        return self._requester.last_http_code

    @property
    def last_error(self) -> str:
        """Error message of the last API call, empty after a success."""
        return self._requester.last_error

    @property
    def last_response(self) -> ApiResponse | None:
        return self._requester.last_response

    @property
    def raw_response(self) -> bytes | None:
        return self._requester.raw_response

    def set_retain_raw_response(self, enable: bool) -> ObfClient:
        """Enable or disable keeping the raw body of the last call."""
        self._requester.set_retain_raw_response(enable)
        return self

    # --- Enrollment ---

    def enroll(self, signature: str) -> ClientIdentity:
        """Enroll with a signed token. See Enroller.enroll."""
        return self._enroller.enroll(signature)

    def deauthenticate(self) -> None:
        """Forget the client id and remove the credentials."""
        self._enroller.deauthenticate()

    def certificate_expiration(self) -> int | None:
        """Unix timestamp of certificate expiry, or None without a certificate."""
        return self._enroller.certificate_expiration()

    def require_client_id(self) -> str:
        """Return the stored client id or raise MissingClientIdError."""
        return self._requester.require_client_id()

    def test_connection(self) -> int | None:
        """Ping the API with the client credentials.

        Returns:
            None on success, otherwise the failure code: the HTTP status, or
            0 when there is no client id or no HTTP response.
        """
        try:
            client_id = self.require_client_id()
            self._call(ApiRequest(_path("ping", client_id)))
        except ObfClientError as e:
            return e.code
        return None

    # --- Badges ---

    def get_badge(self, badge_id: str) -> Any:
        """Get a single badge."""
        client_id = self.require_client_id()
        return self._call(ApiRequest(_path("badge", client_id, badge_id)))

    def get_issuer(self) -> Any:
        """Get the issuer (client) data."""
        client_id = self.require_client_id()
        return self._call(ApiRequest(_path("client", client_id)))

    def get_categories(self) -> Any:
        """Get the badge category list."""
        client_id = self.require_client_id()
        return self._call(ApiRequest(_path("badge", client_id, "_", "categorylist")))

    def get_badges(self, categories: Sequence[str] = ()) -> Any:
        """Get all published badges, optionally filtered by category.

        Args:
            categories: Only return badges in these categories.
        """
        client_id = self.require_client_id()
        params: dict[str, Any] = {"draft": 0}
        if categories:
            params["category"] = "|".join(categories)
        return self._call(ApiRequest(_path("badge", client_id), params=params, preprocessor=join_json_lines))

    def delete_badges(self) -> None:
        """Delete all badges of the client. Use with caution."""
        client_id = self.require_client_id()
        self._call(ApiRequest(_path("badge", client_id), HttpMethod.DELETE))

    def export_badge(self, badge: Badge) -> None:
        """Export a badge to Open Badge Factory."""
        client_id = self.require_client_id()
        params = {
            "name": badge.name,
            "description": badge.description,
            "image": badge.image,
            "css": badge.criteria_css,
            "criteria_html": badge.criteria_html,
            "email_subject": badge.email.subject,
            "email_body": badge.email.body,
            "email_footer": badge.email.footer,
            "expires": "",
            "tags": [],
            "draft": badge.draft,
        }
        self._call(ApiRequest(_path("badge", client_id), HttpMethod.POST, params))

    def issue_badge(
        self,
        badge: Badge,
        recipients: Iterable[str],
        issued_on: int,
        email_subject: str,
        email_body: str,
        email_footer: str,
        log_entry: Mapping[str, Any] | None = None,
    ) -> None:
        """Issue a badge to recipients.

        Args:
            badge: Badge to issue; ``expires`` is sent only when positive.
            recipients: Recipient e-mail addresses.
            issued_on: Issuance time as a Unix timestamp.
            email_subject: Subject of the notification e-mail.
            email_body: Body of the notification e-mail.
            email_footer: Footer of the notification e-mail.
            log_entry: Extra data stored with the event.
        """
        client_id = self.require_client_id()
        params: dict[str, Any] = {
            "recipient": list(recipients),
            "issued_on": issued_on,
            "email_subject": email_subject,
            "email_body": email_body,
            "email_footer": email_footer,
            "api_consumer_id": self._consumer_id,
        }
        if badge.expires is not None and badge.expires > 0:
            params["expires"] = badge.expires
        if log_entry is not None:
            params["log_entry"] = dict(log_entry)

        self._call(ApiRequest(_path("badge", client_id, badge.id), HttpMethod.POST, params))

    # --- Events ---

    def get_assertions(self, badge_id: str | None = None, email: str | None = None) -> Any:
        """Get issued badge events, optionally filtered by badge and recipient."""
        client_id = self.require_client_id()
        params: dict[str, Any] = {"api_consumer_id": self._consumer_id}
        if badge_id is not None:
            params["badge_id"] = badge_id
        if email is not None:
            params["email"] = email
        return self._call(ApiRequest(_path("event", client_id), params=params, preprocessor=join_json_lines))

    def get_event(self, event_id: str) -> Any:
        """Get a single event."""
        client_id = self.require_client_id()
        return self._call(ApiRequest(_path("event", client_id, event_id)))

    def get_revoked(self, event_id: str) -> Any:
        """Get revocation data for an event."""
        client_id = self.require_client_id()
        return self._call(ApiRequest(_path("event", client_id, event_id, "revoked")))

    def revoke_event(self, event_id: str, emails: Iterable[str]) -> None:
        """Revoke an event for the given recipients."""
        client_id = self.require_client_id()
        params = {"email": "|".join(emails)}
        self._call(ApiRequest(_path("event", client_id, event_id) + "/", HttpMethod.DELETE, params))

    def _call(self, request: ApiRequest) -> Any:
        return self._requester.request(
            self._api_url + request.path,
            request.method,
            request.params,
            request.preprocessor,
        )


def _path(*segments: str) -> str:
    """Join path segments, percent-encoding each one including slashes."""
    return "".join("/" + quote(str(segment), safe="") for segment in segments)
