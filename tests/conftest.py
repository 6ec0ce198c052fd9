"""Shared fixtures: keys, a fake transport and an in-process OBF API."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from obf_client.config import ApiConfig, PKIConfig, Settings
from obf_client.pki.store import CredentialStore
from obf_client.transport.http import TransportOptions, TransportResponse

API_URL = "https://obf.test/v1"
CLIENT_ID = "TESTCLIENT01"


# --- Crypto helpers ---


def sign_token(private_key: rsa.RSAPrivateKey, payload: bytes) -> bytes:
    """Encrypt payload with the private key using PKCS#1 v1.5 type 1 padding."""
    numbers = private_key.private_numbers()
    n = numbers.public_numbers.n
    size = (n.bit_length() + 7) // 8
    block = b"\x00\x01" + b"\xff" * (size - len(payload) - 3) + b"\x00" + payload
    return pow(int.from_bytes(block, "big"), numbers.d, n).to_bytes(size, "big")


def issue_certificate(
    csr: x509.CertificateSigningRequest,
    ca_key: rsa.RSAPrivateKey,
    ca_cert: x509.Certificate,
    validity_days: int = 365,
) -> x509.Certificate:
    """Sign a CSR with the test CA."""
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def api_key() -> rsa.RSAPrivateKey:
    """The OBF API signing key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def api_public_pem(api_key: rsa.RSAPrivateKey) -> bytes:
    """The OBF API public key as published."""
    return api_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="session")
def ca_key() -> rsa.RSAPrivateKey:
    """CA private key for issuing client certificates."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ca_certificate(ca_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Self-signed CA certificate."""
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "OBF Test CA")])
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .sign(ca_key, hashes.SHA256())
    )


@pytest.fixture
def make_token(api_key: rsa.RSAPrivateKey) -> Callable[[str], str]:
    """Build a base64 enrollment token for a client id."""

    def _make(client_id: str = CLIENT_ID) -> str:
        payload = json.dumps({"id": client_id}).encode("utf-8")
        return base64.b64encode(sign_token(api_key, payload)).decode("ascii")

    return _make


# --- Storage ---


@pytest.fixture
def pki_dir(tmp_path: Path) -> Path:
    """Existing, writable certificate directory."""
    path = tmp_path / "pki"
    path.mkdir()
    return path


@pytest.fixture
def settings(pki_dir: Path) -> Settings:
    """Settings pointing at the test API and certificate directory."""
    return Settings(api=ApiConfig(url=API_URL, consumer_id="test-consumer"), pki=PKIConfig(directory=pki_dir))


@pytest.fixture
def store(settings: Settings) -> CredentialStore:
    """Empty credential store."""
    return CredentialStore.from_config(settings.pki)


@pytest.fixture
def client_key() -> rsa.RSAPrivateKey:
    """Client private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def client_certificate(
    client_key: rsa.RSAPrivateKey,
    ca_key: rsa.RSAPrivateKey,
    ca_certificate: x509.Certificate,
) -> x509.Certificate:
    """Certificate issued to the client key by the test CA."""
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, CLIENT_ID)]))
        .sign(client_key, hashes.SHA256())
    )
    return issue_certificate(csr, ca_key, ca_certificate)


@pytest.fixture
def enrolled_store(
    store: CredentialStore,
    client_key: rsa.RSAPrivateKey,
    client_certificate: x509.Certificate,
) -> CredentialStore:
    """Store holding a client id, key and matching certificate."""
    store.save_client_id(CLIENT_ID)
    store.key_path.write_bytes(
        client_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        ),
    )
    store.cert_path.write_bytes(client_certificate.public_bytes(serialization.Encoding.PEM))
    return store


# --- Fake transport ---


@dataclass
class RecordedCall:
    """One call seen by FakeTransport."""

    method: str
    url: str
    params: dict[str, Any] | None
    body: str | None
    options: TransportOptions

    @property
    def json(self) -> Any:
        return json.loads(self.body) if self.body is not None else None


Handler = Callable[[RecordedCall], TransportResponse]


@dataclass
class FakeTransport:
    """Transport double returning scripted responses.

    Routes are keyed by (method, url); unknown routes answer 200 ``{}``.
    """

    routes: dict[tuple[str, str], TransportResponse | Handler | Exception] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)

    def add(self, method: str, url: str, response: TransportResponse | Handler | Exception) -> None:
        self.routes[(method, url)] = response

    def reply(self, method: str, url: str, status_code: int = 200, body: Any = None, text: str | None = None) -> None:
        content = text if text is not None else json.dumps({} if body is None else body)
        self.add(method, url, TransportResponse(status_code=status_code, content=content.encode("utf-8")))

    def get(self, url: str, params: Any, options: TransportOptions) -> TransportResponse:
        return self._dispatch(RecordedCall("GET", url, dict(params), None, options))

    def post(self, url: str, body: str, options: TransportOptions) -> TransportResponse:
        return self._dispatch(RecordedCall("POST", url, None, body, options))

    def delete(self, url: str, params: Any, options: TransportOptions) -> TransportResponse:
        return self._dispatch(RecordedCall("DELETE", url, dict(params), None, options))

    @property
    def last_call(self) -> RecordedCall:
        return self.calls[-1]

    def _dispatch(self, call: RecordedCall) -> TransportResponse:
        self.calls.append(call)
        route = self.routes.get((call.method, call.url))
        if route is None:
            return TransportResponse(status_code=200, content=b"{}")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(call)
        return route


@pytest.fixture
def transport() -> FakeTransport:
    """Fresh fake transport."""
    return FakeTransport()


@pytest.fixture
def enrollment_transport(
    transport: FakeTransport,
    api_public_pem: bytes,
    ca_key: rsa.RSAPrivateKey,
    ca_certificate: x509.Certificate,
) -> FakeTransport:
    """Fake transport answering the public key and sign request endpoints."""

    def sign_request(call: RecordedCall) -> TransportResponse:
        csr = x509.load_pem_x509_csr(call.json["request"].encode("ascii"))
        cert = issue_certificate(csr, ca_key, ca_certificate)
        return TransportResponse(status_code=200, content=cert.public_bytes(serialization.Encoding.PEM))

    transport.add("GET", f"{API_URL}/client/OBF.rsa.pub", TransportResponse(200, api_public_pem))
    transport.add("POST", f"{API_URL}/client/{CLIENT_ID}/sign_request", sign_request)
    return transport


# --- In-process OBF API ---


@dataclass
class MockObfState:
    """What the mock API has received."""

    issued: dict[str, x509.Certificate] = field(default_factory=dict)
    queries: list[dict[str, str]] = field(default_factory=list)
    posted: list[Any] = field(default_factory=list)
    used_tokens: set[str] = field(default_factory=set)


def create_mock_obf_app(
    api_key: rsa.RSAPrivateKey,
    ca_key: rsa.RSAPrivateKey,
    ca_certificate: x509.Certificate,
    state: MockObfState,
) -> FastAPI:
    """FastAPI app implementing the OBF endpoints used by the client."""
    app = FastAPI()
    public_pem = api_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )

    @app.get("/v1/client/OBF.rsa.pub")
    async def public_key() -> Response:
        return Response(content=public_pem, media_type="application/x-pem-file")

    @app.post("/v1/client/{client_id}/sign_request")
    async def sign_request(client_id: str, request: Request) -> Response:
        payload = await request.json()
        try:
            token = base64.b64decode(payload["signature"])
            decrypted = api_key.public_key().recover_data_from_signature(token, padding.PKCS1v15(), None)
            token_id = json.loads(decrypted)["id"]
        except Exception:  # noqa: BLE001
            token_id = None
        if token_id != client_id:
            return JSONResponse({"error": "Invalid signature"}, status_code=403)
        if payload["signature"] in state.used_tokens:
            return JSONResponse({"error": "Token already used"}, status_code=403)
        state.used_tokens.add(payload["signature"])

        csr = x509.load_pem_x509_csr(payload["request"].encode("ascii"))
        cert = issue_certificate(csr, ca_key, ca_certificate)
        state.issued[client_id] = cert
        return Response(content=cert.public_bytes(serialization.Encoding.PEM), media_type="application/x-pem-file")

    @app.get("/v1/ping/{client_id}")
    async def ping(client_id: str) -> dict[str, str]:
        return {"status": "ok", "client_id": client_id}

    @app.get("/v1/client/{client_id}")
    async def issuer(client_id: str) -> dict[str, str]:
        return {"id": client_id, "name": "Test Issuer", "email": "issuer@example.com"}

    @app.get("/v1/badge/{client_id}/_/categorylist")
    async def categories(client_id: str) -> list[str]:
        return ["science", "arts"]

    @app.get("/v1/badge/{client_id}/{badge_id}")
    async def badge(client_id: str, badge_id: str) -> Response:
        if badge_id == "missing-id":
            return JSONResponse({}, status_code=404)
        if badge_id == "deleted-id":
            return JSONResponse({"error": "Badge not found"}, status_code=404)
        return JSONResponse({"id": badge_id, "name": "Test Badge"})

    @app.get("/v1/badge/{client_id}")
    async def badges(client_id: str, request: Request) -> Response:
        state.queries.append(dict(request.query_params))
        lines = [json.dumps({"id": "B1", "name": "One"}), json.dumps({"id": "B2", "name": "Two"})]
        return PlainTextResponse("\n".join(lines) + "\n")

    @app.get("/v1/event/{client_id}")
    async def events(client_id: str, request: Request) -> Response:
        state.queries.append(dict(request.query_params))
        return PlainTextResponse(json.dumps({"id": "E1", "badge_id": "B1"}) + "\n")

    @app.post("/v1/badge/{client_id}/{badge_id}")
    async def issue(client_id: str, badge_id: str, request: Request) -> Response:
        state.posted.append(await request.json())
        return JSONResponse({}, status_code=201)

    @app.delete("/v1/event/{client_id}/{event_id}/")
    async def revoke(client_id: str, event_id: str, request: Request) -> Response:
        state.queries.append(dict(request.query_params))
        return Response(status_code=204)

    return app


@pytest.fixture
def obf_state() -> MockObfState:
    """Recorder for the mock API."""
    return MockObfState()


@pytest.fixture
def obf_app(
    api_key: rsa.RSAPrivateKey,
    ca_key: rsa.RSAPrivateKey,
    ca_certificate: x509.Certificate,
    obf_state: MockObfState,
) -> FastAPI:
    """In-process OBF API."""
    return create_mock_obf_app(api_key, ca_key, ca_certificate, obf_state)
