"""Shared pytest fixtures for the Vault CA gateway tests.

Uses an in-memory SQLite database for the tracking store and an
in-process fake of the Vault PKI client, so tests never touch a real
Vault server or the configured database file.
"""

from __future__ import annotations

import os

# Settings are read at import time; keep the app off the real database.
os.environ.setdefault("VAULTGW_DATABASE_URL", "sqlite://")
os.environ.setdefault("VAULTGW_SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from vault_gateway.core.connector import VaultConnector
from vault_gateway.core.models import CertificateRecord, SigningRequest, TrackingRecord
from vault_gateway.errors import BackendRejected, CertificateNotFound
from vault_gateway.jobs.store import job_store
from vault_gateway.main import app
from vault_gateway.routes import get_connector, get_repository
from vault_gateway.store.db import Base, make_engine
from vault_gateway.store.repository import TrackingRepository
from vault_gateway.vault.schemas import (
    RevokeResponse,
    SealStatusResponse,
    SignResponse,
    VaultConnection,
)


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------

def serial_to_vault(number: int) -> str:
    """Render an integer serial the way Vault does (aa:bb:cc, lower case)."""
    digits = format(number, "x")
    if len(digits) % 2:
        digits = "0" + digits
    return ":".join(digits[i : i + 2] for i in range(0, len(digits), 2))


def make_certificate(
    common_name: str = "web01.corp.local",
    dns_names: tuple[str, ...] = ("web01.corp.local",),
    serial_number: int | None = None,
) -> tuple[str, ec.EllipticCurvePrivateKey, int]:
    """Create a self-signed certificate; return (PEM, key, serial)."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    serial_number = serial_number or x509.random_serial_number()
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(serial_number)
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=30))
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in dns_names]),
            critical=False,
        )
    cert = builder.sign(key, hashes.SHA256())
    pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
    return pem, key, serial_number


@pytest.fixture()
def cert_factory() -> Callable[..., str]:
    """Return a callable producing PEM certificates."""

    def _make(common_name: str = "web01.corp.local", dns_names=("web01.corp.local",)) -> str:
        return make_certificate(common_name, tuple(dns_names))[0]

    return _make


@pytest.fixture()
def csr_pem() -> str:
    """A PEM-encoded CSR for web01.corp.local."""
    key = ec.generate_private_key(ec.SECP256R1())
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "web01.corp.local")])
        )
        .sign(key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.fixture()
def client_cert_files(tmp_path) -> tuple[str, str]:
    """Write a client certificate and its key to disk; return both paths."""
    pem, key, _ = make_certificate("gateway-client", ())
    cert_path = tmp_path / "client.pem"
    key_path = tmp_path / "client.key"
    cert_path.write_text(pem)
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return str(cert_path), str(key_path)


# ---------------------------------------------------------------------------
# Fake Vault
# ---------------------------------------------------------------------------

class FakeVault:
    """In-memory stand-in for :class:`VaultClient`.

    Certificates are keyed by their colon-delimited serial.  Failures can
    be injected per operation.
    """

    def __init__(self) -> None:
        self.connection = VaultConnection(host="http://vault.test:8200", token="s.test")
        self.certs: dict[str, CertificateRecord] = {}
        self.roles: list[str] = ["web-server", "client-auth"]
        self.sealed = False
        self.list_error: Exception | None = None
        self.fetch_errors: dict[str, Exception] = {}
        self.revoke_error: Exception | None = None
        self.sign_error: Exception | None = None
        self.sign_requests: list[SigningRequest] = []
        self.revoked_serials: list[str] = []
        self.scopes: list[tuple[str | None, str | None]] = []

    def add(self, pem: str, serial: str, revoked_at: datetime | None = None) -> str:
        self.certs[serial] = CertificateRecord(
            serial_number=serial, certificate=pem, revocation_time=revoked_at
        )
        return serial

    def scoped(self, namespace: str | None = None, mount_point: str | None = None):
        self.scopes.append((namespace, mount_point))
        return self

    async def list_serials(self) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.certs)

    async def get_certificate(self, serial: str) -> CertificateRecord:
        if serial in self.fetch_errors:
            raise self.fetch_errors[serial]
        if serial not in self.certs:
            raise CertificateNotFound(serial, [f"certificate {serial} not found"])
        return self.certs[serial]

    async def sign(self, request: SigningRequest) -> SignResponse:
        self.sign_requests.append(request)
        if self.sign_error is not None:
            raise self.sign_error
        pem, _, number = make_certificate(request.common_name, ())
        serial = self.add(pem, serial_to_vault(number))
        return SignResponse(certificate=pem, serial_number=serial)

    async def revoke(self, serial: str) -> RevokeResponse:
        if self.revoke_error is not None:
            raise self.revoke_error
        cert = self.certs.get(serial)
        if cert is None:
            raise BackendRejected([f"certificate with serial {serial} not found"], 400)
        if cert.revocation_time is not None:
            raise BackendRejected(
                [f"certificate with serial {serial} already revoked"], 400
            )
        revoked_at = datetime.now(timezone.utc).replace(microsecond=0)
        self.certs[serial] = cert.model_copy(update={"revocation_time": revoked_at})
        self.revoked_serials.append(serial)
        return RevokeResponse(revocation_time=revoked_at)

    async def list_roles(self) -> list[str]:
        return list(self.roles)

    async def seal_status(self) -> SealStatusResponse:
        return SealStatusResponse(sealed=self.sealed, initialized=True, version="1.15.0")


class ListSink:
    """Record sink that keeps every upsert in a list."""

    def __init__(self) -> None:
        self.records: list[TrackingRecord] = []

    async def put(self, record: TrackingRecord) -> None:
        self.records.append(record)


@pytest.fixture()
def fake_vault() -> FakeVault:
    return FakeVault()


@pytest.fixture()
def list_sink() -> ListSink:
    return ListSink()


# ---------------------------------------------------------------------------
# Tracking store
# ---------------------------------------------------------------------------

@pytest.fixture()
def engine():
    """Create a fresh in-memory SQLite engine per test."""
    _engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=_engine)
    yield _engine
    Base.metadata.drop_all(bind=_engine)
    _engine.dispose()


@pytest.fixture()
def repository(engine) -> TrackingRepository:
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return TrackingRepository(session_factory)


@pytest.fixture()
def connector(fake_vault: FakeVault, repository: TrackingRepository) -> VaultConnector:
    return VaultConnector(fake_vault, repository)


@pytest.fixture(autouse=True)
def _clear_jobs() -> Generator[None, None, None]:
    """Sync jobs live in a process-wide store; start every test empty."""
    job_store._jobs.clear()
    yield
    job_store._jobs.clear()


# ---------------------------------------------------------------------------
# FastAPI TestClient with connector override
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(
    connector: VaultConnector,
    repository: TrackingRepository,
) -> Generator[TestClient, None, None]:
    """Return a ``TestClient`` wired to the fake Vault and test database."""
    app.dependency_overrides[get_connector] = lambda: connector
    app.dependency_overrides[get_repository] = lambda: repository
    with TestClient(app, raise_server_exceptions=False) as c:
        app.state.connector = connector
        app.state.repository = repository
        yield c
    app.dependency_overrides.clear()
