"""Tests for the Vault HTTP client, using httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from vault_gateway.core.enrollment import build_signing_request
from vault_gateway.core.models import CertificateStatus, ProductParameters
from vault_gateway.errors import BackendRejected, BackendUnavailable, CertificateNotFound
from vault_gateway.vault.client import VaultClient
from vault_gateway.vault.schemas import VaultConnection


PEM = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def _client(handler, **connection) -> tuple[VaultClient, list[httpx.Request]]:
    """Build a client whose requests are answered by *handler*."""
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    params = {"Host": "https://vault.test:8200", "Token": "s.token", "MountPoint": "pki"}
    params.update(connection)
    client = VaultClient(
        VaultConnection.model_validate(params), transport=httpx.MockTransport(_record)
    )
    return client, seen


def _data(payload, warnings=None) -> httpx.Response:
    return httpx.Response(200, json={"request_id": "r-1", "warnings": warnings, "data": payload})


# ---------------------------------------------------------------------------
# Headers and URLs
# ---------------------------------------------------------------------------

class TestRequestShape:

    def test_headers(self):
        client, seen = _client(lambda r: _data({"keys": []}), Namespace="team-a")
        asyncio.run(client.list_serials())

        request = seen[0]
        assert request.headers["X-Vault-Request"] == "true"
        assert request.headers["X-Vault-Token"] == "s.token"
        assert request.headers["X-Vault-Namespace"] == "team-a"

    def test_no_namespace_header_by_default(self):
        client, seen = _client(lambda r: _data({"keys": []}))
        asyncio.run(client.list_serials())
        assert "X-Vault-Namespace" not in seen[0].headers

    def test_list_url(self):
        client, seen = _client(lambda r: _data({"keys": []}), MountPoint="/pki_int/")
        asyncio.run(client.list_serials())
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/v1/pki_int/certs"
        assert seen[0].url.params["list"] == "true"

    def test_scoped_client(self):
        client, seen = _client(lambda r: _data({"keys": []}))
        scoped = client.scoped(namespace="team-b", mount_point="pki_b")
        asyncio.run(scoped.list_roles())
        assert seen[0].url.path == "/v1/pki_b/roles"
        assert seen[0].headers["X-Vault-Namespace"] == "team-b"
        assert client.connection.mount_point == "pki"


# ---------------------------------------------------------------------------
# PKI operations
# ---------------------------------------------------------------------------

class TestPkiOperations:

    def test_list_serials(self):
        client, _ = _client(lambda r: _data({"keys": ["0a:01", "0a:02"]}))
        assert asyncio.run(client.list_serials()) == ["0a:01", "0a:02"]

    def test_list_serials_empty_mount(self):
        """Vault answers 404 for a list with no entries."""
        client, _ = _client(lambda r: httpx.Response(404, json={"errors": []}))
        assert asyncio.run(client.list_serials()) == []

    def test_get_certificate_issued(self):
        client, seen = _client(
            lambda r: _data(
                {"certificate": PEM, "revocation_time": 0, "revocation_time_rfc3339": "",
                 "issuer_id": "iss-1"}
            )
        )
        cert = asyncio.run(client.get_certificate("0a:01"))
        assert seen[0].url.path == "/v1/pki/cert/0a:01"
        assert cert.certificate == PEM
        assert cert.revocation_time is None
        assert cert.status == CertificateStatus.ISSUED
        assert cert.issuer_id == "iss-1"

    def test_get_certificate_revoked_rfc3339(self):
        client, _ = _client(
            lambda r: _data(
                {"certificate": PEM, "revocation_time": 1714564800,
                 "revocation_time_rfc3339": "2024-05-01T12:00:00Z"}
            )
        )
        cert = asyncio.run(client.get_certificate("0a:01"))
        assert cert.status == CertificateStatus.REVOKED
        assert cert.revocation_time == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_get_certificate_revoked_epoch_only(self):
        client, _ = _client(
            lambda r: _data({"certificate": PEM, "revocation_time": 1714564800})
        )
        cert = asyncio.run(client.get_certificate("0a:01"))
        assert cert.revocation_time == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_get_certificate_not_found(self):
        client, _ = _client(lambda r: httpx.Response(404, json={"errors": []}))
        with pytest.raises(CertificateNotFound):
            asyncio.run(client.get_certificate("0a:01"))

    def test_sign(self):
        client, seen = _client(
            lambda r: _data(
                {"certificate": PEM, "serial_number": "0a:01", "issuing_ca": PEM,
                 "ca_chain": [PEM], "expiration": 1717243200},
                warnings=["TTL capped to role max"],
            )
        )
        request = build_signing_request(
            "CSR", "CN=web01", {"dns": ["web01"]}, ProductParameters(role_name="web-server")
        )
        signed = asyncio.run(client.sign(request))

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/v1/pki/sign/web-server"
        body = json.loads(seen[0].content)
        assert body == {
            "csr": "CSR",
            "common_name": "web01",
            "format": "pem_bundle",
            "alt_names": "web01",
        }
        assert signed.serial_number == "0a:01"
        assert signed.certificate == PEM

    def test_revoke(self):
        client, seen = _client(
            lambda r: _data(
                {"revocation_time": 1714564800,
                 "revocation_time_rfc3339": "2024-05-01T12:00:00Z", "state": "revoked"}
            )
        )
        response = asyncio.run(client.revoke("0a:01"))
        assert seen[0].url.path == "/v1/pki/revoke"
        assert json.loads(seen[0].content) == {"serial_number": "0a:01"}
        assert response.revocation_time == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_seal_status_is_not_mounted(self):
        client, seen = _client(
            lambda r: httpx.Response(200, json={"sealed": False, "initialized": True, "version": "1.15.2"})
        )
        status = asyncio.run(client.seal_status())
        assert seen[0].url.path == "/v1/sys/seal-status"
        assert status.sealed is False
        assert status.version == "1.15.2"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:

    def test_errors_list_preserved(self):
        client, _ = _client(
            lambda r: httpx.Response(400, json={"errors": ["role \"nope\" not found", "second"]})
        )
        with pytest.raises(BackendRejected) as excinfo:
            asyncio.run(client.list_roles())
        assert excinfo.value.messages == ['role "nope" not found', "second"]
        assert excinfo.value.status_code == 400

    def test_non_json_error_body(self):
        client, _ = _client(lambda r: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(BackendRejected) as excinfo:
            asyncio.run(client.list_roles())
        assert excinfo.value.messages == ["Bad Gateway"]

    def test_connection_error(self):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = _client(_refuse)
        with pytest.raises(BackendUnavailable, match="Cannot reach Vault"):
            asyncio.run(client.list_serials())

    def test_timeout(self):
        def _slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client, _ = _client(_slow)
        with pytest.raises(BackendUnavailable, match="timed out"):
            asyncio.run(client.list_serials())

    def test_unexpected_payload(self):
        client, _ = _client(lambda r: _data({"serial_number": "0a:01"}))
        request = build_signing_request("CSR", "CN=a", None, ProductParameters(role_name="r"))
        with pytest.raises(BackendRejected, match="unexpected response"):
            asyncio.run(client.sign(request))


# ---------------------------------------------------------------------------
# Client certificate login
# ---------------------------------------------------------------------------

class TestCertificateLogin:

    def test_login_token_used_for_pki_calls(self, client_cert_files):
        cert_path, key_path = client_cert_files

        def handler(request):
            if request.url.path == "/v1/auth/cert/login":
                return httpx.Response(200, json={"auth": {"client_token": "s.from-cert"}})
            return _data({"keys": ["web-server"]})

        client, seen = _client(
            handler,
            Token="",
            ClientCertificate={"CertificatePath": str(cert_path)},
            ClientKey=str(key_path),
        )
        assert asyncio.run(client.list_roles()) == ["web-server"]
        assert asyncio.run(client.list_roles()) == ["web-server"]

        logins = [r for r in seen if r.url.path == "/v1/auth/cert/login"]
        assert len(logins) == 1
        assert "X-Vault-Token" not in logins[0].headers
        assert seen[-1].headers["X-Vault-Token"] == "s.from-cert"
