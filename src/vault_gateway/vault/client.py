"""
Vault CA Gateway - Vault PKI Client

Asynchronous client for the subset of the Vault HTTP API the gateway
needs: listing, reading, signing and revoking certificates on a PKI
secrets engine, listing its roles, and checking seal status.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from vault_gateway.auth import get_tls_verify, get_vault_headers
from vault_gateway.core.models import CertificateRecord, SigningRequest
from vault_gateway.errors import (
    BackendRejected,
    BackendUnavailable,
    CertificateNotFound,
)
from vault_gateway.vault.schemas import (
    CertResponse,
    ErrorResponse,
    KeyedList,
    LoginResponse,
    RevokeResponse,
    SealStatusResponse,
    SignResponse,
    VaultConnection,
    WrappedResponse,
)

logger = logging.getLogger("vaultgw.vault.client")

ModelT = TypeVar("ModelT", bound=BaseModel)


class VaultClient:
    """
    Talks to one PKI mount of one Vault server.

    A fresh ``httpx.AsyncClient`` is opened per call; pass *transport* to
    route requests somewhere other than the network (tests use
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        connection: VaultConnection,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.connection = connection
        self._transport = transport
        self._login_token: str | None = None

    def scoped(
        self,
        namespace: str | None = None,
        mount_point: str | None = None,
    ) -> VaultClient:
        """Return a client for a different namespace and/or mount point.

        Unset arguments keep this client's values.
        """
        if not namespace and not mount_point:
            return self
        connection = self.connection.model_copy(
            update={
                "namespace": namespace or self.connection.namespace,
                "mount_point": (mount_point or self.connection.mount_point).strip("/"),
            }
        )
        client = VaultClient(connection, transport=self._transport)
        client._login_token = self._login_token
        return client

    # ------------------------------------------------------------------
    # PKI operations
    # ------------------------------------------------------------------

    async def list_serials(self) -> list[str]:
        """Return the serial numbers of every certificate on the mount."""
        body = await self._request("GET", "certs", params={"list": "true"}, allow_404=True)
        if body is None:
            return []
        listing = _parse(WrappedResponse[KeyedList], body)
        self._log_warnings("list certs", listing.warnings)
        logger.debug("Vault listed %d certificate serials", len(listing.data.keys))
        return listing.data.keys

    async def get_certificate(self, serial: str) -> CertificateRecord:
        """
        Read one certificate by its colon-delimited serial number.

        Raises:
            CertificateNotFound: Vault has no certificate with this serial.
        """
        body = await self._request("GET", f"cert/{serial}", allow_404=True)
        if body is None or not (body.get("data") or {}).get("certificate"):
            raise CertificateNotFound(serial, [f"certificate {serial} not found"])

        cert = _parse(WrappedResponse[CertResponse], body).data
        return CertificateRecord(
            serial_number=serial,
            certificate=cert.certificate,
            revocation_time=cert.revocation_time,
            issuer_id=cert.issuer_id,
        )

    async def sign(self, request: SigningRequest) -> SignResponse:
        """Submit a CSR to ``sign/<role>`` and return the issued certificate."""
        body = await self._request(
            "POST", f"sign/{request.role_name}", json=request.to_payload()
        )
        response = _parse(WrappedResponse[SignResponse], body)
        self._log_warnings("sign", response.warnings)
        logger.info(
            "Vault signed certificate %s for role %s",
            response.data.serial_number,
            request.role_name,
        )
        return response.data

    async def revoke(self, serial: str) -> RevokeResponse:
        """Revoke the certificate with the given colon-delimited serial."""
        body = await self._request("POST", "revoke", json={"serial_number": serial})
        response = _parse(WrappedResponse[RevokeResponse], body)
        self._log_warnings("revoke", response.warnings)
        return response.data

    async def list_roles(self) -> list[str]:
        """Return the PKI role names defined on the mount."""
        body = await self._request("GET", "roles", params={"list": "true"}, allow_404=True)
        if body is None:
            return []
        return _parse(WrappedResponse[KeyedList], body).data.keys

    async def seal_status(self) -> SealStatusResponse:
        """Return ``sys/seal-status``; this endpoint needs no token."""
        body = await self._request("GET", "sys/seal-status", mounted=False)
        return _parse(SealStatusResponse, body)

    async def login_with_certificate(self) -> str:
        """
        Exchange the configured client certificate for a Vault token via
        the TLS certificate auth method.
        """
        if not self.connection.client_cert_path:
            raise BackendUnavailable("no client certificate configured for cert login")
        body = await self._request(
            "POST", "auth/cert/login", json={}, mounted=False, authenticate=False
        )
        token = _parse(LoginResponse, body).auth.client_token
        self._login_token = token
        logger.info("Authenticated to Vault with client certificate")
        return token

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _token(self) -> str | None:
        if self.connection.token:
            return self.connection.token
        if self._login_token:
            return self._login_token
        if self.connection.client_cert_path:
            return await self.login_with_certificate()
        return None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        mounted: bool = True,
        authenticate: bool = True,
        allow_404: bool = False,
    ) -> dict[str, Any] | None:
        """
        Perform one request and return the decoded JSON body.

        Returns ``None`` for a 404 when *allow_404* is set.  Any other
        non-2xx answer raises :class:`BackendRejected` carrying Vault's
        ``errors`` list verbatim.
        """
        url = f"{self.connection.mount_point}/{path}" if mounted else path
        token = await self._token() if authenticate else None
        headers = get_vault_headers(self.connection, token)

        try:
            async with httpx.AsyncClient(
                base_url=self.connection.base_url,
                timeout=self.connection.timeout,
                verify=get_tls_verify(self.connection),
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method, url, json=json, params=params, headers=headers
                )
        except httpx.TimeoutException as exc:
            raise BackendUnavailable(f"Vault request {method} {url} timed out") from exc
        except httpx.HTTPError as exc:
            raise BackendUnavailable(
                f"Cannot reach Vault at {self.connection.host}: {exc}"
            ) from exc

        if response.status_code == 404 and allow_404:
            return None

        if response.status_code >= 400:
            messages = _error_messages(response)
            logger.warning(
                "Vault %s %s returned HTTP %d: %s",
                method,
                url,
                response.status_code,
                "; ".join(messages),
            )
            raise BackendRejected(messages, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _log_warnings(operation: str, warnings: list[str] | None) -> None:
        if warnings:
            logger.warning("Vault %s returned warnings: %s", operation, ", ".join(warnings))


def _error_messages(response: httpx.Response) -> list[str]:
    """Extract Vault's ``errors`` list, falling back to the raw body."""
    try:
        return ErrorResponse.model_validate(response.json()).errors or [
            f"HTTP {response.status_code}"
        ]
    except ValueError:
        return [response.text[:500] or f"HTTP {response.status_code}"]


def _parse(model: type[ModelT], body: dict[str, Any] | None) -> ModelT:
    """Validate a Vault response body against *model*."""
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise BackendRejected(
            [f"unexpected response from Vault: {exc.error_count()} invalid field(s)"]
        ) from exc
