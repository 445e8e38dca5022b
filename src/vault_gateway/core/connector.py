"""
Vault CA Gateway - Connector

The caller-facing surface of the gateway.  Wires the enrollment builder,
sync engine and revocation coordinator to a Vault client and a tracking
store reader, and adds the connection/product validation and lookup
operations a gateway host needs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from vault_gateway.core.enrollment import build_signing_request
from vault_gateway.core.identifiers import to_serial, to_tracking_id
from vault_gateway.core.models import (
    EnrollmentResult,
    ProductParameters,
    RevocationResult,
    SyncSummary,
    TrackingRecord,
)
from vault_gateway.core.revocation import revoke_certificate
from vault_gateway.core.sync import RecordSink, StatusReader, SyncEngine
from vault_gateway.errors import BackendUnavailable, ConfigurationInvalid
from vault_gateway.util.logging import trace_span
from vault_gateway.vault.client import VaultClient
from vault_gateway.vault.schemas import SealStatusResponse, VaultConnection

logger = logging.getLogger("vaultgw.core.connector")


class VaultConnector:
    """Enroll, revoke and synchronize certificates against one Vault PKI mount."""

    def __init__(
        self,
        client: VaultClient,
        reader: StatusReader,
        skip_failed_fetch: bool = False,
    ) -> None:
        self.client = client
        self.reader = reader
        self.skip_failed_fetch = skip_failed_fetch

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def enroll(
        self,
        csr: str,
        subject: str,
        san: Mapping[str, Iterable[str]] | None,
        product_id: str,
        product_parameters: Mapping[str, Any] | None = None,
    ) -> EnrollmentResult:
        """
        Have Vault sign *csr* under the role named by *product_id*.

        *product_parameters* may override the namespace and mount point
        for this role and add TTL / exclude-CN / other-SAN options.  The
        returned tracking ID is Vault's serial with the colons removed.
        """
        product = ProductParameters.model_validate(dict(product_parameters or {}))
        # the product ID is the PKI role name
        product = product.model_copy(update={"role_name": product_id})

        logger.info("Begin enrollment for %s under role %s", subject, product_id)
        with trace_span(logger, "enroll", role=product_id):
            request = build_signing_request(csr, subject, san, product)
            client = self.client.scoped(product.namespace, product.mount_point)
            signed = await client.sign(request)
            tracking_id = to_tracking_id(signed.serial_number)

        return EnrollmentResult(
            tracking_id=tracking_id,
            certificate=signed.certificate,
            status_message=f"Successfully enrolled certificate {subject}",
        )

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    async def synchronize(
        self,
        sink: RecordSink,
        last_sync: datetime | None = None,
        full_sync: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> SyncSummary:
        """Reconcile Vault's inventory into *sink*; see :class:`SyncEngine`."""
        engine = SyncEngine(self.client, self.reader, self.skip_failed_fetch)
        return await engine.synchronize(sink, last_sync, full_sync, cancel)

    # ------------------------------------------------------------------
    # Revocation and lookup
    # ------------------------------------------------------------------

    async def revoke(
        self,
        tracking_id: str,
        hex_serial: str | None = None,
        reason: int = 0,
    ) -> RevocationResult:
        return await revoke_certificate(self.client, tracking_id, hex_serial, reason)

    async def get_single_record(self, tracking_id: str) -> TrackingRecord:
        """Read one certificate from Vault by tracking ID.

        The product ID is left unset; Vault does not keep it.
        """
        cert = await self.client.get_certificate(to_serial(tracking_id))
        return TrackingRecord(
            tracking_id=tracking_id,
            certificate=cert.certificate,
            status=cert.status,
            revocation_date=cert.revocation_time,
        )

    async def ping(self) -> SealStatusResponse:
        """Check that Vault answers and is unsealed."""
        status = await self.client.seal_status()
        logger.debug(
            "Vault version %s, sealed=%s, initialized=%s",
            status.version,
            status.sealed,
            status.initialized,
        )
        if status.sealed or not status.initialized:
            raise BackendUnavailable(
                f"Vault at {self.client.connection.host} is "
                f"{'sealed' if status.sealed else 'not initialized'}"
            )
        return status

    async def get_product_ids(self) -> list[str]:
        """Product IDs are the PKI role names on the mount."""
        roles = await self.client.list_roles()
        logger.debug("Vault roles: %s", ", ".join(roles))
        return roles

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    async def validate_connection_info(
        connection_info: Mapping[str, Any],
        client_factory=VaultClient,
    ) -> VaultConnection | None:
        """
        Validate connection settings and prove them with an authenticated
        role listing.

        Returns ``None`` without contacting Vault when the connection is
        disabled.

        Raises:
            ConfigurationInvalid: Required values are missing.
            BackendRejected: Vault refused the authenticated request.
        """
        connection = VaultConnection.model_validate(dict(connection_info))
        if not connection.enabled:
            logger.warning(
                "The CA is disabled; it must be enabled to perform operations. "
                "Skipping validation."
            )
            return None

        errors: list[str] = []
        if not connection.host:
            errors.append("The 'Host' is required.")
        if not connection_info.get("MountPoint", connection_info.get("mount_point")):
            errors.append("The 'MountPoint' is required.")
        if not connection.token and not connection.client_cert_path:
            errors.append(
                "Either an authentication token or client certificate must be "
                "defined for authentication into Vault."
            )
        if connection.token and connection.client_cert_path:
            logger.warning(
                "Both a token and a client certificate are defined; using the token."
            )
        if errors:
            raise ConfigurationInvalid(errors)

        roles = await client_factory(connection).list_roles()
        logger.info("Connection validated; Vault returned %d role names", len(roles))
        return connection

    @staticmethod
    def validate_product_info(product_parameters: Mapping[str, Any]) -> ProductParameters:
        """Require a role name in the product (template) parameters."""
        product = ProductParameters.model_validate(dict(product_parameters))
        if not (product.role_name or "").strip():
            raise ConfigurationInvalid(["The 'RoleName' is required."])
        return product
