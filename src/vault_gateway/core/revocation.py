"""
Revocation: gateway tracking ID -> Vault revoke -> local ``revoked`` status.

The revocation reason is accepted for the caller's records but not sent;
Vault's revoke endpoint takes no reason.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from vault_gateway.core.identifiers import normalize_hex_serial, to_serial
from vault_gateway.core.models import (
    CertificateRecord,
    CertificateStatus,
    RevocationResult,
)
from vault_gateway.errors import BackendRejected, MalformedIdentifier, RevocationFailed
from vault_gateway.util.logging import trace_span
from vault_gateway.vault.schemas import RevokeResponse

logger = logging.getLogger("vaultgw.core.revocation")

_ALREADY_REVOKED_MARKERS = ("already revoked", "already been revoked")


class RevocationBackend(Protocol):
    async def revoke(self, serial: str) -> RevokeResponse: ...

    async def get_certificate(self, serial: str) -> CertificateRecord: ...


async def revoke_certificate(
    backend: RevocationBackend,
    tracking_id: str,
    hex_serial: str | None = None,
    reason: int = 0,
) -> RevocationResult:
    """
    Revoke the certificate tracked as *tracking_id*.

    Args:
        backend: Vault client.
        tracking_id: Gateway tracking ID (serial without delimiters).
        hex_serial: Optional serial as the caller renders it.  Advisory
            only; a mismatch with *tracking_id* is logged.
        reason: Caller's revocation reason code; logged, not forwarded.

    Returns:
        The revoked status and Vault's revocation time.  Revoking a
        certificate that is already revoked returns its original
        revocation time.

    Raises:
        MalformedIdentifier: *tracking_id* is not valid hex pairs.
        RevocationFailed: Vault refused the revocation.
    """
    serial = to_serial(tracking_id)
    _check_advisory_serial(tracking_id, hex_serial)
    logger.info("Revoking %s (serial %s, reason code %s)", tracking_id, serial, reason)

    with trace_span(logger, "revoke", tracking_id=tracking_id):
        try:
            response = await backend.revoke(serial)
            revocation_time = response.revocation_time
        except BackendRejected as exc:
            if not _is_already_revoked(exc):
                logger.error("Revocation of %s failed: %s", tracking_id, exc)
                raise RevocationFailed(tracking_id, exc.messages) from exc
            revocation_time = await _existing_revocation_time(backend, tracking_id, serial, exc)

    logger.info("Certificate %s revoked at %s", tracking_id, revocation_time)
    return RevocationResult(
        tracking_id=tracking_id,
        serial_number=serial,
        status=CertificateStatus.REVOKED,
        revocation_time=revocation_time,
    )


def _check_advisory_serial(tracking_id: str, hex_serial: str | None) -> None:
    if not hex_serial:
        return
    try:
        advisory = normalize_hex_serial(hex_serial)
    except MalformedIdentifier:
        logger.warning("Ignoring malformed advisory serial %r for %s", hex_serial, tracking_id)
        return
    if advisory.lower() != tracking_id.lower():
        logger.warning(
            "Advisory serial %s does not match tracking ID %s; using the tracking ID",
            hex_serial,
            tracking_id,
        )


def _is_already_revoked(exc: BackendRejected) -> bool:
    text = " ".join(exc.messages).lower()
    return any(marker in text for marker in _ALREADY_REVOKED_MARKERS)


async def _existing_revocation_time(
    backend: RevocationBackend,
    tracking_id: str,
    serial: str,
    original: BackendRejected,
) -> datetime:
    """Resolve an "already revoked" rejection to the recorded revocation time."""
    try:
        cert = await backend.get_certificate(serial)
    except BackendRejected as exc:
        raise RevocationFailed(tracking_id, original.messages + exc.messages) from exc

    if cert.revocation_time is None:
        raise RevocationFailed(tracking_id, original.messages)

    logger.info("Certificate %s was already revoked", tracking_id)
    return cert.revocation_time
