"""
Inventory synchronization: Vault certificates -> tracking-store upserts.

Process for one run:
1. List every serial on the PKI mount (failure aborts the run)
2. For each serial, in listing order:
   a. stop if cancellation was requested
   b. read the certificate from Vault
   c. convert the serial to a tracking ID and look up the local status
   d. classify: missing locally or full sync -> new upsert; status differs
      -> status-change upsert; otherwise nothing
   e. put the upsert on the caller's sink

The engine never writes the store itself.  Upserts never carry a product
ID: Vault does not report the role a certificate was issued under, and
an upsert without one must not clear the value recorded at enrollment.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Protocol

from vault_gateway.core.identifiers import to_tracking_id
from vault_gateway.core.models import (
    CertificateRecord,
    CertificateStatus,
    SyncSummary,
    TrackingRecord,
    UpsertKind,
)
from vault_gateway.errors import (
    GatewayError,
    MalformedIdentifier,
    SyncFailed,
    TrackingRecordNotFound,
)
from vault_gateway.util.logging import trace_span

logger = logging.getLogger("vaultgw.core.sync")


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class CertificateSource(Protocol):
    async def list_serials(self) -> list[str]: ...

    async def get_certificate(self, serial: str) -> CertificateRecord: ...


class StatusReader(Protocol):
    async def get_status(self, tracking_id: str) -> CertificateStatus:
        """Return the stored status; raise TrackingRecordNotFound if absent."""
        ...


class RecordSink(Protocol):
    async def put(self, record: TrackingRecord) -> None: ...


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify(
    cert: CertificateRecord,
    tracking_id: str,
    local_status: CertificateStatus | None,
    full_sync: bool,
) -> TrackingRecord | None:
    """Decide what, if anything, to emit for one backend certificate.

    ``local_status`` is ``None`` when the tracking store has no record.
    Returns ``None`` when the two views already agree.
    """
    backend_status = cert.status

    if local_status is None or full_sync:
        kind = UpsertKind.NEW
    elif local_status != backend_status:
        kind = UpsertKind.STATUS_CHANGE
    else:
        return None

    return TrackingRecord(
        tracking_id=tracking_id,
        certificate=cert.certificate,
        status=backend_status,
        revocation_date=cert.revocation_time,
        kind=kind,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SyncEngine:
    """
    Reconciles the Vault inventory with the gateway's tracking store.

    Args:
        source: Backend client (``list_serials`` / ``get_certificate``).
        reader: Local store reader (``get_status``).
        skip_failed_fetch: When true, a certificate that cannot be read
            from Vault is logged and skipped instead of aborting the run.
    """

    def __init__(
        self,
        source: CertificateSource,
        reader: StatusReader,
        skip_failed_fetch: bool = False,
    ) -> None:
        self.source = source
        self.reader = reader
        self.skip_failed_fetch = skip_failed_fetch

    async def synchronize(
        self,
        sink: RecordSink,
        last_sync: datetime | None = None,
        full_sync: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> SyncSummary:
        """
        Run one reconciliation pass and return its counters.

        ``last_sync`` is informational: Vault cannot filter its listing by
        time, so an incremental run still walks every serial and relies on
        classification to emit only what changed.

        Raises:
            SyncFailed: Listing, a fetch (unless skipping), a local lookup,
                serial conversion or a sink write failed.  Records already
                on the sink stay there.
        """
        summary = SyncSummary(full_sync=full_sync)
        logger.info(
            "Starting %s sync (last sync: %s)",
            "full" if full_sync else "incremental",
            last_sync.isoformat() if last_sync else "never",
        )

        with trace_span(logger, "sync.list"):
            try:
                serials = await self.source.list_serials()
            except Exception as exc:
                logger.error("Failed to list certificate serials: %s", exc)
                raise SyncFailed(f"cannot list certificates from Vault: {exc}") from exc
        summary.listed = len(serials)
        logger.info("Vault listed %d certificates; checking status of each", len(serials))

        for serial in serials:
            if cancel is not None and cancel.is_set():
                summary.cancelled = True
                logger.info(
                    "Sync cancelled after %d of %d certificates",
                    summary.processed,
                    summary.listed,
                )
                break

            with trace_span(logger, "sync.certificate", serial=serial):
                record = await self._reconcile_one(serial, full_sync, summary)
                if record is not None:
                    try:
                        await sink.put(record)
                    except Exception as exc:
                        logger.error(
                            "Failed to emit upsert for %s: %s", record.tracking_id, exc
                        )
                        raise SyncFailed(
                            f"cannot emit upsert for {record.tracking_id}: {exc}"
                        ) from exc
                    summary.emitted += 1
            summary.processed += 1

        logger.info(
            "Completed sync: %d processed, %d emitted, %d skipped%s",
            summary.processed,
            summary.emitted,
            summary.skipped,
            " (cancelled)" if summary.cancelled else "",
        )
        return summary

    async def _reconcile_one(
        self,
        serial: str,
        full_sync: bool,
        summary: SyncSummary,
    ) -> TrackingRecord | None:
        try:
            cert = await self.source.get_certificate(serial)
        except Exception as exc:
            if self.skip_failed_fetch and isinstance(exc, GatewayError):
                logger.warning("Skipping certificate %s: %s", serial, exc)
                summary.skipped += 1
                return None
            logger.error("Failed to read certificate %s from Vault: %s", serial, exc)
            raise SyncFailed(f"cannot read certificate {serial}: {exc}") from exc

        try:
            tracking_id = to_tracking_id(serial)
        except MalformedIdentifier as exc:
            raise SyncFailed(str(exc)) from exc

        try:
            local_status: CertificateStatus | None = await self.reader.get_status(tracking_id)
        except TrackingRecordNotFound:
            logger.debug("Tracking ID %s not in the local store; it will be added", tracking_id)
            local_status = None
        except Exception as exc:
            raise SyncFailed(f"cannot read local status of {tracking_id}: {exc}") from exc

        return classify(cert, tracking_id, local_status, full_sync)
