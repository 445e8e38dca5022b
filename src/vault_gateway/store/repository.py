"""
Tracking store: reads local status for the sync engine and applies the
upserts it emits.

Upsert rules:
- a record is keyed by tracking ID; applying the same upsert twice leaves
  the row unchanged apart from timestamps
- certificate body, status and revocation date are replaced
- the product ID is only written when the upsert carries one, so a sync
  upsert never clears the role recorded at enrollment
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy.orm import Session

from vault_gateway.core.identifiers import to_serial
from vault_gateway.core.models import (
    CertificateStatus,
    EnrollmentResult,
    RevocationResult,
    TrackingRecord,
)
from vault_gateway.errors import TrackingRecordNotFound
from vault_gateway.store.certinfo import describe_certificate
from vault_gateway.store.db import SessionLocal
from vault_gateway.store.models import TrackedCertificate

logger = logging.getLogger("vaultgw.store.repository")

T = TypeVar("T")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


class TrackingRepository:
    """SQLAlchemy-backed tracking store.

    Each call opens its own session from *session_factory*.  The async
    methods run the blocking database work on a single worker thread, so
    database calls never overlap.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tracking-store")

    async def run(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking repository method off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_status(self, tracking_id: str) -> CertificateStatus:
        return await self.run(self.read_status, tracking_id)

    def read_status(self, tracking_id: str) -> CertificateStatus:
        """Return the stored status of *tracking_id*.

        Raises
        ------
        TrackingRecordNotFound
            If there is no row for *tracking_id*.
        """
        with self._session_factory() as db:
            row = self._find(db, tracking_id)
            if row is None:
                raise TrackingRecordNotFound(tracking_id)
            return CertificateStatus(row.status)

    def get(self, tracking_id: str) -> TrackingRecord | None:
        """Return the stored record for *tracking_id*, or ``None``."""
        with self._session_factory() as db:
            row = self._find(db, tracking_id)
            if row is None:
                return None
            return TrackingRecord(
                tracking_id=row.tracking_id,
                certificate=row.certificate,
                status=CertificateStatus(row.status),
                revocation_date=row.revocation_date,
                product_id=row.product_id,
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_upsert(self, record: TrackingRecord) -> bool:
        """Insert or update the row for ``record.tracking_id``.

        Returns ``True`` when a new row was created.
        """
        now = _utcnow()
        with self._session_factory() as db:
            row = self._find(db, record.tracking_id)
            created = row is None
            if created:
                row = TrackedCertificate(
                    tracking_id=record.tracking_id,
                    serial_number=to_serial(record.tracking_id),
                )
                db.add(row)

            if row.certificate != record.certificate:
                details = describe_certificate(record.certificate)
                row.subject_dn = details["subject_dn"]
                row.not_before = details["not_before"]
                row.not_after = details["not_after"]
                row.san = details["san"]
            row.certificate = record.certificate
            row.status = record.status.value
            row.revocation_date = record.revocation_date
            if record.product_id:
                row.product_id = record.product_id
            if record.kind is not None:
                row.last_synced_at = now

            db.commit()

        logger.debug(
            "%s tracking record %s (status=%s)",
            "Created" if created else "Updated",
            record.tracking_id,
            record.status.value,
        )
        return created

    def record_enrollment(self, result: EnrollmentResult, product_id: str) -> None:
        """Store a freshly enrolled certificate together with its role."""
        self.apply_upsert(
            TrackingRecord(
                tracking_id=result.tracking_id,
                certificate=result.certificate,
                status=result.status,
                product_id=product_id,
            )
        )

    def mark_revoked(self, result: RevocationResult) -> None:
        """Record a successful revocation on an existing row.

        Raises
        ------
        TrackingRecordNotFound
            If the certificate is not tracked locally.
        """
        with self._session_factory() as db:
            row = self._find(db, result.tracking_id)
            if row is None:
                raise TrackingRecordNotFound(result.tracking_id)
            row.status = CertificateStatus.REVOKED.value
            row.revocation_date = result.revocation_time
            db.commit()

    async def consume(self, records: AsyncIterable[TrackingRecord]) -> int:
        """Apply every upsert from *records* until it is exhausted.

        Returns the number of upserts applied.
        """
        applied = 0
        async for record in records:
            await self.run(self.apply_upsert, record)
            applied += 1
        return applied

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find(db: Session, tracking_id: str) -> TrackedCertificate | None:
        return (
            db.query(TrackedCertificate)
            .filter(TrackedCertificate.tracking_id == tracking_id)
            .first()
        )
