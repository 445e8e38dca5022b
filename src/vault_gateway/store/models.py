"""SQLAlchemy ORM model for tracked certificates."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from vault_gateway.store.db import Base


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# TrackedCertificate
# ---------------------------------------------------------------------------

class TrackedCertificate(Base):
    __tablename__ = "tracked_certificates"

    id = Column(String(32), primary_key=True, default=_new_id)
    tracking_id = Column(String(128), unique=True, nullable=False)
    serial_number = Column(String(255), nullable=False)
    certificate = Column(Text, nullable=False)
    status = Column(String(20), nullable=False)  # new, issued, revoked, failed
    revocation_date = Column(DateTime(timezone=True), nullable=True)
    # PKI role; only known at enrollment time
    product_id = Column(String(255), nullable=True)

    # Derived from the certificate body
    subject_dn = Column(Text, nullable=True)
    not_before = Column(DateTime(timezone=True), nullable=True)
    not_after = Column(DateTime(timezone=True), nullable=True)
    san = Column(JSON, nullable=True)

    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_tracked_certificates_status", "status"),
    )
