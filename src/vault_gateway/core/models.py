"""Pydantic models shared by the enrollment, sync and revocation paths."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CertificateStatus(str, enum.Enum):
    """Status of a certificate as the gateway tracks it."""

    NEW = "new"
    ISSUED = "issued"
    REVOKED = "revoked"
    FAILED = "failed"


class UpsertKind(str, enum.Enum):
    NEW = "new"  # missing locally, or refreshed by a full sync
    STATUS_CHANGE = "status_change"


class CertificateRecord(BaseModel):
    """A certificate as the Vault backend reports it."""

    model_config = ConfigDict(frozen=True)

    serial_number: str
    certificate: str
    revocation_time: datetime | None = None
    issuer_id: str | None = None

    @property
    def status(self) -> CertificateStatus:
        """Backend-derived status: revoked once a revocation time is set."""
        if self.revocation_time is not None:
            return CertificateStatus.REVOKED
        return CertificateStatus.ISSUED


class TrackingRecord(BaseModel):
    """A certificate as the gateway's tracking store sees it.

    Records emitted by the sync engine carry ``kind``; ``product_id`` is
    only ever set on enrollment, because Vault does not expose the role a
    certificate was issued under once issuance is over.
    """

    model_config = ConfigDict(frozen=True)

    tracking_id: str
    certificate: str
    status: CertificateStatus
    revocation_date: datetime | None = None
    product_id: str | None = None
    kind: UpsertKind | None = None


class SigningRequest(BaseModel):
    """Body of a ``POST /<mount>/sign/<role>`` call."""

    csr: str
    common_name: str = Field(min_length=1)
    role_name: str = Field(min_length=1, exclude=True)
    format: str = "pem_bundle"
    alt_names: str | None = None
    ip_sans: str | None = None
    uri_sans: str | None = None
    other_sans: str | None = None
    ttl: str | None = None
    exclude_cn_from_sans: bool | None = None

    def to_payload(self) -> dict:
        """Return the JSON body Vault expects, omitting unset fields."""
        return self.model_dump(exclude_none=True)


class ProductParameters(BaseModel):
    """Per-role template configuration supplied with an enrollment.

    Keys may use the gateway's PascalCase names (``RoleName``,
    ``Namespace``, ``MountPoint``) or snake_case.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    role_name: str | None = Field(default=None, alias="RoleName")
    namespace: str | None = Field(default=None, alias="Namespace")
    mount_point: str | None = Field(default=None, alias="MountPoint")
    ttl: str | None = Field(default=None, alias="TTL")
    exclude_cn_from_sans: bool | None = Field(default=None, alias="ExcludeCnFromSans")
    other_sans: str | None = Field(default=None, alias="OtherSans")


class EnrollmentResult(BaseModel):
    tracking_id: str
    certificate: str
    status: CertificateStatus = CertificateStatus.ISSUED
    status_message: str = ""


class RevocationResult(BaseModel):
    tracking_id: str
    serial_number: str
    status: CertificateStatus = CertificateStatus.REVOKED
    revocation_time: datetime | None = None


class SyncSummary(BaseModel):
    """Counters describing one reconciliation run."""

    full_sync: bool = False
    listed: int = 0
    processed: int = 0
    emitted: int = 0
    skipped: int = 0
    cancelled: bool = False
