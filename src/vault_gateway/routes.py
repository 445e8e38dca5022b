"""
Vault CA Gateway - API Routes

Endpoints for enrolling and revoking certificates through Vault, running
synchronization jobs, monitoring their progress, and reading single
records and product IDs.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from vault_gateway.auth import verify_api_key
from vault_gateway.core.connector import VaultConnector
from vault_gateway.errors import (
    BackendRejected,
    CertificateNotFound,
    EnrollmentRejected,
    MalformedIdentifier,
    RevocationFailed,
    SyncInProgress,
    TrackingRecordNotFound,
)
from vault_gateway.jobs.runner import launch_sync_job
from vault_gateway.jobs.store import job_store
from vault_gateway.store.repository import TrackingRepository

logger = logging.getLogger("vaultgw.routes")

router = APIRouter(
    prefix="/gateway/v1",
    tags=["gateway"],
    dependencies=[Depends(verify_api_key)],
)


def get_connector(request: Request) -> VaultConnector:
    return request.app.state.connector


def get_repository(request: Request) -> TrackingRepository:
    return request.app.state.repository


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class EnrollRequest(BaseModel):
    """Request body for POST /enroll."""

    csr: str
    subject: str
    san: dict[str, list[str]] = Field(default_factory=dict)
    product_id: str
    product_parameters: dict[str, str | bool | None] = Field(default_factory=dict)


class EnrollResponse(BaseModel):
    tracking_id: str
    certificate: str
    status: str
    status_message: str


class RevokeRequest(BaseModel):
    """Request body for POST /revoke."""

    tracking_id: str
    hex_serial: str | None = None
    reason: int = 0


class RevokeResponse(BaseModel):
    tracking_id: str
    serial_number: str
    status: str
    revocation_time: datetime | None = None


class SyncRunRequest(BaseModel):
    """Request body for POST /sync/run."""

    full_sync: bool = False


class SyncRunResponse(BaseModel):
    job_id: str
    status: str


class RecordResponse(BaseModel):
    tracking_id: str
    certificate: str
    status: str
    revocation_date: datetime | None = None


def _backend_error(exc: BackendRejected) -> HTTPException:
    logger.warning("Vault rejected the request: %s", exc)
    return HTTPException(status_code=502, detail=exc.messages or [str(exc)])


# ---------------------------------------------------------------------------
# Route: Enrollment
# ---------------------------------------------------------------------------


@router.post("/enroll", response_model=EnrollResponse)
async def enroll(
    body: EnrollRequest,
    connector: VaultConnector = Depends(get_connector),
    repository: TrackingRepository = Depends(get_repository),
):
    """
    Have Vault sign a CSR and start tracking the issued certificate.

    The product ID names the PKI role to sign under.
    """
    try:
        result = await connector.enroll(
            body.csr, body.subject, body.san, body.product_id, body.product_parameters
        )
    except EnrollmentRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except BackendRejected as exc:
        raise _backend_error(exc)
    except MalformedIdentifier as exc:
        # Vault signed the certificate but its serial cannot become a tracking ID
        logger.warning("Enrollment under %s returned an unusable serial: %s", body.product_id, exc)
        raise HTTPException(status_code=502, detail=[str(exc)])

    await repository.run(repository.record_enrollment, result, body.product_id)
    return EnrollResponse(
        tracking_id=result.tracking_id,
        certificate=result.certificate,
        status=result.status.value,
        status_message=result.status_message,
    )


# ---------------------------------------------------------------------------
# Route: Revocation
# ---------------------------------------------------------------------------


@router.post("/revoke", response_model=RevokeResponse)
async def revoke(
    body: RevokeRequest,
    connector: VaultConnector = Depends(get_connector),
    repository: TrackingRepository = Depends(get_repository),
):
    """Revoke a certificate in Vault and mark it revoked locally."""
    try:
        result = await connector.revoke(body.tracking_id, body.hex_serial, body.reason)
    except MalformedIdentifier as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except RevocationFailed as exc:
        logger.warning("Revocation of %s failed: %s", body.tracking_id, exc)
        raise HTTPException(status_code=502, detail=exc.messages or [str(exc)])

    try:
        await repository.run(repository.mark_revoked, result)
    except TrackingRecordNotFound:
        logger.info(
            "Revoked %s is not tracked locally; the next sync will pick it up",
            body.tracking_id,
        )

    return RevokeResponse(
        tracking_id=result.tracking_id,
        serial_number=result.serial_number,
        status=result.status.value,
        revocation_time=result.revocation_time,
    )


# ---------------------------------------------------------------------------
# Route: Synchronization jobs
# ---------------------------------------------------------------------------


@router.post("/sync/run", response_model=SyncRunResponse)
async def run_sync(
    body: SyncRunRequest,
    connector: VaultConnector = Depends(get_connector),
    repository: TrackingRepository = Depends(get_repository),
):
    """Start a synchronization job in the background."""
    try:
        job = launch_sync_job(connector, repository, body.full_sync, triggered_by="manual")
    except SyncInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SyncRunResponse(job_id=job.job_id, status=job.status)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str):
    """Ask a running job to stop before its next certificate."""
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if not job.is_active:
        raise HTTPException(status_code=409, detail=f"Job is already {job.status}")
    job.cancel_event.set()
    job_store.add_log(job_id, "Cancellation requested")
    return {"job_id": job_id, "status": job.status}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str):
    """Return the current status of a sync job."""
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_status_dict()


@router.get("/jobs/{job_id}/logs")
async def get_job_logs(job_id: str):
    """Return the log entries for a sync job."""
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"job_id": job_id, "logs": job_store.get_logs(job_id)}


# ---------------------------------------------------------------------------
# Route: Lookups
# ---------------------------------------------------------------------------


@router.get("/certificates/{tracking_id}", response_model=RecordResponse)
async def get_certificate(
    tracking_id: str,
    connector: VaultConnector = Depends(get_connector),
):
    """Read one certificate's current state straight from Vault."""
    try:
        record = await connector.get_single_record(tracking_id)
    except MalformedIdentifier as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CertificateNotFound:
        raise HTTPException(status_code=404, detail="Certificate not found")
    except BackendRejected as exc:
        raise _backend_error(exc)
    return RecordResponse(
        tracking_id=record.tracking_id,
        certificate=record.certificate,
        status=record.status.value,
        revocation_date=record.revocation_date,
    )


@router.get("/products")
async def list_products(connector: VaultConnector = Depends(get_connector)):
    """Return the PKI role names usable as product IDs."""
    try:
        products = await connector.get_product_ids()
    except BackendRejected as exc:
        raise _backend_error(exc)
    return {"products": products}
