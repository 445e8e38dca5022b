"""
Vault CA Gateway - Sync Job Runner

Runs one synchronization as a background task:
  1. Start the tracking store consuming a bounded upsert sink
  2. Run the sync engine, which fills the sink
  3. Close the sink, wait for the store to drain it, record the outcome
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone

from vault_gateway.core.connector import VaultConnector
from vault_gateway.core.sink import UpsertSink
from vault_gateway.errors import SyncInProgress
from vault_gateway.jobs.store import SyncJob, job_store
from vault_gateway.settings import settings
from vault_gateway.store.repository import TrackingRepository

logger = logging.getLogger("vaultgw.jobs.runner")


async def run_sync_job(
    job_id: str,
    connector: VaultConnector,
    repository: TrackingRepository,
    queue_size: int | None = None,
) -> None:
    """
    Main background task for one synchronization run.

    This function is meant to be launched via ``asyncio.create_task`` so
    that it runs concurrently with request handling.  Failures are
    recorded on the job rather than raised.

    Args:
        job_id: The job ID (must already exist in the job store).
        connector: Connector bound to the Vault mount to reconcile.
        repository: Tracking store that reads status and applies upserts.
        queue_size: Sink capacity; defaults to ``SYNC_QUEUE_SIZE``.
    """
    job = job_store.get_job(job_id)
    if job is None:
        logger.error("Job %s not found in store", job_id)
        return

    last_sync = job_store.last_completed_at()
    sink = UpsertSink(maxsize=queue_size or settings.SYNC_QUEUE_SIZE)
    consumer = asyncio.create_task(repository.consume(sink))
    producer = asyncio.create_task(
        connector.synchronize(sink, last_sync, job.full_sync, job.cancel_event)
    )

    try:
        job.status = "running"
        job_store.add_log(
            job_id, f"{'Full' if job.full_sync else 'Incremental'} sync started"
        )

        done, _ = await asyncio.wait(
            {producer, consumer}, return_when=asyncio.FIRST_COMPLETED
        )
        if consumer in done and producer not in done:
            # the store stopped draining; the engine would block on a full sink
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
            consumer.result()
            raise RuntimeError("tracking store stopped consuming upserts")

        summary = producer.result()
        job.records_listed = summary.listed
        job.records_processed = summary.processed
        job.records_emitted = summary.emitted
        job.records_skipped = summary.skipped

        sink.close()
        job.records_applied = await consumer
        job_store.add_log(
            job_id,
            f"Listed {summary.listed}, emitted {summary.emitted}, "
            f"applied {job.records_applied}, skipped {summary.skipped}",
        )

        job.status = "cancelled" if summary.cancelled else "completed"
        job.finished_at = datetime.now(timezone.utc).isoformat()
        job_store.add_log(job_id, f"Sync {job.status}")

    except Exception as exc:
        await _drain_after_failure(job, sink, consumer)
        job.status = "failed"
        job.error = str(exc)
        job.finished_at = datetime.now(timezone.utc).isoformat()
        job_store.add_log(job_id, f"Sync failed: {exc}")
        logger.exception("Sync job %s failed", job_id[:8])


async def _drain_after_failure(
    job: SyncJob,
    sink: UpsertSink,
    consumer: asyncio.Task,
) -> None:
    """Let the store apply what was emitted before the failure.

    Upserts the store can no longer take are discarded and counted in the
    job log.
    """
    sink.close()
    if not consumer.done():
        try:
            job.records_applied = await consumer
        except Exception as exc:
            job_store.add_log(job.job_id, f"Store failed while draining: {exc}")

    dropped = sink.drain_nowait()
    if dropped:
        job_store.add_log(job.job_id, f"Discarded {len(dropped)} unapplied upserts")
        logger.warning(
            "Sync job %s discarded %d unapplied upserts", job.job_id[:8], len(dropped)
        )


def launch_sync_job(
    connector: VaultConnector,
    repository: TrackingRepository,
    full_sync: bool = False,
    triggered_by: str = "manual",
) -> SyncJob:
    """
    Create a job and start :func:`run_sync_job` for it in the background.

    Raises:
        SyncInProgress: Another run has not finished yet.
    """
    active = job_store.active_job()
    if active is not None:
        raise SyncInProgress(active.job_id)

    job = job_store.create_job(full_sync=full_sync, triggered_by=triggered_by)
    job_store.add_log(
        job.job_id, f"Job created: full_sync={full_sync}, triggered_by={triggered_by}"
    )
    job.task = asyncio.create_task(run_sync_job(job.job_id, connector, repository))
    return job
