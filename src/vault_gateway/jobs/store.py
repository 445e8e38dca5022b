"""
Vault CA Gateway - In-Memory Sync Job Store

Keeps the state of synchronization runs for the status endpoints.  Jobs
are lost on process restart; the durable result of a run is what it
wrote to the tracking store.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any


class SyncJob:
    """Tracks the state of a single synchronization run."""

    def __init__(self, job_id: str, full_sync: bool, triggered_by: str) -> None:
        self.job_id: str = job_id
        self.full_sync: bool = full_sync
        self.triggered_by: str = triggered_by
        self.status: str = "started"
        self.records_listed: int = 0
        self.records_processed: int = 0
        self.records_emitted: int = 0
        self.records_skipped: int = 0
        self.records_applied: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()
        self.finished_at: str | None = None
        self.error: str | None = None
        self.logs: list[str] = []
        self.cancel_event: asyncio.Event = asyncio.Event()
        self.task: asyncio.Task | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ("started", "running")

    def to_status_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable status summary."""
        return {
            "job_id": self.job_id,
            "status": self.status,
            "full_sync": self.full_sync,
            "triggered_by": self.triggered_by,
            "records_listed": self.records_listed,
            "records_processed": self.records_processed,
            "records_emitted": self.records_emitted,
            "records_skipped": self.records_skipped,
            "records_applied": self.records_applied,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error,
        }


class JobStore:
    """
    In-memory store for sync jobs.

    All operations are synchronous because the dict is only mutated from
    the event loop thread.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, SyncJob] = {}

    def create_job(self, full_sync: bool = False, triggered_by: str = "manual") -> SyncJob:
        """Create a new job and return it."""
        job_id = str(uuid.uuid4())
        job = SyncJob(job_id=job_id, full_sync=full_sync, triggered_by=triggered_by)
        self._jobs[job_id] = job
        return job

    def get_job(self, job_id: str) -> SyncJob | None:
        """Return the job with the given ID, or ``None``."""
        return self._jobs.get(job_id)

    def active_job(self) -> SyncJob | None:
        """Return the job that is still running, if any."""
        for job in self._jobs.values():
            if job.is_active:
                return job
        return None

    def last_completed_at(self) -> datetime | None:
        """Return when the most recent successful run finished."""
        finished = [
            datetime.fromisoformat(job.finished_at)
            for job in self._jobs.values()
            if job.status == "completed" and job.finished_at
        ]
        return max(finished) if finished else None

    def add_log(self, job_id: str, message: str) -> None:
        """Append a timestamped log entry to the job."""
        job = self._jobs.get(job_id)
        if job is None:
            return
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        job.logs.append(f"[{ts}] {message}")

    def get_logs(self, job_id: str) -> list[str]:
        """Return the log entries for a job."""
        job = self._jobs.get(job_id)
        if job is None:
            return []
        return list(job.logs)


# Global singleton used across the application
job_store = JobStore()
