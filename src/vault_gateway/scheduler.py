"""
APScheduler setup for periodic synchronization.

Two cron schedules drive reconciliation: a frequent incremental sync that
only emits status changes, and a rarer full sync that refreshes every
record.  A tick that lands while another run is active is skipped.
"""

from __future__ import annotations

import logging
import re

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from vault_gateway.core.connector import VaultConnector
from vault_gateway.errors import SyncInProgress
from vault_gateway.jobs.runner import launch_sync_job
from vault_gateway.settings import settings
from vault_gateway.store.repository import TrackingRepository

logger = logging.getLogger("vaultgw.scheduler")


# ---------------------------------------------------------------------------
# Cron expressions
# ---------------------------------------------------------------------------

# Each field allows: *, digits, ranges (1-5), steps (*/5), lists (1,3,5)
_CRON_FIELD_RE = re.compile(
    r"^(\*|[0-9]+(-[0-9]+)?)(/[0-9]+)?(,(\*|[0-9]+(-[0-9]+)?)(/[0-9]+)?)*$"
)

_FIELD_NAMES = ("minute", "hour", "day", "month", "day_of_week")

_FIELD_RANGES = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day": (1, 31),
    "month": (1, 12),
    "day_of_week": (0, 6),
}


def validate_cron(expression: str) -> bool:
    """Return ``True`` if *expression* is a valid 5-field cron expression."""
    parts = expression.strip().split()
    if len(parts) != 5:
        return False

    for part, field_name in zip(parts, _FIELD_NAMES):
        if not _CRON_FIELD_RE.match(part):
            return False

        min_val, max_val = _FIELD_RANGES[field_name]
        for segment in part.split(","):
            # Strip step suffix (e.g. "*/5" -> "*", "1-5/2" -> "1-5")
            base = segment.split("/")[0]
            if base == "*":
                continue
            lo, _, hi = base.partition("-")
            lo_int = int(lo)
            hi_int = int(hi) if hi else lo_int
            if lo_int < min_val or hi_int > max_val or lo_int > hi_int:
                return False

    return True


def parse_cron_parts(expression: str) -> dict[str, str]:
    """Parse a 5-field cron expression into ``CronTrigger`` kwargs.

    Raises
    ------
    ValueError
        If the expression is not a valid 5-field cron expression.
    """
    if not validate_cron(expression):
        raise ValueError(f"Invalid cron expression '{expression}'")
    return dict(zip(_FIELD_NAMES, expression.strip().split()))


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

async def _scheduled_sync(
    connector: VaultConnector,
    repository: TrackingRepository,
    full_sync: bool,
) -> None:
    """Invoked by APScheduler on each cron tick (inside the event loop)."""
    try:
        job = launch_sync_job(connector, repository, full_sync, triggered_by="schedule")
    except SyncInProgress as exc:
        logger.info("scheduled_sync: skipped, %s", exc)
        return
    logger.info(
        "scheduled_sync: started %s sync job=%s",
        "full" if full_sync else "incremental",
        job.job_id,
    )


def build_scheduler(
    connector: VaultConnector,
    repository: TrackingRepository,
    incremental_cron: str | None = None,
    full_cron: str | None = None,
) -> AsyncIOScheduler:
    """Create (but do not start) the sync scheduler."""
    scheduler = AsyncIOScheduler(timezone="UTC")

    schedules = (
        ("sync-incremental", incremental_cron or settings.SYNC_INCREMENTAL_CRON, False),
        ("sync-full", full_cron or settings.SYNC_FULL_CRON, True),
    )
    for job_id, expression, full_sync in schedules:
        scheduler.add_job(
            _scheduled_sync,
            trigger=CronTrigger(**parse_cron_parts(expression), timezone="UTC"),
            args=[connector, repository, full_sync],
            id=job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Scheduled %s with cron '%s'", job_id, expression)

    return scheduler
