"""
Vault CA Gateway - FastAPI Application

Issues, revokes and inventories X.509 certificates through a Hashicorp
Vault PKI secrets engine, and keeps a local tracking store in step with
Vault's inventory.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from vault_gateway import __version__
from vault_gateway.core.connector import VaultConnector
from vault_gateway.errors import BackendRejected
from vault_gateway.routes import router
from vault_gateway.scheduler import build_scheduler
from vault_gateway.settings import settings
from vault_gateway.store.db import Base, engine
from vault_gateway.store.repository import TrackingRepository
from vault_gateway.util.logging import setup_logging
from vault_gateway.vault.client import VaultClient

logger = logging.getLogger("vaultgw")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    setup_logging(settings.LOG_LEVEL)
    logger.info("Vault CA Gateway starting up")
    logger.info("Vault host: %s, mount: %s", settings.VAULT_HOST, settings.VAULT_MOUNT_POINT)

    Base.metadata.create_all(bind=engine)

    repository = TrackingRepository()
    client = VaultClient(settings.vault_connection())
    app.state.repository = repository
    app.state.connector = VaultConnector(
        client, repository, skip_failed_fetch=settings.SYNC_SKIP_FAILED_FETCH
    )

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = build_scheduler(app.state.connector, repository)
        scheduler.start()
        logger.info("Sync scheduler started")

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Vault CA Gateway shutting down")


app = FastAPI(
    title="Vault CA Gateway",
    description=(
        "Enrolls, revokes and synchronizes certificates issued by a "
        "Hashicorp Vault PKI secrets engine."
    ),
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint; reports whether Vault is reachable and unsealed."""
    vault_status = "disabled"
    connector: VaultConnector | None = getattr(app.state, "connector", None)
    if connector is not None and connector.client.connection.enabled:
        try:
            await connector.ping()
            vault_status = "ok"
        except BackendRejected as exc:
            logger.warning("Health check: %s", exc)
            vault_status = "unavailable"

    return {
        "status": "healthy",
        "service": "vault-ca-gateway",
        "version": __version__,
        "vault": vault_status,
    }


def run() -> None:
    """Entry point for the ``vault-ca-gateway`` console script."""
    uvicorn.run(
        "vault_gateway.main:app",
        host="0.0.0.0",
        port=9000,
        log_level=settings.LOG_LEVEL.lower(),
    )
