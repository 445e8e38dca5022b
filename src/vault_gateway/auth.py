"""
Vault CA Gateway - Authentication

Builds the headers used to authenticate outbound requests to Vault, and
validates the optional API key on incoming gateway requests.
"""

from __future__ import annotations

import hmac
import ssl

from fastapi import Header, HTTPException, status

from vault_gateway.settings import settings
from vault_gateway.vault.schemas import VaultConnection


def get_vault_headers(
    connection: VaultConnection,
    token: str | None = None,
) -> dict[str, str]:
    """
    Return HTTP headers for an outbound Vault request.

    ``X-Vault-Request`` is always sent.  The token (explicit, or the one
    configured on the connection) goes in ``X-Vault-Token`` and the
    namespace, when set, in ``X-Vault-Namespace``.
    """
    headers: dict[str, str] = {"X-Vault-Request": "true"}
    token = token or connection.token
    if token:
        headers["X-Vault-Token"] = token
    if connection.namespace:
        headers["X-Vault-Namespace"] = connection.namespace
    return headers


def get_tls_verify(connection: VaultConnection) -> ssl.SSLContext | bool:
    """
    Return the ``verify`` argument for ``httpx.AsyncClient``.

    When a client certificate is configured it is loaded into an SSL
    context so Vault's cert auth method can see it.
    """
    if not connection.client_cert_path:
        return connection.verify_tls

    context = ssl.create_default_context()
    if not connection.verify_tls:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    context.load_cert_chain(
        certfile=connection.client_cert_path,
        keyfile=connection.client_key_path,
    )
    return context


async def verify_api_key(x_api_key: str | None = Header(default=None)) -> None:
    """
    FastAPI dependency guarding the gateway routes.

    When ``GATEWAY_API_KEY`` is empty the check is disabled.
    """
    expected = settings.GATEWAY_API_KEY
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
