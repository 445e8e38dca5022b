"""
Vault CA Gateway - Settings

Settings are loaded from environment variables with the VAULTGW_ prefix,
or from a .env file in the working directory.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from vault_gateway.vault.schemas import VaultConnection


class Settings(BaseSettings):
    """Gateway configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VAULTGW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Vault connection
    VAULT_HOST: str = "http://127.0.0.1:8200"
    VAULT_MOUNT_POINT: str = "pki"
    VAULT_TOKEN: str = ""
    VAULT_NAMESPACE: str = ""  # Vault Enterprise only
    VAULT_CLIENT_CERT_PATH: str = ""  # used when no token is configured
    VAULT_CLIENT_KEY_PATH: str = ""
    VAULT_VERIFY_TLS: bool = True
    VAULT_TIMEOUT: float = 30.0
    ENABLED: bool = True

    # Local tracking store
    DATABASE_URL: str = "sqlite:///./vault_gateway.db"

    # Synchronization
    SYNC_QUEUE_SIZE: int = 100
    SYNC_SKIP_FAILED_FETCH: bool = False
    SCHEDULER_ENABLED: bool = False
    SYNC_INCREMENTAL_CRON: str = "*/15 * * * *"
    SYNC_FULL_CRON: str = "0 3 * * *"

    # Inbound API key for the gateway routes; empty disables the check
    GATEWAY_API_KEY: str = ""

    # Logging level
    LOG_LEVEL: str = "INFO"

    def vault_connection(self) -> VaultConnection:
        """Return the Vault connection described by these settings."""
        return VaultConnection(
            host=self.VAULT_HOST,
            mount_point=self.VAULT_MOUNT_POINT,
            token=self.VAULT_TOKEN or None,
            namespace=self.VAULT_NAMESPACE or None,
            client_cert_path=self.VAULT_CLIENT_CERT_PATH or None,
            client_key_path=self.VAULT_CLIENT_KEY_PATH or None,
            verify_tls=self.VAULT_VERIFY_TLS,
            timeout=self.VAULT_TIMEOUT,
            enabled=self.ENABLED,
        )


settings = Settings()
