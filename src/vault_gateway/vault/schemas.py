"""
Typed request/response contracts for the Vault HTTP API.

Only the fields the gateway reads are modelled; everything else Vault
sends is ignored.  Most Vault responses wrap their payload in ``data``
and report non-fatal problems in ``warnings``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class VaultConnection(BaseModel):
    """Where and how to reach a Vault PKI secrets engine.

    Accepts snake_case names or the gateway's PascalCase connection keys
    (``Host``, ``MountPoint``, ``Token``, ``Namespace``,
    ``ClientCertificate``, ``Enabled``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    host: str = Field(default="", alias="Host")
    mount_point: str = Field(default="pki", alias="MountPoint")
    token: str | None = Field(default=None, alias="Token")
    namespace: str | None = Field(default=None, alias="Namespace")
    client_cert_path: str | None = Field(default=None, alias="ClientCertificate")
    client_key_path: str | None = Field(default=None, alias="ClientKey")
    enabled: bool = Field(default=True, alias="Enabled")
    verify_tls: bool = Field(default=True, alias="VerifyTls")
    timeout: float = Field(default=30.0, alias="Timeout")

    @field_validator("client_cert_path", mode="before")
    @classmethod
    def _certificate_path(cls, value: Any) -> Any:
        # The gateway hands over client certificates as an object.
        if isinstance(value, dict):
            return value.get("CertificatePath") or None
        return value or None

    @field_validator("token", "namespace", "client_key_path", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        return value or None

    @field_validator("mount_point", mode="before")
    @classmethod
    def _default_mount(cls, value: Any) -> Any:
        return (value or "pki").strip("/")

    @property
    def base_url(self) -> str:
        return f"{self.host.rstrip('/')}/v1/"


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


class WrappedResponse(BaseModel, Generic[T]):
    request_id: str | None = None
    warnings: list[str] | None = None
    data: T


class AuthInfo(BaseModel):
    client_token: str
    policies: list[str] = []
    lease_duration: int = 0


class LoginResponse(BaseModel):
    auth: AuthInfo


class ErrorResponse(BaseModel):
    errors: list[str] = []


class KeyedList(BaseModel):
    keys: list[str] = []


# ---------------------------------------------------------------------------
# PKI payloads
# ---------------------------------------------------------------------------


def _revocation_timestamp(rfc3339: Any, epoch: Any) -> datetime | None:
    """Vault reports "not revoked" as an empty string and a zero epoch."""
    if rfc3339:
        return rfc3339
    if isinstance(epoch, datetime):
        return epoch
    if isinstance(epoch, (int, float)) and epoch > 0:
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    return None


class CertResponse(BaseModel):
    """``GET /<mount>/cert/<serial>``"""

    certificate: str
    revocation_time: datetime | None = None
    issuer_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _pick_revocation_time(cls, values: Any) -> Any:
        if isinstance(values, dict):
            values = dict(values)
            values["revocation_time"] = _revocation_timestamp(
                values.pop("revocation_time_rfc3339", None),
                values.get("revocation_time"),
            )
        return values


class SignResponse(BaseModel):
    """``POST /<mount>/sign/<role>``"""

    certificate: str
    serial_number: str
    issuing_ca: str | None = None
    ca_chain: list[str] | None = None
    expiration: int | None = None


class RevokeResponse(BaseModel):
    """``POST /<mount>/revoke``"""

    revocation_time: datetime | None = None
    state: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _pick_revocation_time(cls, values: Any) -> Any:
        if isinstance(values, dict):
            values = dict(values)
            values["revocation_time"] = _revocation_timestamp(
                values.pop("revocation_time_rfc3339", None),
                values.get("revocation_time"),
            )
        return values


class SealStatusResponse(BaseModel):
    """``GET /sys/seal-status`` (not wrapped in ``data``)."""

    sealed: bool
    initialized: bool = True
    version: str | None = None
