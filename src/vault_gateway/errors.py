"""
Vault CA Gateway - Error Taxonomy

Every failure the gateway surfaces to a caller derives from
:class:`GatewayError`.  Nothing in the gateway retries on its own; retry
and backoff belong to whoever schedules the call.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all gateway errors."""


class MalformedIdentifier(GatewayError, ValueError):
    """A serial number or tracking ID is not well-formed hex."""

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"Malformed identifier {value!r}: {reason}")
        self.value = value
        self.reason = reason


class MissingAttribute(GatewayError, LookupError):
    """The requested RDN is not present in a subject string."""

    def __init__(self, rdn: str) -> None:
        super().__init__(f"The request is missing a {rdn}= value")
        self.rdn = rdn


class EnrollmentRejected(GatewayError):
    """A signing request could not be constructed from the caller's input."""


class BackendRejected(GatewayError):
    """The PKI backend answered with an error payload.

    ``messages`` is the backend's ``errors`` list, preserved verbatim.
    """

    def __init__(
        self,
        messages: list[str] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.messages = list(messages or [])
        self.status_code = status_code
        detail = "; ".join(self.messages) or "no error detail returned"
        if status_code is not None:
            super().__init__(f"Vault returned HTTP {status_code}: {detail}")
        else:
            super().__init__(f"Vault request failed: {detail}")


class CertificateNotFound(BackendRejected):
    """The backend has no certificate with the requested serial number."""

    def __init__(self, serial: str, messages: list[str] | None = None) -> None:
        super().__init__(messages, status_code=404)
        self.serial = serial


class SyncFailed(GatewayError):
    """A reconciliation run hit an unrecoverable step and was aborted."""


class RevocationFailed(GatewayError):
    """The backend refused to revoke a certificate."""

    def __init__(self, tracking_id: str, messages: list[str] | None = None) -> None:
        self.tracking_id = tracking_id
        self.messages = list(messages or [])
        detail = "; ".join(self.messages) or "unknown error"
        super().__init__(f"Revocation of {tracking_id} failed: {detail}")


class SinkClosed(GatewayError):
    """An upsert was offered to a sink that no longer accepts records."""


class TrackingRecordNotFound(GatewayError, LookupError):
    """The local store has no record for the given tracking ID."""

    def __init__(self, tracking_id: str) -> None:
        super().__init__(f"No tracking record for {tracking_id}")
        self.tracking_id = tracking_id


class ConfigurationInvalid(GatewayError):
    """Connection or product configuration failed validation.

    ``errors`` holds one message per problem found.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("\n".join(self.errors))


class BackendUnavailable(BackendRejected):
    """Vault could not be reached, timed out, or is sealed."""

    def __init__(self, message: str) -> None:
        super().__init__([message])


class SyncInProgress(GatewayError):
    """A synchronization run is already active."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Sync job {job_id} is already running")
        self.job_id = job_id
