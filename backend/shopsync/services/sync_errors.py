"""
Errors raised by tenant sync operations.

Every failure reaches the caller as a SyncError subclass. Routes translate
them to HTTP status codes; the scheduled job records them per tenant.
"""

from typing import Optional, Sequence, Tuple


class SyncError(Exception):
    """Base exception for tenant sync errors."""

    def __init__(self, message: str, tenant_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id


class TenantNotFoundError(SyncError):
    """Tenant does not exist, is not active, or has no stored credentials."""
    pass


class SyncAlreadyRunningError(SyncError):
    """Another sync of the same tenant is in progress."""
    pass


class FetchFailedError(SyncError):
    """
    Both protocols failed to fetch an entity type.

    Attributes:
        resource: Entity type that could not be fetched
        attempts: (protocol, error) pairs in the order they were tried
    """

    def __init__(
        self,
        resource: str,
        attempts: Sequence[Tuple[str, BaseException]],
        tenant_id: Optional[str] = None,
    ):
        self.resource = resource
        self.attempts = list(attempts)
        causes = "; ".join(
            f"{protocol}: {type(error).__name__}: {error}"
            for protocol, error in self.attempts
        )
        super().__init__(f"Failed to fetch {resource} ({causes})", tenant_id=tenant_id)

    @property
    def protocols(self):
        return [protocol for protocol, _ in self.attempts]


class TenantSyncFailedError(SyncError):
    """
    A sync step failed. Batches committed before the failure stay committed.

    Attributes:
        state: SyncState value the sync was in when it failed
        cause: Underlying error
    """

    def __init__(
        self,
        message: str,
        tenant_id: Optional[str] = None,
        state: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, tenant_id=tenant_id)
        self.state = state
        self.cause = cause
