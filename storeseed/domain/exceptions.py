"""Domain exceptions.

All errors raised by the catalog, the store client and the pipelines.
Fatal errors end a run with a terminal Error event; soft errors are
logged and counted by the pipelines and never leave them.
"""

from typing import Any


class StoreSeedError(Exception):
    """Base class for all storeseed exceptions.

    All errors should inherit from this class so that pipelines can
    translate them into a terminal Error event. Subclasses with a
    stable terminal code set ``error_code``; the rest are reported
    under the failing pipeline's own code.
    """

    error_code: str | None = None

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Catalog Errors
# ============================================================================


class CatalogDefinitionError(StoreSeedError):
    """Raised when a catalog definition violates a structural rule."""


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(StoreSeedError):
    """Raised when a pipeline attempts an invalid stage transition."""

    def __init__(
        self,
        pipeline: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            pipeline: Pipeline name (e.g., "provisioning").
            current_state: Current stage.
            target_state: Attempted target stage.
            allowed_transitions: Stages reachable from the current one.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {pipeline} "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "pipeline": pipeline,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Remote Store Errors
# ============================================================================


class RemoteError(StoreSeedError):
    """Base class for errors coming from the remote store."""

    error_code = "REMOTE_API_ERROR"


class ConnectivityOrAuthError(RemoteError):
    """The store is unreachable or rejects our credentials. Always fatal."""


class RemoteUnavailableError(ConnectivityOrAuthError):
    """Raised on transport failures (connection refused, DNS, timeouts)."""

    error_code = "REMOTE_UNAVAILABLE"


class RemoteAuthError(ConnectivityOrAuthError):
    """Raised when the store answers 401 or 403."""

    error_code = "REMOTE_AUTH_FAILED"

    def __init__(self, message: str, status_code: int) -> None:
        """Initialize auth error.

        Args:
            message: Error message from the store.
            status_code: HTTP status code.
        """
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code


class RemoteApiError(RemoteError):
    """Raised when the store answers a request with an error body."""

    def __init__(
        self,
        message: str,
        status_code: int,
        remote_code: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message from the store.
            status_code: HTTP status code.
            remote_code: Machine-readable code from the error body.
            data: The ``data`` object from the error body.
        """
        super().__init__(
            message,
            details={
                "status_code": status_code,
                "remote_code": remote_code,
            },
        )
        self.status_code = status_code
        self.remote_code = remote_code
        self.data = data or {}

    @property
    def resource_id(self) -> int | None:
        """Id of the pre-existing resource named by a conflict body."""
        resource_id = self.data.get("resource_id")
        return int(resource_id) if resource_id else None


class ConflictError(RemoteApiError):
    """The resource already exists.

    The store client recovers these into a success carrying the existing
    id; they never reach the pipelines.
    """


# ============================================================================
# Pipeline Errors
# ============================================================================


class ItemRejectedError(StoreSeedError):
    """Raised when the store rejects a resource in an abort-on-error phase."""

    error_code = "ITEM_REJECTED"

    def __init__(self, resource: str, key: str, reason: str) -> None:
        """Initialize item rejected error.

        Args:
            resource: Resource type being created.
            key: Catalog key of the rejected resource.
            reason: Rejection message from the store.
        """
        super().__init__(
            f"Store rejected {resource} '{key}': {reason}",
            details={"resource": resource, "key": key, "reason": reason},
        )
        self.resource = resource
        self.key = key
        self.reason = reason


class ChannelClosedError(StoreSeedError):
    """Raised when publishing to a channel that already ended."""

    def __init__(self) -> None:
        """Initialize channel closed error."""
        super().__init__("Progress channel already received a terminal event")
