"""Specific error types for the companion core."""

from .base import (
    ApplicationError,
    ErrorCode,
    ErrorLevel,
    ServiceErrorDetails,
    StorageErrorDetails,
    ValidationErrorDetails,
)


class TransportError(ApplicationError):
    """Failure of the underlying channel to the remote agent."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            level=ErrorLevel.WARNING,
            details=details or ServiceErrorDetails(
                source="channel",
                operation="transport",
                service_name="agent"
            )
        )


class ChannelUnavailableError(ApplicationError):
    """Raised when sending while no connected channel exists."""

    def __init__(self, message: str = "No connected channel", details: dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.CHANNEL_UNAVAILABLE,
            level=ErrorLevel.WARNING,
            details=details or {"source": "connection", "operation": "send"}
        )


class PersistenceError(ApplicationError):
    """A snapshot could not be written or removed."""

    def __init__(self, message: str, details: StorageErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.STORAGE_OPERATION,
            level=ErrorLevel.WARNING,
            details=details or StorageErrorDetails(source="snapshot_store", operation="write")
        )


class SnapshotCorruptError(ApplicationError):
    """A stored snapshot exists but is not valid JSON."""

    def __init__(self, message: str, details: StorageErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.STORAGE_CORRUPT,
            level=ErrorLevel.WARNING,
            details=details or StorageErrorDetails(source="snapshot_store", operation="read")
        )


class BackupFormatError(ApplicationError):
    """A backup document could not be imported."""

    def __init__(self, message: str, details: ValidationErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_INPUT,
            level=ErrorLevel.ERROR,
            details=details or ValidationErrorDetails(source="entity_store", operation="import_backup")
        )


class SnapshotEncodeError(ApplicationError):
    """A value could not be turned into snapshot JSON; nothing was committed."""

    def __init__(self, message: str, details: StorageErrorDetails | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_INPUT,
            level=ErrorLevel.ERROR,
            details=details or StorageErrorDetails(source="snapshot_store", operation="encode")
        )
