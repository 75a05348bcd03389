from .base import ApplicationError, ErrorCode, ErrorLevel
from .errors import (
    BackupFormatError,
    ChannelUnavailableError,
    PersistenceError,
    SnapshotCorruptError,
    SnapshotEncodeError,
    TransportError,
)
from .retry import ExponentialBackoff, FixedInterval, ReconnectPolicy
