"""
Backend handles. `base` holds the capability the repository consumes;
`azure` holds the default implementation (imported lazily by the connection
manager so the protocols stay importable without the Azure SDK installed).
"""

from .base import (
    METADATA_KEY,
    DeleteResult,
    TableBackendError,
    TableEntityHandle,
    TableRecord,
    TableServiceHandle,
    UpdateMode,
)

__all__ = [
    "METADATA_KEY",
    "DeleteResult",
    "TableBackendError",
    "TableEntityHandle",
    "TableRecord",
    "TableServiceHandle",
    "UpdateMode",
]
