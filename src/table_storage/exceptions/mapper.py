import logging
from contextlib import asynccontextmanager

from table_storage.backends.base import TableBackendError

from .classifier import classify_backend_error

logger = logging.getLogger(__name__)


# -----------------------
# Async context manager to DRY error handling in repositories
# -----------------------
@asynccontextmanager
async def backend_error_handler(table_name: str, operation: str | None = None):
    """
    Usage:
        async with backend_error_handler(self.table_name, "create"):
            ... backend calls that may raise TableBackendError ...

    A structured backend error is classified and raised as a RepositoryError,
    chained to the raw error (`raise ... from exc`). An unstructured one is
    re-raised by the classifier unchanged. Anything that is not a
    TableBackendError (transport failures, bugs) passes through untouched:
    there is no local recovery at this layer.
    """
    try:
        yield
    except TableBackendError as exc:
        domain_error = classify_backend_error(exc, table_name)
        logger.debug(
            "mapper.backend_error",
            extra={
                "table": table_name,
                "operation": operation,
                "code": domain_error.code,
                "status_code": domain_error.status_code,
            },
        )
        raise domain_error from exc
