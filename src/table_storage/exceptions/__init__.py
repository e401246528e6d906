
# table_storage/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py                    # Domain errors (RepositoryError and one subclass per known code)
# │   ├── error_detail.py            # Decode the backend's OData error body once
# │   ├── classifier.py              # Backend code -> domain error table
# │   └── mapper.py                  # Async context manager wrapping every repository operation

from .base import (
    RepositoryError,
    TableAlreadyExistsError,
    TableNotFoundError,
    TableBeingDeletedError,
    EntityNotFoundError,
    EntityAlreadyExistsError,
    InvalidInputError,
)
from .classifier import TableErrorCode, classify_backend_error
from .error_detail import ErrorDetail
from .mapper import backend_error_handler

__all__ = [
    "RepositoryError",
    "TableAlreadyExistsError",
    "TableNotFoundError",
    "TableBeingDeletedError",
    "EntityNotFoundError",
    "EntityAlreadyExistsError",
    "InvalidInputError",
    "TableErrorCode",
    "classify_backend_error",
    "ErrorDetail",
    "backend_error_handler",
]
