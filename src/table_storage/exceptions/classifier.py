r"""
Backend error classification.

Turns a raw `TableBackendError` into a domain `RepositoryError`:

    TableBackendError (raw)  ->  ErrorDetail (decoded once)  ->  RepositoryError subclass (typed)

Two outcomes only:

1. The error message is not a JSON document. The call failed before the service
   could tell us anything structured, so the original exception is re-raised
   unchanged and the caller sees exactly what the transport produced.
2. Otherwise the detail code is looked up in `ERROR_RULES`. Known codes get a
   fixed, table-aware message and a dedicated subclass; unknown codes keep the
   raw backend message in a plain `RepositoryError`. The status code is always
   the one the backend reported.

`ERROR_RULES` is the only place codes are listed. Supporting a new backend code
means adding one row there; call sites never change.

| Backend code        | Exception                 |
| ------------------- | ------------------------- |
| TableAlreadyExists  | TableAlreadyExistsError   |
| TableNotFound       | TableNotFoundError        |
| ResourceNotFound    | EntityNotFoundError       |
| InvalidInput        | InvalidInputError         |
| TableBeingDeleted   | TableBeingDeletedError    |
| EntityAlreadyExists | EntityAlreadyExistsError  |
| anything else       | RepositoryError           |
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Union

from table_storage.backends.base import TableBackendError

from .base import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    InvalidInputError,
    RepositoryError,
    TableAlreadyExistsError,
    TableBeingDeletedError,
    TableNotFoundError,
)
from .error_detail import ErrorDetail

logger = logging.getLogger(__name__)


class TableErrorCode(str, Enum):
    TABLE_ALREADY_EXISTS = "TableAlreadyExists"
    TABLE_NOT_FOUND = "TableNotFound"
    RESOURCE_NOT_FOUND = "ResourceNotFound"
    INVALID_INPUT = "InvalidInput"
    TABLE_BEING_DELETED = "TableBeingDeleted"
    ENTITY_ALREADY_EXISTS = "EntityAlreadyExists"


def _invalid_input_message(table_name: str, detail: ErrorDetail) -> str:
    # The service explains InvalidInput over several lines; keep every one, in order.
    message = "Error creating entity:"
    for line in detail.lines:
        message += line
    return message


# A message is either a template formatted with `table`, or a callable for codes
# whose text depends on the detail body.
MessageTemplate = Union[str, Callable[[str, ErrorDetail], str]]

ERROR_RULES: dict[TableErrorCode, tuple[type[RepositoryError], MessageTemplate]] = {
    TableErrorCode.TABLE_ALREADY_EXISTS: (
        TableAlreadyExistsError,
        "Error creating table. Table {table} already exists.",
    ),
    TableErrorCode.TABLE_NOT_FOUND: (
        TableNotFoundError,
        "Error creating entity. Table {table} Not Found. Is it created?",
    ),
    TableErrorCode.RESOURCE_NOT_FOUND: (
        EntityNotFoundError,
        "Error processing entity. Entity not found.",
    ),
    TableErrorCode.INVALID_INPUT: (
        InvalidInputError,
        _invalid_input_message,
    ),
    TableErrorCode.TABLE_BEING_DELETED: (
        TableBeingDeletedError,
        "Error creating entity. Table {table} is being deleted. Try again later.",
    ),
    TableErrorCode.ENTITY_ALREADY_EXISTS: (
        EntityAlreadyExistsError,
        "Error creating entity. Entity with the same partitionKey and rowKey already exists.",
    ),
}

_CODES_BY_VALUE = {code.value: code for code in TableErrorCode}


def _render(template: MessageTemplate, table_name: str, detail: ErrorDetail) -> str:
    if callable(template):
        return template(table_name, detail)
    return template.format(table=table_name)


def classify_backend_error(exc: TableBackendError, table_name: str) -> RepositoryError:
    """
    Map a raw backend error to the domain error the caller should see.

    Args:
        exc: the error raised by a backend handle.
        table_name: interpolated into table-related messages.

    Returns:
        A RepositoryError (subclass for known codes) carrying message, code and status_code.

    Raises:
        TableBackendError: `exc` itself, unchanged, when its message is not structured.
    """
    detail = ErrorDetail.from_backend_error(exc)
    if detail is None:
        # Not something the service said; do not pretend we understood it.
        logger.debug(
            "classifier.unstructured_error",
            extra={"table": table_name, "status_code": exc.status_code},
        )
        raise exc

    code = _CODES_BY_VALUE.get(detail.code)

    if code is None:
        # Unknown code: warn so it surfaces in monitoring, keep the raw text at DEBUG only.
        logger.warning(
            "classifier.unknown_code",
            extra={"table": table_name, "code": detail.code, "status_code": exc.status_code},
        )
        logger.debug("classifier.unknown_code_raw", extra={"table": table_name, "raw": exc.message})
        return RepositoryError(exc.message, code=detail.code or None, status_code=exc.status_code)

    error_cls, template = ERROR_RULES[code]
    message = _render(template, table_name, detail)

    # Known codes are expected outcomes (duplicates, missing rows); INFO, no stack trace.
    logger.info(
        "classifier.known_code",
        extra={"table": table_name, "code": code.value, "status_code": exc.status_code},
    )
    if code is TableErrorCode.INVALID_INPUT:
        for line in detail.lines:
            logger.debug("classifier.invalid_input_detail", extra={"table": table_name, "line": line})

    return error_cls(message, code=code.value, status_code=exc.status_code)
