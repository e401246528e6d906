"""
Domain errors raised by the table repository.

Every structured failure the table service reports reaches callers as a
`RepositoryError` (or one of its subclasses) carrying three read-only fields:

- message: human-friendly text (safe to show to clients)
- code: the backend error code, e.g. "EntityAlreadyExists"; callers branch on it
  to decide retries and idempotence
- status_code: the HTTP status the backend answered with

These objects are produced by the error classifier only
(`table_storage.exceptions.classifier`); application code catches them.
"""

from typing import Any

# canonical repository-level exception

class RepositoryError(Exception):
    """
    Base exception for classified table-store failures.

    Attributes are exposed through read-only properties; an error is a value
    that travels to the caller unchanged.
    """

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self._message = message
        self._code = code
        self._status_code = status_code

    @property
    def message(self) -> str:
        return self._message

    @property
    def code(self) -> str | None:
        return self._code

    @property
    def status_code(self) -> int | None:
        return self._status_code

    def __str__(self) -> str:
        if self._code:
            return f"{self._message} (code: {self._code})"
        return self._message

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self._message!r}, "
            f"code={self._code!r}, status_code={self._status_code!r})"
        )

    # ------------------------
    # structured payload for API responses
    # ------------------------
    def to_payload(self) -> dict[str, Any]:
        """
        Return a JSON-serializable dict for callers that surface errors over HTTP:

            {"detail": "A human-friendly message", "code": "EntityAlreadyExists"}
        """
        payload: dict[str, Any] = {"detail": self._message}
        if self._code:
            payload["code"] = self._code
        return payload

    def http_status(self) -> int:
        """
        The status the backend reported, or 400 when none was available.
        """
        return self._status_code or 400


# One subclass per known backend code, so callers can `except EntityAlreadyExistsError`
# instead of comparing strings. The classifier table binds codes to these classes.

class TableAlreadyExistsError(RepositoryError):
    """The table being created already exists."""


class TableNotFoundError(RepositoryError):
    """The target table does not exist."""


class TableBeingDeletedError(RepositoryError):
    """The table is being deleted; it cannot be used or recreated yet."""


class EntityNotFoundError(RepositoryError):
    """No entity exists for the given partition key and row key."""


class EntityAlreadyExistsError(RepositoryError):
    """An entity with the same partition key and row key already exists."""


class InvalidInputError(RepositoryError):
    """The service rejected the request payload (bad property name, type or size)."""


__all__ = [
    "RepositoryError",
    "TableAlreadyExistsError",
    "TableNotFoundError",
    "TableBeingDeletedError",
    "EntityNotFoundError",
    "EntityAlreadyExistsError",
    "InvalidInputError",
]
