"""
Connection manager: one service handle and one entity handle per
(table name, connection string), built on first use and reused afterwards.

Handles are created lazily so importing and wiring a repository never dials
the service, and memoized so every operation shares the same HTTP session.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

from table_storage.backends.base import TableEntityHandle, TableServiceHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

ServiceHandleFactory = Callable[[], TableServiceHandle]
EntityHandleFactory = Callable[[], TableEntityHandle]


class Lazy(Generic[T]):
    """
    Construct-once cell.

    `get()` calls the factory on first access and caches the result. The lock
    makes construction happen at most once even when several threads race on
    first access; after that, reads take the lock-free fast path.

    A factory that raises leaves the cell empty, so the error surfaces again
    on the next access instead of being cached.
    """

    def __init__(self, factory: Callable[[], T]):
        self._factory = factory
        self._value: T | None = None
        self._initialized = False
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get(self) -> T:
        if self._initialized:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._initialized:
                self._value = self._factory()
                self._initialized = True
        return self._value  # type: ignore[return-value]

    def peek(self) -> T | None:
        """Return the value if it was built, without building it."""
        return self._value if self._initialized else None


class TableConnectionManager:
    """
    Owns the two backend handles for one table.

    Args:
        connection_string: storage connection string (never logged unmasked).
        table_name: the table the entity handle is bound to.
        allow_insecure_connection: permit plain-HTTP endpoints (local emulators).
            Keyword-only and without a default: the caller must decide.
        service_factory / entity_factory: override how handles are built.
            Defaults build Azure SDK clients from the connection string.

    Construction errors (malformed connection string, disallowed HTTP endpoint)
    propagate from the first accessor call; there is nothing to recover.
    """

    def __init__(
        self,
        connection_string: str,
        table_name: str,
        *,
        allow_insecure_connection: bool,
        service_factory: ServiceHandleFactory | None = None,
        entity_factory: EntityHandleFactory | None = None,
    ):
        self.table_name = table_name
        self.allow_insecure_connection = allow_insecure_connection
        self._connection_string = connection_string

        self._service: Lazy[TableServiceHandle] = Lazy(service_factory or self._build_service_handle)
        self._entity: Lazy[TableEntityHandle] = Lazy(entity_factory or self._build_entity_handle)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(table_name={self.table_name!r}, "
            f"allow_insecure_connection={self.allow_insecure_connection!r})"
        )

    # ---------- accessors ----------
    def service_handle(self) -> TableServiceHandle:
        """Memoized service-level handle (table administration)."""
        return self._service.get()

    def entity_handle(self) -> TableEntityHandle:
        """Memoized entity-level handle bound to `table_name`."""
        return self._entity.get()

    async def aclose(self) -> None:
        """Close whichever handles were built. Never builds a handle."""
        for cell in (self._entity, self._service):
            handle = cell.peek()
            if handle is not None:
                await handle.close()

    # ---------- default factories ----------
    def _build_service_handle(self) -> TableServiceHandle:
        from table_storage.backends.azure import build_service_handle

        logger.debug("connection.service_handle.create", extra={"table": self.table_name})
        return build_service_handle(
            self._connection_string,
            allow_insecure_connection=self.allow_insecure_connection,
        )

    def _build_entity_handle(self) -> TableEntityHandle:
        from table_storage.backends.azure import build_entity_handle

        logger.debug("connection.entity_handle.create", extra={"table": self.table_name})
        return build_entity_handle(
            self._connection_string,
            self.table_name,
            allow_insecure_connection=self.allow_insecure_connection,
        )
