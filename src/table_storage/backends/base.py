"""
Backend capability consumed by the repository.

The repository never talks to a network client directly. It asks the connection
manager for two handles and calls the methods declared here:

    TableServiceHandle   table administration (create_table)
    TableEntityHandle    row operations on one table

Any object with these coroutine methods works (structural typing via Protocol):
the Azure adapter in `table_storage.backends.azure`, the in-memory store used by
the test suite, or a caller's own fake.

Returned records
----------------
Records returned by a handle hold the entity properties at top level and the
service metadata, if any, as a dict under `METADATA_KEY`.

Failure contract
----------------
A handle reports a failure the service answered with by raising
`TableBackendError`, whose `message` is the service's error body. Failures that
happen before the service could answer (DNS, TLS, timeouts) are raised as
whatever the transport raises; the repository lets those through untouched.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Literal, Mapping, Protocol, runtime_checkable

# Flat wire shape of one entity: field name -> scalar value.
TableRecord = dict[str, Any]

# Reserved member of a returned record holding service metadata (etag, timestamp,
# date, version, ...). Entity properties and service metadata may share names, so
# the metadata never sits next to the properties.
METADATA_KEY = "__metadata__"

# What delete returns: backend-defined response metadata (etag, date, request id, ...).
DeleteResult = Mapping[str, Any]

UpdateMode = Literal["merge", "replace"]


class TableBackendError(Exception):
    """
    Raw error raised by a backend handle when the service returned an error response.

    Attributes:
        message: the error body exactly as the service sent it (a JSON document
                 for table services; anything else is treated as unparseable).
        status_code: HTTP status of the response, when known.
        details: optional pre-decoded error object. When present it must look like
                 {"odataError": {"code": "...", "message": ...}}.
    """

    def __init__(self, message: str, *, status_code: int | None = None,
                 details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code!r}, message={self.message!r})"


@runtime_checkable
class TableServiceHandle(Protocol):
    """Administrative handle: table-level operations."""

    async def create_table(self, table_name: str) -> Any: ...

    async def close(self) -> None: ...


@runtime_checkable
class TableEntityHandle(Protocol):
    """Entity handle bound to a single table."""

    async def get_entity(self, partition_key: str, row_key: str) -> TableRecord: ...

    def list_entities(
        self,
        *,
        query_filter: str | None = None,
        parameters: Mapping[str, Any] | None = None,
        select: list[str] | None = None,
        results_per_page: int | None = None,
    ) -> AsyncIterator[TableRecord]: ...

    async def create_entity(self, entity: TableRecord) -> TableRecord: ...

    async def update_entity(self, entity: TableRecord, mode: UpdateMode = "merge") -> TableRecord: ...

    async def delete_entity(self, partition_key: str, row_key: str) -> DeleteResult: ...

    async def close(self) -> None: ...
