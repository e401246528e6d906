"""
Azure Table Storage handles built on `azure-data-tables` (async clients).

The adapters do two things on top of the SDK clients:

1. Normalize results to records. The SDK keeps the etag/timestamp of a read
   entity in `entity.metadata` and returns only response metadata from writes;
   the adapters return the entity properties at top level and that metadata
   under `METADATA_KEY`, so a property called `etag` or `version` is never
   overwritten by service bookkeeping.
2. Translate service error responses into `TableBackendError` carrying the raw
   JSON error body and the status code. Errors raised before a response exists
   (`ServiceRequestError`, `ServiceResponseError`, timeouts) are not touched.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, AsyncIterator, Iterator, Mapping

from azure.core.exceptions import HttpResponseError, ResponseNotReadError
from azure.data.tables import UpdateMode as AzureUpdateMode
from azure.data.tables.aio import TableClient, TableServiceClient

from table_storage.connection.strings import ensure_transport_allowed, redact_connection_string
from .base import METADATA_KEY, DeleteResult, TableBackendError, TableRecord, UpdateMode

logger = logging.getLogger(__name__)

_UPDATE_MODES = {
    "merge": AzureUpdateMode.MERGE,
    "replace": AzureUpdateMode.REPLACE,
}


def _response_body(exc: HttpResponseError) -> str:
    try:
        return exc.response.text()
    except ResponseNotReadError:
        # Streamed responses are not buffered; the SDK message still carries the error text.
        return exc.message


def _with_metadata(properties: Mapping[str, Any], metadata: Mapping[str, Any] | None) -> TableRecord:
    return {**properties, METADATA_KEY: dict(metadata or {})}


@contextmanager
def _service_errors() -> Iterator[None]:
    """Re-raise service error responses as TableBackendError with the raw body."""
    try:
        yield
    except HttpResponseError as exc:
        if exc.response is None:
            raise
        raise TableBackendError(
            _response_body(exc),
            status_code=exc.status_code,
        ) from exc


class AzureTableServiceHandle:
    """Service-level handle wrapping `azure.data.tables.aio.TableServiceClient`."""

    def __init__(self, client: TableServiceClient):
        self._client = client

    async def create_table(self, table_name: str) -> Any:
        with _service_errors():
            return await self._client.create_table(table_name)

    async def close(self) -> None:
        await self._client.close()


class AzureTableEntityHandle:
    """Entity handle wrapping `azure.data.tables.aio.TableClient` for one table."""

    def __init__(self, client: TableClient):
        self._client = client

    @property
    def table_name(self) -> str:
        return self._client.table_name

    async def get_entity(self, partition_key: str, row_key: str) -> TableRecord:
        with _service_errors():
            entity = await self._client.get_entity(partition_key, row_key)
        return _with_metadata(entity, entity.metadata)

    async def list_entities(
        self,
        *,
        query_filter: str | None = None,
        parameters: Mapping[str, Any] | None = None,
        select: list[str] | None = None,
        results_per_page: int | None = None,
    ) -> AsyncIterator[TableRecord]:
        """
        Yield every entity of the listing, following continuation tokens lazily.

        The filter string is passed to the service as-is (OData syntax); `parameters`
        fills `@name` placeholders in it.
        """
        if query_filter:
            pages = self._client.query_entities(
                query_filter,
                parameters=dict(parameters) if parameters else None,
                select=select,
                results_per_page=results_per_page,
            )
        else:
            pages = self._client.list_entities(select=select, results_per_page=results_per_page)

        with _service_errors():
            async for entity in pages:
                yield _with_metadata(entity, entity.metadata)

    async def create_entity(self, entity: TableRecord) -> TableRecord:
        with _service_errors():
            metadata = await self._client.create_entity(entity)
        return _with_metadata(entity, metadata)

    async def update_entity(self, entity: TableRecord, mode: UpdateMode = "merge") -> TableRecord:
        """
        Write `entity`, then re-read it so callers get the stored entity.

        A merge response carries only an etag. When the entity is gone by the time
        of the re-read (a concurrent delete), the write still succeeded: the written
        properties are returned with the write's response metadata.
        """
        with _service_errors():
            metadata = await self._client.update_entity(entity, mode=_UPDATE_MODES[mode])
        try:
            return await self.get_entity(entity["PartitionKey"], entity["RowKey"])
        except TableBackendError as exc:
            if exc.status_code != 404:
                raise
            logger.warning(
                "backend.azure.update.reread_missing",
                extra={"table": self.table_name, "status_code": exc.status_code},
            )
            return _with_metadata(entity, metadata)

    async def delete_entity(self, partition_key: str, row_key: str) -> DeleteResult:
        captured: dict[str, Any] = {}

        def _capture(pipeline_response) -> None:
            headers = pipeline_response.http_response.headers
            captured.update(
                request_id=headers.get("x-ms-request-id"),
                version=headers.get("x-ms-version"),
                date=headers.get("Date"),
            )

        with _service_errors():
            await self._client.delete_entity(partition_key, row_key, raw_response_hook=_capture)
        return captured

    async def close(self) -> None:
        await self._client.close()


def build_service_handle(connection_string: str, *, allow_insecure_connection: bool) -> AzureTableServiceHandle:
    """
    Construct the service handle. No network traffic happens until the first call.

    Raises:
        ValueError: the connection string is empty/malformed, or names a non-TLS
                    endpoint while insecure connections are not allowed.
    """
    ensure_transport_allowed(connection_string, allow_insecure_connection=allow_insecure_connection)
    logger.debug(
        "backend.azure.service_handle.build",
        extra={"connection": redact_connection_string(connection_string)},
    )
    return AzureTableServiceHandle(TableServiceClient.from_connection_string(connection_string))


def build_entity_handle(connection_string: str, table_name: str, *,
                        allow_insecure_connection: bool) -> AzureTableEntityHandle:
    """Construct the entity handle for `table_name`; same failure modes as build_service_handle()."""
    ensure_transport_allowed(connection_string, allow_insecure_connection=allow_insecure_connection)
    logger.debug(
        "backend.azure.entity_handle.build",
        extra={"table": table_name, "connection": redact_connection_string(connection_string)},
    )
    return AzureTableEntityHandle(TableClient.from_connection_string(connection_string, table_name))
