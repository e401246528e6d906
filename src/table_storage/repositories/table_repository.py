"""
Generic table repository providing CRUD over one table.

`TableRepository[T]` is the only thing application code talks to. It:

- asks the connection manager for backend handles (built once, on first use);
- converts between the stored flat record and `T` through an `EntityMapper[T]`;
- runs every backend call inside `backend_error_handler`, so a failure the
  service answered with always surfaces as a `RepositoryError` subclass.

Keys are checked before any I/O: an empty or non-string partition or row key
raises ValueError. Beyond the keys the repository does not retry, batch, or
validate entity shapes; whatever the caller's `T` enforces (pydantic validation
for `TableEntity` models) is the rest of the validation there is.

Example:

    manager = TableConnectionManager(conn_str, "conversations", allow_insecure_connection=False)
    repo = TableRepository(manager, "conversations", ModelEntityMapper(Conversation))

    created = await repo.create(Conversation(partition_key="user-1", row_key="c-1", title="Hi"))
    found = await repo.find("user-1", "c-1")
    await repo.update("user-1", "c-1", {"title": "Renamed"})
    await repo.delete("user-1", "c-1")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Generic, Mapping, TypeVar, Union

from table_storage.backends.base import DeleteResult, UpdateMode
from table_storage.connection.manager import TableConnectionManager
from table_storage.exceptions.base import EntityNotFoundError, RepositoryError, TableAlreadyExistsError
from table_storage.exceptions.mapper import backend_error_handler
from table_storage.mappers.entity_mapper import DictEntityMapper, EntityMapper
from table_storage.models import EntityKey, EntityPatch

EntityT = TypeVar("EntityT")

# Setup logging
logger = logging.getLogger(__name__)

_UPDATE_MODES = ("merge", "replace")


@dataclass(frozen=True)
class RepositoryOptions:
    """
    Per-repository behavior switches.

    Attributes:
        create_table_if_not_exists: provision the table before every `create()`;
            an already existing table counts as success.
    """

    create_table_if_not_exists: bool = False


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class TableRepository(Generic[EntityT]):
    """
    Generic repository for entities of type `EntityT` stored in one table.

    Type Parameters:
        EntityT: the entity type the mapper produces and accepts.
    """

    def __init__(
        self,
        manager: TableConnectionManager,
        table_name: str,
        mapper: EntityMapper[EntityT] | None = None,
        options: RepositoryOptions | None = None,
    ):
        """
        Initialize the repository.

        Args:
            manager: owner of the backend handles. Several repositories may share one.
            table_name: the table entities are stored in; also used in error messages.
            mapper: record <-> entity translation. Defaults to DictEntityMapper,
                so entities are plain dicts.
            options: behavior switches, see RepositoryOptions.
        """
        self.manager = manager
        self.table_name = table_name
        self.mapper: EntityMapper[EntityT] = mapper or DictEntityMapper()  # type: ignore[assignment]
        self.options = options or RepositoryOptions()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(table_name={self.table_name!r}, mapper={self.mapper!r})"

    def _log_extra(self, operation: str, key: EntityKey | None = None, **fields: Any) -> dict[str, Any]:
        extra: dict[str, Any] = {"table": self.table_name, "operation": operation}
        if key is not None:
            extra["partition_key"] = key.partition_key
            extra["row_key"] = key.row_key
        extra.update(fields)
        return extra

    def _load_stored(self, operation: str, stored: Mapping[str, Any]) -> EntityT:
        entity = self.mapper.load(stored)
        if entity is None:
            raise RepositoryError(f"Error processing entity. {operation} returned no entity data.")
        return entity

    # =================================================================================================================
    # Table provisioning
    # =================================================================================================================

    async def create_table_if_not_exists(self, table_name: str | None = None) -> bool:
        """
        Create the table.

        Args:
            table_name: table to create; defaults to the repository's table.

        Returns:
            True once the service confirmed the table was created.

        Raises:
            TableAlreadyExistsError: the table already exists (code "TableAlreadyExists").
            RepositoryError: any other structured service failure.
        """
        name = table_name or self.table_name
        logger.debug("repo.create_table.start", extra=self._log_extra("create_table", table_to_create=name))
        start = time.perf_counter()

        async with backend_error_handler(name, "create_table"):
            await self.manager.service_handle().create_table(name)

        logger.info(
            "repo.create_table.success",
            extra=self._log_extra("create_table", table_to_create=name, duration_ms=_elapsed_ms(start)),
        )
        return True

    # =================================================================================================================
    # Read operations
    # =================================================================================================================

    async def find(self, partition_key: str, row_key: str) -> EntityT | None:
        """
        Point lookup by (partition key, row key).

        Returns:
            The mapped entity, or None when the entity does not exist or holds no
            data once backend metadata is stripped. A stored entity made only of
            metadata is therefore indistinguishable from a missing one.

        Raises:
            ValueError: an empty or non-string key part.
            RepositoryError: any structured service failure other than "not found".
        """
        key = EntityKey(partition_key, row_key)
        extra = self._log_extra("find", key)
        logger.debug("repo.find.start", extra=extra)
        start = time.perf_counter()

        try:
            async with backend_error_handler(self.table_name, "find"):
                record = await self.manager.entity_handle().get_entity(key.partition_key, key.row_key)
        except EntityNotFoundError:
            # Absence is an answer, not a failure.
            logger.debug("repo.find.not_found", extra=extra)
            return None

        entity = self.mapper.load(record)
        logger.debug(
            "repo.find.success",
            extra={**extra, "found": entity is not None, "duration_ms": _elapsed_ms(start)},
        )
        return entity

    async def find_all(
        self,
        query_filter: str | None = None,
        *,
        parameters: Mapping[str, Any] | None = None,
        select: list[str] | None = None,
        results_per_page: int | None = None,
    ) -> list[EntityT]:
        """
        Return every entity matching `query_filter` (all entities when omitted).

        Args:
            query_filter: backend filter expression, passed through unmodified
                (OData for Azure, e.g. "PartitionKey eq @pk").
            parameters: values for `@name` placeholders in the filter.
            select: restrict the returned properties.
            results_per_page: page size requested from the service. Only affects
                how many round trips are made; the result is the same.

        Returns:
            All matching entities, in backend order. Every page is drained; there is
            no client-side cap, so an unfiltered call on a large table loads it all.
        """
        extra = self._log_extra("find_all", query_filter=query_filter)
        logger.debug("repo.find_all.start", extra=extra)
        start = time.perf_counter()

        entities: list[EntityT] = []
        async with backend_error_handler(self.table_name, "find_all"):
            listing = self.manager.entity_handle().list_entities(
                query_filter=query_filter,
                parameters=parameters,
                select=select,
                results_per_page=results_per_page,
            )
            async for record in listing:
                entity = self.mapper.load(record)
                if entity is not None:
                    entities.append(entity)

        logger.debug(
            "repo.find_all.success",
            extra={**extra, "count": len(entities), "duration_ms": _elapsed_ms(start)},
        )
        return entities

    # =================================================================================================================
    # Write operations
    # =================================================================================================================

    async def create(self, entity: EntityT) -> EntityT:
        """
        Insert a new entity.

        When `options.create_table_if_not_exists` is set, the table is provisioned
        first; finding it already there is fine.

        Returns:
            The stored entity as the service returned it, mapped back to EntityT.

        Raises:
            ValueError: the record lacks a valid PartitionKey or RowKey.
            EntityAlreadyExistsError: an entity with the same keys exists.
            TableNotFoundError: the table does not exist (and auto-provisioning is off).
            TableBeingDeletedError: the table is being deleted.
            InvalidInputError: the service rejected the record.
            RepositoryError: any other structured service failure. Also raised when the
                service returns no entity data for the new entity.
        """
        record = self.mapper.dump(entity)
        key = EntityKey.from_record(record)

        if self.options.create_table_if_not_exists:
            try:
                await self.create_table_if_not_exists()
            except TableAlreadyExistsError:
                logger.debug("repo.create.table_exists", extra=self._log_extra("create", key))

        extra = self._log_extra(
            "create",
            key,
            # keys only; values may be sensitive
            provided_keys=sorted(record.keys()),
        )
        logger.debug("repo.create.start", extra=extra)
        start = time.perf_counter()

        async with backend_error_handler(self.table_name, "create"):
            stored = await self.manager.entity_handle().create_entity(record)

        logger.info("repo.create.success", extra={**extra, "duration_ms": _elapsed_ms(start)})
        return self._load_stored("create", stored)

    async def update(
        self,
        partition_key: str,
        row_key: str,
        entity: Union[EntityT, EntityPatch],
        *,
        mode: UpdateMode = "merge",
    ) -> EntityT:
        """
        Update an existing entity.

        Args:
            partition_key / row_key: the entity to update.
            entity: a full entity, or a patch (any mapping of property names to
                values). The caller's object is never modified.
            mode: "merge" keeps stored properties absent from the write;
                "replace" overwrites the whole entity.

        The key fields of the write record come from `entity` when it carries them
        and from the arguments otherwise.

        Returns:
            The entity as stored after the update.

        Raises:
            ValueError: unknown `mode`, or an empty or non-string key part.
            EntityNotFoundError: nothing stored under those keys.
            RepositoryError: any other structured service failure, or no entity data
                in the service's answer.
        """
        if mode not in _UPDATE_MODES:
            raise ValueError(f"mode must be one of {_UPDATE_MODES}, got {mode!r}")

        if isinstance(entity, Mapping):
            # metadata the mapper exposes is never written back as a property
            record = {name: value for name, value in entity.items() if name not in self.mapper.keep_fields}
        else:
            record = self.mapper.dump(entity)

        for field, value in EntityKey(partition_key, row_key).as_record().items():
            record.setdefault(field, value)
        key = EntityKey.from_record(record)

        extra = self._log_extra("update", key, mode=mode, provided_keys=sorted(record.keys()))
        logger.debug("repo.update.start", extra=extra)
        start = time.perf_counter()

        async with backend_error_handler(self.table_name, "update"):
            stored = await self.manager.entity_handle().update_entity(record, mode)

        logger.info("repo.update.success", extra={**extra, "duration_ms": _elapsed_ms(start)})
        return self._load_stored("update", stored)

    async def delete(self, partition_key: str, row_key: str) -> DeleteResult:
        """
        Delete an entity unconditionally (no etag check).

        Returns:
            The backend's response metadata, unmapped.

        Raises:
            ValueError: an empty or non-string key part.
            EntityNotFoundError: nothing stored under those keys.
            RepositoryError: any other structured service failure.
        """
        key = EntityKey(partition_key, row_key)
        extra = self._log_extra("delete", key)
        logger.debug("repo.delete.start", extra=extra)
        start = time.perf_counter()

        async with backend_error_handler(self.table_name, "delete"):
            result = await self.manager.entity_handle().delete_entity(key.partition_key, key.row_key)

        logger.info("repo.delete.success", extra={**extra, "duration_ms": _elapsed_ms(start)})
        return result
