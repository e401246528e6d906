"""
Wiring: build a ready-to-use repository from settings.

    repo = create_table_repository(ModelEntityMapper(Conversation))

Explicit arguments win over settings, so one process can serve several tables
from a single configuration:

    audit = create_table_repository(table_name="auditlog", create_table_if_not_exists=True)
"""

from __future__ import annotations

import logging
from typing import TypeVar

from table_storage.config import Settings, get_settings
from table_storage.connection.manager import TableConnectionManager
from table_storage.mappers.entity_mapper import EntityMapper
from table_storage.repositories.table_repository import RepositoryOptions, TableRepository
from table_storage.validators.config_validators import validate_table_name

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT")


def create_table_repository(
    mapper: EntityMapper[EntityT] | None = None,
    *,
    table_name: str | None = None,
    settings: Settings | None = None,
    create_table_if_not_exists: bool | None = None,
) -> TableRepository[EntityT]:
    """
    Build a TableConnectionManager and a TableRepository bound to it.

    Args:
        mapper: entity mapper; the repository defaults to plain dicts.
        table_name: overrides TABLE_STORAGE_TABLE_NAME.
        settings: defaults to the cached `get_settings()`.
        create_table_if_not_exists: overrides TABLE_STORAGE_CREATE_TABLE_IF_NOT_EXISTS.

    No connection is opened here; handles are built on the first operation.
    """
    settings = settings or get_settings()
    name = validate_table_name(table_name) if table_name else settings.TABLE_STORAGE_TABLE_NAME
    if create_table_if_not_exists is None:
        create_table_if_not_exists = settings.TABLE_STORAGE_CREATE_TABLE_IF_NOT_EXISTS

    manager = TableConnectionManager(
        settings.TABLE_STORAGE_CONNECTION_STRING,
        name,
        allow_insecure_connection=settings.TABLE_STORAGE_ALLOW_INSECURE_CONNECTION,
    )
    logger.debug(
        "dependencies.repository.create",
        extra={
            "table": name,
            "allow_insecure_connection": settings.TABLE_STORAGE_ALLOW_INSECURE_CONNECTION,
            "create_table_if_not_exists": create_table_if_not_exists,
        },
    )
    return TableRepository(
        manager,
        name,
        mapper,
        RepositoryOptions(create_table_if_not_exists=create_table_if_not_exists),
    )
