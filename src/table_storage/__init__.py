r"""
table_storage: async repository over Azure Table Storage (and compatible emulators).

    from table_storage import TableConnectionManager, TableRepository, ModelEntityMapper

Most applications only need `create_table_repository()`, which reads the
connection string and table name from the environment (see `config.Settings`).
"""

from .connection import Lazy, TableConnectionManager
from .core.dependencies import create_table_repository
from .exceptions import (
    EntityAlreadyExistsError,
    EntityNotFoundError,
    InvalidInputError,
    RepositoryError,
    TableAlreadyExistsError,
    TableBeingDeletedError,
    TableNotFoundError,
)
from .mappers import DictEntityMapper, EntityMapper, ModelEntityMapper
from .models import EntityKey, EntityPatch, TableEntity
from .repositories import RepositoryOptions, TableRepository

__all__ = [
    "Lazy",
    "TableConnectionManager",
    "create_table_repository",
    "RepositoryError",
    "TableAlreadyExistsError",
    "TableNotFoundError",
    "TableBeingDeletedError",
    "EntityNotFoundError",
    "EntityAlreadyExistsError",
    "InvalidInputError",
    "EntityMapper",
    "DictEntityMapper",
    "ModelEntityMapper",
    "EntityKey",
    "EntityPatch",
    "TableEntity",
    "RepositoryOptions",
    "TableRepository",
]
