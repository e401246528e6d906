r"""
Single import point for key and entity types:

    from table_storage.models import EntityKey, TableEntity, EntityPatch

`EntityPatch` is the partial-write shape accepted by `TableRepository.update`:
any mapping of property names to values. Its key fields are optional; the
repository fills them from the call arguments when they are missing.
"""

from typing import Any, Mapping

from .entity import TableEntity
from .keys import PARTITION_KEY_FIELD, ROW_KEY_FIELD, EntityKey

EntityPatch = Mapping[str, Any]

__all__ = [
    "EntityKey",
    "EntityPatch",
    "TableEntity",
    "PARTITION_KEY_FIELD",
    "ROW_KEY_FIELD",
]
