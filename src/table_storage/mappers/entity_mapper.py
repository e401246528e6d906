"""
Entity mappers: translate between the record the table returns and the
caller's entity type `T`.

A record read from the service carries more than the caller wrote. Service
metadata (etag, timestamp, and for writes `date`, `version`, `request_id`, ...)
arrives as a dict under `METADATA_KEY`, apart from the properties, so it never
shadows a property of the same name. The raw wire shape may also carry the
`Timestamp` system property and OData annotations (`odata.etag`,
`Price@odata.type`). Mappers drop all of that first, then build `T` from what is
left. A record with nothing left is no entity at all and loads as None.

Two mappers ship with the package:

| Mapper              | T                         | Typical use                         |
| ------------------- | ------------------------- | ----------------------------------- |
| DictEntityMapper    | dict[str, Any]            | schemaless access, scripts, tests   |
| ModelEntityMapper   | a TableEntity subclass    | typed application entities          |

Write your own by subclassing `EntityMapper` and implementing `_build` / `dump`.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Iterable, Mapping, TypeVar

from pydantic import BaseModel

from table_storage.backends.base import METADATA_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

# Properties the service maintains itself; callers cannot write them.
SYSTEM_PROPERTIES = frozenset({"Timestamp"})

_ODATA_PREFIX = "odata."
_ODATA_TYPE_SUFFIX = "@odata.type"


def is_metadata_field(name: str) -> bool:
    """True for top-level names that are service bookkeeping rather than entity properties."""
    return (
        name == METADATA_KEY
        or name in SYSTEM_PROPERTIES
        or name.startswith(_ODATA_PREFIX)
        or name.endswith(_ODATA_TYPE_SUFFIX)
    )


class EntityMapper(Generic[T]):
    """
    Base mapper. Subclasses implement `_build()` (clean record -> T) and `dump()`.

    Args:
        keep_fields: metadata names the entity wants to see (e.g. "etag" for
            optimistic concurrency). Their values are copied from the record's
            metadata onto the clean record, replacing a property of the same name,
            and they are left out of dumps.
    """

    def __init__(self, keep_fields: Iterable[str] = ()):
        self.keep_fields = frozenset(keep_fields)

    def strip_metadata(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Return a new dict without backend metadata. `record` is not modified."""
        clean = {name: value for name, value in record.items() if not is_metadata_field(name)}
        metadata = record.get(METADATA_KEY) or {}
        for name in self.keep_fields:
            if name in metadata:
                clean[name] = metadata[name]
        return clean

    def load(self, record: Mapping[str, Any] | None) -> T | None:
        """Map a stored record to T, or None when it holds no entity data."""
        if not record:
            return None
        clean = self.strip_metadata(record)
        if not clean:
            return None
        return self._build(clean)

    def _build(self, record: dict[str, Any]) -> T:
        raise NotImplementedError

    def dump(self, entity: T) -> dict[str, Any]:
        """Flat write record for `entity`."""
        raise NotImplementedError

    def _drop_kept(self, data: dict[str, Any]) -> dict[str, Any]:
        for name in self.keep_fields:
            data.pop(name, None)
        return data


class DictEntityMapper(EntityMapper[dict[str, Any]]):
    """Plain dictionaries in, plain dictionaries out."""

    def _build(self, record: dict[str, Any]) -> dict[str, Any]:
        return record

    def dump(self, entity: Mapping[str, Any]) -> dict[str, Any]:
        return self._drop_kept(dict(entity))


class ModelEntityMapper(EntityMapper[ModelT]):
    """
    Pydantic models (normally `TableEntity` subclasses).

    Model fields are plain entity properties, whatever their names; a model that
    wants the etag declares `etag: str | None = None` and passes
    `keep_fields=["etag"]`. Dumps use the aliases (`PartitionKey`, `RowKey`) and
    leave out optional fields that were never set, so a merge update does not
    blank out stored properties.
    """

    def __init__(self, model: type[ModelT], keep_fields: Iterable[str] = ()):
        super().__init__(keep_fields=keep_fields)
        self.model = model

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model.__name__})"

    def _build(self, record: dict[str, Any]) -> ModelT:
        return self.model.model_validate(record)

    def dump(self, entity: ModelT) -> dict[str, Any]:
        data = entity.model_dump(by_alias=True)
        unset_fields = set(type(entity).model_fields) - entity.model_fields_set
        for name in unset_fields:
            field = type(entity).model_fields[name]
            wire_name = field.alias or name
            if data.get(wire_name) is None:
                data.pop(wire_name, None)
        return self._drop_kept(data)
