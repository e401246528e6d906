"""
Composite key addressing one entity: (partition key, row key).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

PARTITION_KEY_FIELD = "PartitionKey"
ROW_KEY_FIELD = "RowKey"


@dataclass(frozen=True)
class EntityKey:
    """
    Identity of an entity within a table.

    Both parts must be non-empty strings.
    """

    partition_key: str
    row_key: str

    def __post_init__(self) -> None:
        for field_name in ("partition_key", "row_key"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"{field_name} must be a non-empty string, got {value!r}")

    def as_record(self) -> dict[str, str]:
        """Wire key fields, ready to merge into a write record."""
        return {PARTITION_KEY_FIELD: self.partition_key, ROW_KEY_FIELD: self.row_key}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> EntityKey:
        try:
            return cls(record[PARTITION_KEY_FIELD], record[ROW_KEY_FIELD])
        except KeyError as exc:
            raise ValueError(f"record has no {exc.args[0]} field") from exc

    def __str__(self) -> str:
        return f"{self.partition_key}/{self.row_key}"
