"""
Pydantic base for typed table entities.

Subclass `TableEntity` and declare your own properties; the key fields are
inherited. Field names are pythonic (`partition_key`), the wire names are the
service's (`PartitionKey`), and both are accepted on input:

    class Conversation(TableEntity):
        title: str | None = None
        message_count: int = 0

    Conversation(partition_key="user-1", row_key="c-42", title="Hi")
    Conversation.model_validate({"PartitionKey": "user-1", "RowKey": "c-42"})

Unknown properties coming back from the table are kept (`extra="allow"`), so a
round trip never silently loses columns written by another client.
"""

from pydantic import BaseModel, ConfigDict, Field

from .keys import PARTITION_KEY_FIELD, ROW_KEY_FIELD, EntityKey


class TableEntity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    partition_key: str = Field(..., alias=PARTITION_KEY_FIELD, min_length=1)
    row_key: str = Field(..., alias=ROW_KEY_FIELD, min_length=1)

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.partition_key, self.row_key)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(partition_key={self.partition_key!r}, row_key={self.row_key!r})>"
