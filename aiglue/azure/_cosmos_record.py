# Copyright (c) Microsoft. All rights reserved.

import base64
import binascii
from typing import Any, ClassVar

from pydantic import Field

from .._memory import MemoryRecord, TagCollection
from .._pydantic import AIGlueBaseModel
from ..exceptions import MemoryRecordError

__all__ = ["AzureCosmosDbMemoryRecord"]


class AzureCosmosDbMemoryRecord(AIGlueBaseModel):
    """A memory record as stored in a Cosmos DB container.

    The id is base64 encoded because Cosmos DB rejects ids containing ``/``, ``\\``, ``?`` and ``#``,
    and the file id is used as the partition key.
    """

    VECTOR_FIELD: ClassVar[str] = "embedding"
    FILE_FIELD: ClassVar[str] = "file"
    TAGS_FIELD: ClassVar[str] = "tags"
    ID_FIELD: ClassVar[str] = "id"
    PAYLOAD_FIELD: ClassVar[str] = "payload"

    id: str
    file: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, list[str]] = Field(default_factory=dict)
    embedding: list[float] | None = None

    @property
    def partition_key(self) -> str:
        return self.file

    @classmethod
    def columns(cls, alias: str | None = None, with_embeddings: bool = False) -> str:
        """The comma separated column list for a SELECT, optionally prefixed with ``alias.``."""
        names = [cls.ID_FIELD, cls.FILE_FIELD, cls.TAGS_FIELD, cls.VECTOR_FIELD, cls.PAYLOAD_FIELD]
        if not with_embeddings:
            names.remove(cls.VECTOR_FIELD)
        return ",".join(f"{alias}.{name}" if alias else name for name in names)

    @staticmethod
    def encode_id(record_id: str) -> str:
        return base64.b64encode(record_id.encode("utf-8")).decode("ascii").replace("=", "_")

    @staticmethod
    def decode_id(encoded_id: str) -> str:
        try:
            return base64.b64decode(encoded_id.replace("_", "="), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as ex:
            raise MemoryRecordError(f"Invalid encoded record id: {encoded_id}", ex) from ex

    @classmethod
    def from_memory_record(cls, record: MemoryRecord) -> "AzureCosmosDbMemoryRecord":
        return cls(
            id=cls.encode_id(record.id),
            file=record.get_file_id(),
            payload=record.payload,
            tags=dict(record.tags),
            embedding=list(record.vector),
        )

    def to_memory_record(self, with_embedding: bool = True) -> MemoryRecord:
        tags = TagCollection()
        for key, values in self.tags.items():
            tags[key] = list(values)
        return MemoryRecord(
            id=self.decode_id(self.id),
            payload=self.payload,
            tags=tags,
            vector=list(self.embedding or []) if with_embedding else [],
        )

    def to_item(self) -> dict[str, Any]:
        """The JSON body sent to Cosmos DB."""
        return self.model_dump(mode="json")
