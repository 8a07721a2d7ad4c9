# Copyright (c) Microsoft. All rights reserved.

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Iterator
from typing import Any, Final, Protocol, runtime_checkable

from pydantic import Field, field_validator

from ._pydantic import AIGlueBaseModel

__all__ = [
    "RESERVED_DOCUMENT_ID_TAG",
    "RESERVED_FILE_ID_TAG",
    "RESERVED_FILE_PART_ID_TAG",
    "RESERVED_FILE_PARTITION_NUMBER_TAG",
    "RESERVED_FILE_SECTION_NUMBER_TAG",
    "MemoryDb",
    "MemoryFilter",
    "MemoryRecord",
    "TagCollection",
    "TextEmbeddingGenerator",
]

RESERVED_DOCUMENT_ID_TAG: Final[str] = "__document_id"
RESERVED_FILE_ID_TAG: Final[str] = "__file_id"
RESERVED_FILE_PART_ID_TAG: Final[str] = "__file_part"
RESERVED_FILE_PARTITION_NUMBER_TAG: Final[str] = "__part_n"
RESERVED_FILE_SECTION_NUMBER_TAG: Final[str] = "__sect_n"


class TagCollection(dict[str, list[str]]):
    """Tags attached to a memory record, each key holding one or more values.

    Example:
        ```python
        tags = TagCollection()
        tags.add("user", "alice")
        tags.add("user", "bob")
        list(tags.pairs)  # [("user", "alice"), ("user", "bob")]
        ```
    """

    def add(self, key: str, value: str | None = None) -> "TagCollection":
        """Append a value to the key, creating the key when missing.

        A missing value only creates the key, leaving its list empty.
        """
        values = self.setdefault(key, [])
        if value is not None:
            values.append(value)
        return self

    @property
    def pairs(self) -> Iterator[tuple[str, str]]:
        """Enumerate every (key, value) pair."""
        for key, values in self.items():
            for value in values:
                yield key, value


class MemoryFilter(TagCollection):
    """A set of tag pairs that must all match.

    Several filters passed together are alternatives: a record matches when any filter matches.
    """

    def by_tag(self, key: str, value: str) -> "MemoryFilter":
        self.add(key, value)
        return self

    def by_document(self, document_id: str) -> "MemoryFilter":
        self.add(RESERVED_DOCUMENT_ID_TAG, document_id)
        return self

    def is_empty(self) -> bool:
        return not any(True for _ in self.pairs)


class MemoryRecord(AIGlueBaseModel):
    """A vector plus tags and payload, as stored in a memory index.

    Attributes:
        id: Unique identifier of the record within the index.
        vector: The embedding of the record text.
        tags: Tags used for filtering.
        payload: Free-form data stored with the record.
    """

    id: str
    vector: list[float] = Field(default_factory=list)
    tags: TagCollection = Field(default_factory=TagCollection)
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def _validate_tags(cls, tags: Any) -> TagCollection:
        if isinstance(tags, TagCollection):
            return tags
        collection = TagCollection()
        for key, values in (tags or {}).items():
            for value in values if isinstance(values, list) else [values]:
                collection.add(key, value)
        return collection

    def get_file_id(self) -> str:
        """The first value of the file id tag, or an empty string."""
        values = self.tags.get(RESERVED_FILE_ID_TAG) or []
        return values[0] if values else ""


@runtime_checkable
class TextEmbeddingGenerator(Protocol):
    """Turns text into an embedding vector."""

    async def generate_embedding(self, text: str) -> list[float]: ...


class MemoryDb(ABC):
    """Storage interface for vector memory indexes."""

    @abstractmethod
    async def create_index(self, index: str, vector_size: int) -> None:
        """Create an index if it does not exist yet."""

    @abstractmethod
    async def get_indexes(self) -> list[str]:
        """List the names of the existing indexes."""

    @abstractmethod
    async def delete_index(self, index: str) -> None:
        """Delete an index and every record in it."""

    @abstractmethod
    async def upsert(self, index: str, record: MemoryRecord) -> str:
        """Insert or replace a record, returning the id it was stored under."""

    @abstractmethod
    def get_similar_list(
        self,
        index: str,
        text: str,
        filters: Iterable[MemoryFilter] | None = None,
        min_relevance: float = 0,
        limit: int = 1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[tuple[MemoryRecord, float]]:
        """Yield the records most similar to ``text`` with their relevance, best first."""

    @abstractmethod
    def get_list(
        self,
        index: str,
        filters: Iterable[MemoryFilter] | None = None,
        limit: int = 1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        """Yield records matching the filters."""

    @abstractmethod
    async def delete(self, index: str, record: MemoryRecord) -> None:
        """Delete a record, ignoring records that do not exist."""
