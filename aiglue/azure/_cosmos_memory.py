# Copyright (c) Microsoft. All rights reserved.

import json
import sys
from collections.abc import AsyncIterator, Iterable
from typing import Any

from azure.core.credentials_async import AsyncTokenCredential
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential

from .._logging import get_logger
from .._memory import MemoryDb, MemoryFilter, MemoryRecord, TextEmbeddingGenerator
from .._settings import load_settings
from ..exceptions import MemoryIndexNotFoundError, ServiceInitializationError, ServiceResponseException
from ._cosmos_record import AzureCosmosDbMemoryRecord
from ._shared import DEFAULT_COSMOS_DATABASE_NAME, AzureCosmosDbSettings

if sys.version_info >= (3, 11):
    from typing import Self  # pragma: no cover
else:
    from typing_extensions import Self  # pragma: no cover

__all__ = ["AzureCosmosDbMemory", "with_tags"]

logger = get_logger("aiglue.azure.cosmos")

SIMILAR_LIST_QUERY = (
    "SELECT Top @topN {outer_columns}, x.similarityScore "
    "FROM (SELECT {inner_columns}, VectorDistance(c.{vector_field}, @embedding) AS similarityScore "
    "FROM c {where}) AS x "
    "WHERE x.similarityScore > @similarityScore "
    "ORDER BY x.similarityScore desc"
)
LIST_QUERY = "SELECT Top @topN {columns} FROM c {where}"


def with_tags(alias: str, filters: Iterable[MemoryFilter] | None = None) -> tuple[str, list[dict[str, Any]]]:
    """Translate tag filters into a WHERE clause and its query parameters.

    Pairs inside a filter are combined with AND and the filters with OR. Tag keys are
    written as quoted property names, e.g. ``c.tags["user"]``, and values are passed as
    parameters named after the filter and pair positions, e.g. ``@filter_0_1_value``.

    Returns:
        The WHERE clause, or an empty string when nothing is filtered, and the parameter list.
    """
    clauses: list[str] = []
    parameters: list[dict[str, Any]] = []
    for i, memory_filter in enumerate(filters or []):
        conditions: list[str] = []
        for j, (key, value) in enumerate(memory_filter.pairs):
            name = f"@filter_{i}_{j}_value"
            tag = f"{alias}.{AzureCosmosDbMemoryRecord.TAGS_FIELD}[{json.dumps(key)}]"
            conditions.append(f"ARRAY_CONTAINS({tag}, {name})")
            parameters.append({"name": name, "value": value})
        if conditions:
            clauses.append(" AND ".join(conditions))
    if not clauses:
        return "", []
    return f"WHERE ( {' OR '.join(clauses)} )", parameters


class AzureCosmosDbMemory(MemoryDb):
    """Vector memory on Azure Cosmos DB for NoSQL.

    Each index is a container in one database, partitioned on the record's file id,
    with a cosine vector index on the ``embedding`` path.

    Examples:
        .. code-block:: python

            from aiglue.azure import AzureCosmosDbMemory

            # Using environment variables
            # Set AZURE_COSMOS_ENDPOINT=https://<account>.documents.azure.com:443/
            # Set AZURE_COSMOS_KEY=<key>, or leave it unset to use DefaultAzureCredential
            async with AzureCosmosDbMemory(embedding_generator) as memory:
                await memory.create_index("books", 1536)
                async for record, relevance in memory.get_similar_list("books", "Where is the Amazon?"):
                    print(record.id, relevance)
    """

    def __init__(
        self,
        embedding_generator: TextEmbeddingGenerator,
        *,
        cosmos_client: CosmosClient | None = None,
        endpoint: str | None = None,
        key: str | None = None,
        credential: AsyncTokenCredential | None = None,
        database_name: str | None = None,
        env_file_path: str | None = None,
        env_file_encoding: str | None = None,
    ) -> None:
        """Create the memory.

        Args:
            embedding_generator: Generates the query embeddings for similarity searches.

        Keyword Args:
            cosmos_client: An existing client; it is not closed by this instance.
            endpoint: The account endpoint, used when no client is given.
            key: The account key, used when no client and no credential are given.
            credential: A credential, used when no client is given.
            database_name: The database name, defaults to ``memory``.
            env_file_path: Path of the .env file with the settings.
            env_file_encoding: Encoding of the .env file.
        """
        settings = load_settings(
            AzureCosmosDbSettings,
            env_prefix="AZURE_COSMOS_",
            env_file_path=env_file_path,
            env_file_encoding=env_file_encoding,
            endpoint=endpoint,
            key=key,
            database_name=database_name,
        )
        self.embedding_generator = embedding_generator
        self.database_name = settings["database_name"] or DEFAULT_COSMOS_DATABASE_NAME
        self._owns_client = cosmos_client is None
        self._owned_credential: DefaultAzureCredential | None = None
        if cosmos_client is None:
            if not settings["endpoint"]:
                raise ServiceInitializationError(
                    "Azure Cosmos DB endpoint is required. Set via 'endpoint' parameter "
                    "or 'AZURE_COSMOS_ENDPOINT' environment variable."
                )
            # Cosmos DB takes the account key as a plain string
            account_key = settings["key"].get_secret_value() if settings["key"] else None
            if credential is None and not account_key:
                credential = self._owned_credential = DefaultAzureCredential()
            cosmos_client = CosmosClient(settings["endpoint"], credential=credential or account_key)
        self.cosmos_client = cosmos_client

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the Cosmos client and the default credential when this instance created them."""
        if self._owns_client:
            await self.cosmos_client.close()
        if self._owned_credential is not None:
            await self._owned_credential.close()
            self._owned_credential = None

    def _database(self) -> DatabaseProxy:
        return self.cosmos_client.get_database_client(self.database_name)

    def _container(self, index: str) -> ContainerProxy:
        return self._database().get_container_client(index)

    async def create_index(self, index: str, vector_size: int) -> None:
        vector_path = f"/{AzureCosmosDbMemoryRecord.VECTOR_FIELD}"
        try:
            database = await self.cosmos_client.create_database_if_not_exists(id=self.database_name)
            container = await database.create_container_if_not_exists(
                id=index,
                partition_key=PartitionKey(path=f"/{AzureCosmosDbMemoryRecord.FILE_FIELD}"),
                indexing_policy={
                    "includedPaths": [{"path": "/*"}],
                    "excludedPaths": [{"path": f"{vector_path}/*"}],
                    "vectorIndexes": [{"path": vector_path, "type": "quantizedFlat"}],
                },
                vector_embedding_policy={
                    "vectorEmbeddings": [
                        {
                            "path": vector_path,
                            "dataType": "float32",
                            "distanceFunction": "cosine",
                            "dimensions": vector_size,
                        }
                    ]
                },
            )
        except CosmosHttpResponseError as ex:
            raise ServiceResponseException(f"Failed to create index '{index}': {ex.message}", ex) from ex
        logger.info("%s %s", database.id, container.id)

    async def get_indexes(self) -> list[str]:
        try:
            return [
                container["id"] async for container in self._database().list_containers() if container.get("id")
            ]
        except CosmosResourceNotFoundError:
            return []
        except CosmosHttpResponseError as ex:
            raise ServiceResponseException(f"Failed to list indexes: {ex.message}", ex) from ex

    async def delete_index(self, index: str) -> None:
        try:
            await self._database().delete_container(index)
        except CosmosResourceNotFoundError as ex:
            raise MemoryIndexNotFoundError(f"Index '{index}' does not exist.", ex) from ex
        except CosmosHttpResponseError as ex:
            raise ServiceResponseException(f"Failed to delete index '{index}': {ex.message}", ex) from ex

    async def upsert(self, index: str, record: MemoryRecord) -> str:
        cosmos_record = AzureCosmosDbMemoryRecord.from_memory_record(record)
        try:
            result = await self._container(index).upsert_item(body=cosmos_record.to_item())
        except CosmosResourceNotFoundError as ex:
            raise MemoryIndexNotFoundError(f"Index '{index}' does not exist.", ex) from ex
        except CosmosHttpResponseError as ex:
            raise ServiceResponseException(f"Failed to upsert record into '{index}': {ex.message}", ex) from ex
        return result["id"]

    async def get_similar_list(
        self,
        index: str,
        text: str,
        filters: Iterable[MemoryFilter] | None = None,
        min_relevance: float = 0,
        limit: int = 1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[tuple[MemoryRecord, float]]:
        embedding = await self.embedding_generator.generate_embedding(text)
        where, filter_parameters = with_tags("c", filters)
        query = SIMILAR_LIST_QUERY.format(
            outer_columns=AzureCosmosDbMemoryRecord.columns("x", with_embeddings),
            inner_columns=AzureCosmosDbMemoryRecord.columns("c", with_embeddings),
            vector_field=AzureCosmosDbMemoryRecord.VECTOR_FIELD,
            where=where,
        )
        parameters = [
            {"name": "@topN", "value": limit},
            {"name": "@embedding", "value": list(embedding)},
            {"name": "@similarityScore", "value": min_relevance},
            *filter_parameters,
        ]
        async for row in self._query(index, query, parameters):
            score = float(row.get("similarityScore", 0))
            logger.debug("%s  %s", row.get("id"), score)
            relevance = (score + 1) / 2
            if relevance >= min_relevance:
                record = AzureCosmosDbMemoryRecord.model_validate(row)
                yield record.to_memory_record(with_embeddings), relevance

    async def get_list(
        self,
        index: str,
        filters: Iterable[MemoryFilter] | None = None,
        limit: int = 1,
        with_embeddings: bool = False,
    ) -> AsyncIterator[MemoryRecord]:
        where, filter_parameters = with_tags("c", filters)
        query = LIST_QUERY.format(columns=AzureCosmosDbMemoryRecord.columns("c", with_embeddings), where=where)
        parameters = [{"name": "@topN", "value": limit}, *filter_parameters]
        async for row in self._query(index, query, parameters):
            yield AzureCosmosDbMemoryRecord.model_validate(row).to_memory_record()

    async def delete(self, index: str, record: MemoryRecord) -> None:
        cosmos_record = AzureCosmosDbMemoryRecord.from_memory_record(record)
        try:
            await self._container(index).delete_item(item=cosmos_record.id, partition_key=cosmos_record.partition_key)
        except CosmosResourceNotFoundError:
            logger.debug("Index %s record %s not found, nothing to delete", index, record.id)
        except CosmosHttpResponseError as ex:
            raise ServiceResponseException(f"Failed to delete record '{record.id}': {ex.message}", ex) from ex

    async def _query(self, index: str, query: str, parameters: list[dict[str, Any]]) -> AsyncIterator[dict[str, Any]]:
        try:
            async for row in self._container(index).query_items(query=query, parameters=parameters):
                yield row
        except CosmosResourceNotFoundError as ex:
            raise MemoryIndexNotFoundError(f"Index '{index}' does not exist.", ex) from ex
        except CosmosHttpResponseError as ex:
            raise ServiceResponseException(f"Query on '{index}' failed: {ex.message}", ex) from ex
