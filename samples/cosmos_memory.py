# Copyright (c) Microsoft. All rights reserved.

import asyncio

from aiglue import MemoryFilter, MemoryRecord, TagCollection, setup_logging
from aiglue.azure import AzureCosmosDbMemory
from aiglue.ollama import OllamaEmbeddingGenerator

"""
Azure Cosmos DB Memory Example

This sample embeds a few facts with an Ollama embedding model, stores them in a Cosmos DB
for NoSQL container with a vector index, then runs a filtered similarity search and a plain
listing over them.

Environment Variables:
- AZURE_COSMOS_ENDPOINT: The account endpoint
- AZURE_COSMOS_KEY: The account key (optional, DefaultAzureCredential is used when not set)
- AZURE_COSMOS_DATABASE_NAME: The database name (optional, defaults to "memory")
- OLLAMA_HOST: The Ollama server (optional, defaults to http://localhost:11434)
- OLLAMA_EMBEDDING_MODEL_ID: The embedding model, e.g. nomic-embed-text
"""


async def main() -> None:
    setup_logging()
    embeddings = OllamaEmbeddingGenerator()
    facts = {
        "amazon": "The Amazon river flows through Brazil, Peru and Colombia.",
        "nile": "The Nile river flows through eleven countries in Africa.",
        "danube": "The Danube river flows through ten countries in Europe.",
    }
    vectors = await embeddings.generate_embeddings(list(facts.values()))

    async with AzureCosmosDbMemory(embeddings) as memory:
        await memory.create_index("rivers", len(vectors[0]))
        for (key, text), vector in zip(facts.items(), vectors):
            tags = TagCollection().add("__file_id", key).add("continent", "europe" if key == "danube" else "other")
            record = MemoryRecord(id=f"rivers/{key}", vector=vector, tags=tags, payload={"text": text})
            stored_id = await memory.upsert("rivers", record)
            print(f"Stored {record.id} as {stored_id}")

        print(f"Indexes: {await memory.get_indexes()}")

        query = "Which countries does the Amazon river flow through?"
        print(f"\nSimilar to: {query}")
        async for record, relevance in memory.get_similar_list("rivers", query, limit=2):
            print(f"  {relevance:.2f} {record.payload['text']}")

        print("\nRecords tagged continent=europe:")
        async for record in memory.get_list("rivers", filters=[MemoryFilter().by_tag("continent", "europe")], limit=5):
            print(f"  {record.id}: {record.payload['text']}")

        await memory.delete_index("rivers")


if __name__ == "__main__":
    asyncio.run(main())
