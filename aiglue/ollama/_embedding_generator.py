# Copyright (c) Microsoft. All rights reserved.

from collections.abc import Sequence
from typing import Any

from ollama import AsyncClient
from ollama._types import EmbedResponse

from .._logging import get_logger
from .._pydantic import AIGlueBaseModel
from .._settings import load_settings
from ..exceptions import ServiceInitializationError, ServiceResponseException
from ._chat_client import OLLAMA_ERRORS, OllamaSettings, _create_client

__all__ = ["OllamaEmbeddingGenerator"]

logger = get_logger("aiglue.ollama")


class OllamaEmbeddingGenerator(AIGlueBaseModel):
    """Text embeddings from an Ollama embedding model, e.g. ``nomic-embed-text``.

    Usable wherever a ``TextEmbeddingGenerator`` is expected, such as the Cosmos DB memory.
    """

    model_id: str
    host: str | None = None
    client: AsyncClient

    def __init__(
        self,
        *,
        host: str | None = None,
        client: AsyncClient | None = None,
        model_id: str | None = None,
        http_trace: bool = False,
        env_file_path: str | None = None,
        env_file_encoding: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Create the generator.

        Keyword Args:
            host: The server URL, read from OLLAMA_HOST when not given.
            client: An existing ``ollama.AsyncClient``; ``host`` and ``http_trace`` are ignored with it.
            model_id: The embedding model, read from OLLAMA_EMBEDDING_MODEL_ID when not given.
            http_trace: Log every request and response of the created client.
            env_file_path: A .env file to read settings from.
            env_file_encoding: The encoding of the .env file, defaults to utf-8.
        """
        settings = load_settings(
            OllamaSettings,
            env_prefix="OLLAMA_",
            env_file_path=env_file_path,
            env_file_encoding=env_file_encoding,
            host=host,
            embedding_model_id=model_id,
        )
        if not settings["embedding_model_id"]:
            raise ServiceInitializationError(
                "Ollama embedding model ID must be provided via model_id or "
                "OLLAMA_EMBEDDING_MODEL_ID environment variable."
            )
        client = client or _create_client(settings["host"], http_trace)
        super().__init__(
            model_id=settings["embedding_model_id"], host=str(client._client.base_url), client=client, **kwargs
        )

    async def generate_embeddings(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts in one request, in order."""
        if not texts:
            return []
        try:
            response: EmbedResponse = await self.client.embed(model=self.model_id, input=list(texts))
        except OLLAMA_ERRORS as ex:
            raise ServiceResponseException(f"Ollama embedding request failed : {ex}", ex) from ex
        if len(response.embeddings) != len(texts):
            raise ServiceResponseException(
                f"Ollama returned {len(response.embeddings)} embeddings for {len(texts)} texts."
            )
        logger.debug("Embedded %d texts with %s", len(texts), self.model_id)
        return [list(embedding) for embedding in response.embeddings]

    async def generate_embedding(self, text: str) -> list[float]:
        [embedding] = await self.generate_embeddings([text])
        return embedding
