# Copyright (c) Microsoft. All rights reserved.

from ollama import ResponseError
from ollama._types import EmbedResponse
from pytest import fixture, mark, raises

from aiglue import TextEmbeddingGenerator
from aiglue.exceptions import ServiceInitializationError, ServiceResponseException
from aiglue.ollama import OllamaEmbeddingGenerator


@fixture
def embedding_env(ollama_unit_test_env, monkeypatch):
    monkeypatch.setenv("OLLAMA_EMBEDDING_MODEL_ID", "nomic-embed-text")
    return ollama_unit_test_env


@fixture
def generator(embedding_env, mock_ollama_client) -> OllamaEmbeddingGenerator:
    return OllamaEmbeddingGenerator(client=mock_ollama_client, env_file_path="does-not-exist.env")


def test_init(generator, mock_ollama_client) -> None:
    assert isinstance(generator, TextEmbeddingGenerator)
    assert generator.model_id == "nomic-embed-text"
    assert generator.client is mock_ollama_client


def test_init_from_env(embedding_env) -> None:
    generator = OllamaEmbeddingGenerator(model_id="all-minilm", env_file_path="does-not-exist.env")

    assert generator.model_id == "all-minilm"
    assert generator.host.rstrip("/") == embedding_env["OLLAMA_HOST"]


def test_init_without_model(ollama_unit_test_env, monkeypatch) -> None:
    monkeypatch.delenv("OLLAMA_EMBEDDING_MODEL_ID", raising=False)

    with raises(ServiceInitializationError, match="OLLAMA_EMBEDDING_MODEL_ID"):
        OllamaEmbeddingGenerator(env_file_path="does-not-exist.env")


async def test_generate_embedding(generator, mock_ollama_client) -> None:
    mock_ollama_client.embed.return_value = EmbedResponse(model="nomic-embed-text", embeddings=[[0.1, 0.2, 0.3]])

    embedding = await generator.generate_embedding("The Nile flows north.")

    assert embedding == [0.1, 0.2, 0.3]
    mock_ollama_client.embed.assert_awaited_once_with(model="nomic-embed-text", input=["The Nile flows north."])


async def test_generate_embeddings_keeps_order(generator, mock_ollama_client) -> None:
    mock_ollama_client.embed.return_value = EmbedResponse(embeddings=[[1.0, 0.0], [0.0, 1.0]])

    assert await generator.generate_embeddings(["first", "second"]) == [[1.0, 0.0], [0.0, 1.0]]
    assert await generator.generate_embeddings([]) == []
    mock_ollama_client.embed.assert_awaited_once()


async def test_generate_embeddings_count_mismatch(generator, mock_ollama_client) -> None:
    mock_ollama_client.embed.return_value = EmbedResponse(embeddings=[[1.0]])

    with raises(ServiceResponseException, match="1 embeddings for 2 texts"):
        await generator.generate_embeddings(["first", "second"])


@mark.parametrize("error", [ConnectionError("refused"), ResponseError("model not found")])
async def test_generate_embedding_failure(generator, mock_ollama_client, error) -> None:
    mock_ollama_client.embed.side_effect = error

    with raises(ServiceResponseException, match="Ollama embedding request failed") as exc_info:
        await generator.generate_embedding("text")

    assert exc_info.value.__cause__ is error
