# Copyright (c) Microsoft. All rights reserved.

from collections.abc import AsyncIterator, Iterable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from pytest import fixture

from aiglue import MemoryRecord


# region: Connector Settings fixtures
@fixture
def exclude_list(request: Any) -> list[str]:
    """Fixture that returns a list of environment variables to exclude."""
    return request.param if hasattr(request, "param") else []


@fixture
def override_env_param_dict(request: Any) -> dict[str, str]:
    """Fixture that returns a dict of environment variables to override."""
    return request.param if hasattr(request, "param") else {}


def _set_env(monkeypatch, env_vars: dict[str, str], exclude_list: list[str], overrides: dict[str, str]):
    env_vars.update(overrides)
    for key, value in env_vars.items():
        if key in exclude_list:
            monkeypatch.delenv(key, raising=False)
            continue
        monkeypatch.setenv(key, value)
    return env_vars


@fixture()
def azure_cosmos_unit_test_env(monkeypatch, exclude_list, override_env_param_dict):  # type: ignore
    """Fixture to set environment variables for AzureCosmosDbSettings."""
    env_vars = {
        "AZURE_COSMOS_ENDPOINT": "https://test-account.documents.azure.com:443/",
        "AZURE_COSMOS_KEY": "test_key",
        "AZURE_COSMOS_DATABASE_NAME": "test_memory",
    }
    return _set_env(monkeypatch, env_vars, exclude_list, override_env_param_dict)


@fixture()
def azure_ai_service_unit_test_env(monkeypatch, exclude_list, override_env_param_dict):  # type: ignore
    """Fixture to set environment variables for AzureAIServiceSettings."""
    env_vars = {
        "AZURE_AI_SERVICE_ENDPOINT": "https://test-vision.cognitiveservices.azure.com/",
        "AZURE_AI_SERVICE_API_KEY": "test_api_key",
    }
    return _set_env(monkeypatch, env_vars, exclude_list, override_env_param_dict)


# region Cosmos mocks


async def async_rows(rows: Iterable[dict[str, Any]]) -> AsyncIterator[dict[str, Any]]:
    for row in rows:
        yield row


class FakeEmbeddingGenerator:
    """Returns the same embedding for any text."""

    def __init__(self, embedding: list[float] | None = None) -> None:
        self.embedding = embedding or [0.1, 0.2, 0.3]
        self.texts: list[str] = []

    async def generate_embedding(self, text: str) -> list[float]:
        self.texts.append(text)
        return self.embedding


@fixture
def embedding_generator() -> FakeEmbeddingGenerator:
    return FakeEmbeddingGenerator()


@fixture
def mock_container() -> MagicMock:
    container = MagicMock()
    container.id = "books"
    container.upsert_item = AsyncMock(side_effect=lambda body: body)
    container.delete_item = AsyncMock()
    container.query_items = MagicMock(return_value=async_rows([]))
    return container


@fixture
def mock_database(mock_container) -> MagicMock:
    database = MagicMock()
    database.id = "test_memory"
    database.get_container_client.return_value = mock_container
    database.create_container_if_not_exists = AsyncMock(return_value=mock_container)
    database.delete_container = AsyncMock()
    database.list_containers = MagicMock(return_value=async_rows([]))
    return database


@fixture
def mock_cosmos_client(mock_database) -> MagicMock:
    client = MagicMock()
    client.get_database_client.return_value = mock_database
    client.create_database_if_not_exists = AsyncMock(return_value=mock_database)
    client.close = AsyncMock()
    return client


@fixture
def memory_record() -> MemoryRecord:
    return MemoryRecord(
        id="doc/1?part#2",
        vector=[0.5, 0.25],
        tags={"__file_id": ["file-1"], "user": ["alice", "bob"]},
        payload={"text": "The Amazon flows through Brazil."},
    )
