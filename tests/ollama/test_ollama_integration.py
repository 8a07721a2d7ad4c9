# Copyright (c) Microsoft. All rights reserved.

import os

import pytest

from aiglue import ChatResponse, FunctionResultContent, Role, ai_function
from aiglue.ollama import OllamaChatClient, OllamaEmbeddingGenerator

pytestmark = pytest.mark.integration

_integration_enabled = os.getenv("RUN_INTEGRATION_TESTS", "false").lower() == "true"

skip_if_ollama_integration_tests_disabled = pytest.mark.skipif(
    not _integration_enabled or os.getenv("OLLAMA_MODEL_ID", "") in ("", "test"),
    reason="No real Ollama chat model provided; skipping integration tests."
    if _integration_enabled
    else "Integration tests are disabled.",
)

skip_if_ollama_embedding_integration_tests_disabled = pytest.mark.skipif(
    not _integration_enabled or not os.getenv("OLLAMA_EMBEDDING_MODEL_ID"),
    reason="No real Ollama embedding model provided; skipping integration tests."
    if _integration_enabled
    else "Integration tests are disabled.",
)


@ai_function(description="Get the weather for a city.")
def weather(city: str) -> str:
    return f"It is sunny and 21 degrees in {city}."


@skip_if_ollama_integration_tests_disabled
async def test_get_response() -> None:
    client = OllamaChatClient()

    response = await client.get_response("Say Hello World and nothing else.")

    assert "hello" in response.text.lower()


@skip_if_ollama_integration_tests_disabled
async def test_get_response_with_tool() -> None:
    client = OllamaChatClient()

    response = await client.get_response("What is the weather in Paris? Use the tool.", tools=[weather])

    results = [
        content
        for message in response.messages
        if message.role == Role.TOOL
        for content in message.contents
        if isinstance(content, FunctionResultContent)
    ]
    assert results
    assert "Paris" in str(results[0].result)
    assert "21" in response.text


@skip_if_ollama_integration_tests_disabled
async def test_get_streaming_response() -> None:
    client = OllamaChatClient()

    updates = [update async for update in client.get_streaming_response("Say Hello World and nothing else.")]

    assert "hello" in ChatResponse.from_chat_response_updates(updates).text.lower()


@skip_if_ollama_embedding_integration_tests_disabled
async def test_generate_embeddings() -> None:
    generator = OllamaEmbeddingGenerator()

    first, second = await generator.generate_embeddings(["The Nile flows north.", "Cats sleep a lot."])

    assert len(first) == len(second) > 0
    assert first != second
