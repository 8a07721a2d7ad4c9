# Copyright (c) Microsoft. All rights reserved.

import asyncio
import logging
import sys
from collections.abc import AsyncIterable, MutableSequence
from typing import Any

from pydantic import Field
from pytest import fixture

from aiglue import (
    AIFunction,
    BaseChatClient,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatResponseUpdate,
    TextContent,
    ai_function,
    use_function_invocation,
)

if sys.version_info >= (3, 12):
    from typing import override  # type: ignore
else:
    from typing_extensions import override  # type: ignore[import]

logger = logging.getLogger(__name__)


# region Tools


@fixture
def ai_tool() -> AIFunction[Any, str]:
    """Returns a generic AIFunction."""

    @ai_function
    def generic_tool(name: str) -> str:
        """A generic tool that echoes the name."""
        return f"Hello, {name}"

    return generic_tool


@fixture
def add_tool() -> AIFunction[Any, int]:
    @ai_function
    def simple_function(x: int, y: int) -> int:
        """A simple function that adds two numbers."""
        return x + y

    return simple_function


# region Chat Clients


class MockBaseChatClient(BaseChatClient):
    """Mock implementation of the BaseChatClient."""

    run_responses: list[ChatResponse] = Field(default_factory=list)
    streaming_responses: list[list[ChatResponseUpdate]] = Field(default_factory=list)
    received_options: list[ChatOptions] = Field(default_factory=list)
    call_count: int = 0

    @override
    async def _inner_get_response(
        self,
        *,
        messages: MutableSequence[ChatMessage],
        chat_options: ChatOptions,
        **kwargs: Any,
    ) -> ChatResponse:
        logger.debug(f"Running base chat client inner, with: {messages=}, {chat_options=}, {kwargs=}")
        self.call_count += 1
        self.received_options.append(chat_options)
        if not self.run_responses:
            return ChatResponse(messages=ChatMessage(role="assistant", text=f"test response - {messages[-1].text}"))
        return self.run_responses.pop(0)

    @override
    async def _inner_get_streaming_response(
        self,
        *,
        messages: MutableSequence[ChatMessage],
        chat_options: ChatOptions,
        **kwargs: Any,
    ) -> AsyncIterable[ChatResponseUpdate]:
        logger.debug(f"Running base chat client inner stream, with: {messages=}, {chat_options=}, {kwargs=}")
        self.call_count += 1
        self.received_options.append(chat_options)
        if not self.streaming_responses:
            yield ChatResponseUpdate(contents=[TextContent(text=f"update - {messages[0].text}")], role="assistant")
            return
        for update in self.streaming_responses.pop(0):
            yield update
        await asyncio.sleep(0)


@use_function_invocation
class FunctionInvokingMockChatClient(MockBaseChatClient):
    """Mock chat client that runs the functions the model calls."""


@fixture
def chat_client_base() -> MockBaseChatClient:
    return MockBaseChatClient()


@fixture
def chat_client_with_functions() -> FunctionInvokingMockChatClient:
    return FunctionInvokingMockChatClient()
