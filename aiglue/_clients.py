# Copyright (c) Microsoft. All rights reserved.

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, MutableSequence, Sequence
from typing import Any, Protocol, runtime_checkable

from ._logging import get_logger
from ._pydantic import AIGlueBaseModel
from ._types import ChatMessage, ChatOptions, ChatResponse, ChatResponseUpdate, ChatToolMode, Role

logger = get_logger("aiglue.clients")

__all__ = [
    "BaseChatClient",
    "ChatClientProtocol",
    "prepare_messages",
]


def prepare_messages(messages: str | ChatMessage | Sequence[str | ChatMessage]) -> list[ChatMessage]:
    """Turn a string, a message or a mixed sequence of both into a list of messages; strings become user messages."""
    if isinstance(messages, (str, ChatMessage)):
        messages = [messages]
    return [ChatMessage(Role.USER, text=message) if isinstance(message, str) else message for message in messages]


@runtime_checkable
class ChatClientProtocol(Protocol):
    """A client that can answer chat messages."""

    async def get_response(
        self, messages: str | ChatMessage | Sequence[str | ChatMessage], **kwargs: Any
    ) -> ChatResponse:
        """Send the messages and return the complete response.

        Args:
            messages: The input messages.
            kwargs: ``chat_options`` or individual ``ChatOptions`` fields; anything else
                is passed on to the functions the model calls.
        """
        ...

    def get_streaming_response(
        self, messages: str | ChatMessage | Sequence[str | ChatMessage], **kwargs: Any
    ) -> AsyncIterable[ChatResponseUpdate]:
        """Send the messages and stream the response."""
        ...


class BaseChatClient(AIGlueBaseModel, ABC):
    """Base class for the provider clients.

    Subclasses map ``ChatOptions`` and messages to their service and implement the two
    ``_inner_*`` methods; option handling and message preparation happen here.
    """

    @abstractmethod
    async def _inner_get_response(
        self, *, messages: MutableSequence[ChatMessage], chat_options: ChatOptions, **kwargs: Any
    ) -> ChatResponse: ...

    @abstractmethod
    async def _inner_get_streaming_response(
        self, *, messages: MutableSequence[ChatMessage], chat_options: ChatOptions, **kwargs: Any
    ) -> AsyncIterable[ChatResponseUpdate]:
        # makes type checkers treat this as an async generator
        if False:
            yield
        await asyncio.sleep(0)  # pragma: no cover

    async def get_response(
        self,
        messages: str | ChatMessage | Sequence[str | ChatMessage],
        *,
        chat_options: ChatOptions | None = None,
        **kwargs: Any,
    ) -> ChatResponse:
        """Get a response from the model.

        Options are taken from ``chat_options`` or from keyword arguments named like the
        ``ChatOptions`` fields, e.g. ``temperature=0.0``; keyword arguments override the
        matching fields of ``chat_options``.
        """
        options = self._resolve_options(chat_options, kwargs)
        return await self._inner_get_response(messages=prepare_messages(messages), chat_options=options, **kwargs)

    async def get_streaming_response(
        self,
        messages: str | ChatMessage | Sequence[str | ChatMessage],
        *,
        chat_options: ChatOptions | None = None,
        **kwargs: Any,
    ) -> AsyncIterable[ChatResponseUpdate]:
        """Stream a response from the model; takes the same arguments as ``get_response``."""
        options = self._resolve_options(chat_options, kwargs)
        async for update in self._inner_get_streaming_response(
            messages=prepare_messages(messages), chat_options=options, **kwargs
        ):
            yield update

    @staticmethod
    def _resolve_options(chat_options: ChatOptions | None, kwargs: dict[str, Any]) -> ChatOptions:
        overrides = {name: kwargs.pop(name) for name in ChatOptions.model_fields if name in kwargs}
        overrides = {name: value for name, value in overrides.items() if value is not None}
        if chat_options is None:
            options = ChatOptions(**overrides)
        elif not isinstance(chat_options, ChatOptions):
            raise TypeError("chat_options must be an instance of ChatOptions")
        else:
            options = chat_options.model_copy()
            for name, value in overrides.items():
                setattr(options, name, value)
        if not options.tools or options.tool_choice == ChatToolMode.NONE:
            options.tools = None
            options.tool_choice = ChatToolMode.NONE
        elif options.tool_choice is None:
            options.tool_choice = ChatToolMode.AUTO
        return options

    def service_url(self) -> str | None:
        """The endpoint the client talks to, when it has one."""
        return None
