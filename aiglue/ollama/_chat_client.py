# Copyright (c) Microsoft. All rights reserved.

import sys
from collections.abc import AsyncIterable, MutableMapping, MutableSequence, Sequence
from typing import Any
from uuid import uuid4

import httpx
from ollama import AsyncClient, ResponseError
from ollama._types import ChatResponse as OllamaChatResponse
from ollama._types import Message as OllamaMessage

from .._clients import BaseChatClient
from .._http import HttpTraceHooks
from .._logging import get_logger
from .._settings import load_settings
from .._tools import AIFunction, ToolProtocol, use_function_invocation
from .._types import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatResponseUpdate,
    DataContent,
    FinishReason,
    FunctionCallContent,
    FunctionResultContent,
    Role,
    TextContent,
    TextReasoningContent,
    UsageContent,
    UsageDetails,
    prepare_function_call_results,
)
from ..exceptions import ServiceInitializationError, ServiceInvalidRequestError, ServiceResponseException

if sys.version_info >= (3, 11):
    from typing import TypedDict  # pragma: no cover
else:
    from typing_extensions import TypedDict  # pragma: no cover

__all__ = ["OllamaChatClient", "OllamaSettings"]

logger = get_logger("aiglue.ollama")

OLLAMA_ERRORS = (ResponseError, httpx.HTTPError, ConnectionError)

_DONE_REASONS = {"stop": FinishReason.STOP, "length": FinishReason.LENGTH}


class OllamaSettings(TypedDict, total=False):
    """Ollama settings, loaded with the prefix 'OLLAMA_'.

    Keys:
        host: The Ollama server URL, defaults to ``http://localhost:11434``. (Env var OLLAMA_HOST)
        model_id: The chat model, e.g. ``phi4``. (Env var OLLAMA_MODEL_ID)
        embedding_model_id: The embedding model, e.g. ``nomic-embed-text``.
            (Env var OLLAMA_EMBEDDING_MODEL_ID)
    """

    host: str | None
    model_id: str | None
    embedding_model_id: str | None


def _create_client(host: str | None, http_trace: bool) -> AsyncClient:
    if http_trace:
        return AsyncClient(host=host, event_hooks=HttpTraceHooks().as_event_hooks())
    return AsyncClient(host=host)


@use_function_invocation
class OllamaChatClient(BaseChatClient):
    """Chat client for a local or remote Ollama server.

    Ollama returns no ids, so the client makes them up: each call gets a response id
    that doubles as the message id of the streamed updates, and each tool call gets its
    own call id.
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
        """Create the client.

        Keyword Args:
            host: The server URL, read from OLLAMA_HOST when not given.
            client: An existing ``ollama.AsyncClient``; ``host`` and ``http_trace`` are ignored with it.
            model_id: The chat model, read from OLLAMA_MODEL_ID when not given.
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
            model_id=model_id,
        )
        if not settings["model_id"]:
            raise ServiceInitializationError(
                "Ollama chat model ID must be provided via model_id or OLLAMA_MODEL_ID environment variable."
            )
        client = client or _create_client(settings["host"], http_trace)
        super().__init__(model_id=settings["model_id"], host=str(client._client.base_url), client=client, **kwargs)

    def service_url(self) -> str | None:
        return self.host

    async def _inner_get_response(
        self, *, messages: MutableSequence[ChatMessage], chat_options: ChatOptions, **kwargs: Any
    ) -> ChatResponse:
        request = self._prepare_options(messages, chat_options)
        try:
            response: OllamaChatResponse = await self.client.chat(stream=False, **request)  # type: ignore[misc]
        except OLLAMA_ERRORS as ex:
            raise ServiceResponseException(f"Ollama chat request failed : {ex}", ex) from ex

        message = ChatMessage(Role.ASSISTANT, contents=self._parse_contents(response.message), message_id=str(uuid4()))
        return ChatResponse(
            messages=message,
            model_id=response.model,
            created_at=response.created_at,
            finish_reason=self._parse_finish_reason(response.done_reason),
            usage_details=self._parse_usage(response),
            raw_representation=response,
            response_format=chat_options.response_format,
        )

    async def _inner_get_streaming_response(
        self, *, messages: MutableSequence[ChatMessage], chat_options: ChatOptions, **kwargs: Any
    ) -> AsyncIterable[ChatResponseUpdate]:
        request = self._prepare_options(messages, chat_options)
        response_id = str(uuid4())
        try:
            parts: AsyncIterable[OllamaChatResponse] = await self.client.chat(stream=True, **request)  # type: ignore[misc]
            async for part in parts:
                contents = self._parse_contents(part.message)
                if part.done and (usage := self._parse_usage(part)):
                    contents.append(UsageContent(usage))
                yield ChatResponseUpdate(
                    contents=contents,
                    role=Role.ASSISTANT,
                    response_id=response_id,
                    message_id=response_id,
                    model_id=part.model,
                    created_at=part.created_at,
                    finish_reason=self._parse_finish_reason(part.done_reason),
                    raw_representation=part,
                )
        except OLLAMA_ERRORS as ex:
            raise ServiceResponseException(f"Ollama streaming chat request failed : {ex}", ex) from ex

    def _prepare_options(self, messages: Sequence[ChatMessage], chat_options: ChatOptions) -> dict[str, Any]:
        if chat_options.tool_choice is not None and chat_options.tool_choice.mode == "required":
            raise ServiceInvalidRequestError("Ollama does not support required tool choice.")
        if not messages:
            raise ServiceInvalidRequestError("Messages are required for chat completions")

        model_options = {
            name: value
            for name, value in (
                ("temperature", chat_options.temperature),
                ("top_p", chat_options.top_p),
                ("num_predict", chat_options.max_tokens),
                ("stop", chat_options.stop_sequences or None),
            )
            if value is not None
        }
        request: dict[str, Any] = {
            "model": chat_options.model_id or self.model_id,
            "messages": self._to_ollama_messages(messages),
        }
        if model_options:
            request["options"] = model_options
        if chat_options.response_format is not None:
            request["format"] = chat_options.response_format.model_json_schema()
        if chat_options.tools:
            request["tools"] = self._prepare_tools_for_ollama(chat_options.tools)
        request.update({key: value for key, value in chat_options.additional_properties.items() if value is not None})
        return request

    def _to_ollama_messages(self, messages: Sequence[ChatMessage]) -> list[OllamaMessage]:
        # tool results only carry the call id, Ollama wants the tool name
        tool_names = {
            content.call_id: content.name
            for message in messages
            for content in message.contents
            if isinstance(content, FunctionCallContent)
        }
        converted: list[OllamaMessage] = []
        for message in messages:
            if message.role == Role.SYSTEM:
                converted.append(OllamaMessage(role="system", content=message.text))
            elif message.role == Role.USER:
                converted.append(self._user_message(message))
            elif message.role == Role.ASSISTANT:
                converted.append(self._assistant_message(message))
            else:
                converted.extend(
                    OllamaMessage(
                        role="tool",
                        content=prepare_function_call_results(item.result),
                        tool_name=tool_names.get(item.call_id, item.call_id),
                    )
                    for item in message.contents
                    if isinstance(item, FunctionResultContent)
                )
        return converted

    @staticmethod
    def _user_message(message: ChatMessage) -> OllamaMessage:
        ollama_message = OllamaMessage(role="user", content=message.text)
        images = [item for item in message.contents if isinstance(item, DataContent)]
        if images:
            if not all(item.has_top_level_media_type("image") for item in images):
                raise ServiceInvalidRequestError("Only image data content is supported for user messages in Ollama.")
            ollama_message["images"] = [item.get_base64_data() for item in images]
        return ollama_message

    @staticmethod
    def _assistant_message(message: ChatMessage) -> OllamaMessage:
        thinking = "".join(item.text for item in message.contents if isinstance(item, TextReasoningContent))
        ollama_message = OllamaMessage(role="assistant", content=message.text, thinking=thinking or None)
        calls = [item for item in message.contents if isinstance(item, FunctionCallContent)]
        if calls:
            ollama_message["tool_calls"] = [
                {"function": {"name": call.name, "arguments": call.parse_arguments() or {}}} for call in calls
            ]
        return ollama_message

    @staticmethod
    def _parse_contents(message: OllamaMessage) -> list[Any]:
        contents: list[Any] = []
        if message.thinking:
            contents.append(TextReasoningContent(message.thinking))
        if message.content:
            contents.append(TextContent(message.content))
        contents.extend(
            FunctionCallContent(
                call_id=f"call_{uuid4().hex}",
                name=tool_call.function.name,
                arguments=dict(tool_call.function.arguments or {}),
                raw_representation=tool_call.function,
            )
            for tool_call in message.tool_calls or []
        )
        return contents

    @staticmethod
    def _parse_usage(response: OllamaChatResponse) -> UsageDetails | None:
        if response.prompt_eval_count is None and response.eval_count is None:
            return None
        return UsageDetails(
            input_token_count=response.prompt_eval_count,
            output_token_count=response.eval_count,
            total_token_count=(response.prompt_eval_count or 0) + (response.eval_count or 0),
        )

    @staticmethod
    def _parse_finish_reason(done_reason: str | None) -> FinishReason | None:
        if done_reason and done_reason not in _DONE_REASONS:
            logger.debug("Unknown Ollama done reason: %s", done_reason)
        return _DONE_REASONS.get(done_reason or "")

    @staticmethod
    def _prepare_tools_for_ollama(tools: list[ToolProtocol | MutableMapping[str, Any]]) -> list[dict[str, Any]]:
        prepared: list[dict[str, Any]] = []
        for tool in tools:
            if isinstance(tool, AIFunction):
                prepared.append(tool.to_json_schema_spec())
            elif isinstance(tool, MutableMapping):
                prepared.append(dict(tool))
            else:
                raise ServiceInvalidRequestError(
                    f"Unsupported tool type '{type(tool).__name__}' for Ollama client. "
                    "Supported tool types: AIFunction."
                )
        return prepared
