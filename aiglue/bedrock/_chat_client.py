# Copyright (c) Microsoft. All rights reserved.

import asyncio
import json
import sys
from collections.abc import AsyncIterable, Iterator, MutableMapping, MutableSequence, Sequence
from typing import Any, Final

from boto3.session import Session as Boto3Session
from botocore.client import BaseClient
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import PrivateAttr

from .. import __version__
from .._clients import BaseChatClient
from .._logging import get_logger
from .._settings import SecretString, load_settings
from .._tools import AIFunction, ToolProtocol, use_function_invocation
from .._types import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatResponseUpdate,
    ChatToolMode,
    DataContent,
    FinishReason,
    FunctionCallContent,
    FunctionResultContent,
    Role,
    TextContent,
    UsageContent,
    UsageDetails,
    prepare_function_call_results,
)
from ..exceptions import ServiceInitializationError, ServiceInvalidRequestError, ServiceResponseException

if sys.version_info >= (3, 11):
    from typing import TypedDict  # pragma: no cover
else:
    from typing_extensions import TypedDict  # pragma: no cover

__all__ = ["BedrockChatClient", "BedrockSettings"]

logger = get_logger("aiglue.bedrock")

DEFAULT_REGION: Final[str] = "us-east-1"
DEFAULT_MAX_TOKENS: Final[int] = 1024
USER_AGENT: Final[str] = f"aiglue-python/{__version__}"
TOOL_SCHEMA_KEYS: Final[tuple[str, ...]] = ("type", "properties", "required")

FINISH_REASON_MAP: dict[str, FinishReason] = {
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "content_filtered": FinishReason.CONTENT_FILTER,
    "stop_sequence": FinishReason.STOP,
    "end_turn": FinishReason.STOP,
    "guardrail_intervened": FinishReason.CONTENT_FILTER,
}

DOCUMENT_FORMATS: dict[str, str] = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
}

_STREAM_END = object()


class BedrockSettings(TypedDict, total=False):
    """Bedrock settings, loaded with the prefix 'BEDROCK_'.

    Keys:
        region: The AWS region, defaults to us-east-1. (Env var BEDROCK_REGION)
        chat_model_id: The default model id. (Env var BEDROCK_CHAT_MODEL_ID)
        access_key: The AWS access key id. (Env var BEDROCK_ACCESS_KEY)
        secret_key: The AWS secret access key. (Env var BEDROCK_SECRET_KEY)
        session_token: The AWS session token for temporary credentials. (Env var BEDROCK_SESSION_TOKEN)
    """

    region: str | None
    chat_model_id: str | None
    access_key: SecretString | None
    secret_key: SecretString | None
    session_token: SecretString | None


def _map_finish_reason(reason: str | None) -> FinishReason | None:
    if reason and reason not in FINISH_REASON_MAP:
        logger.debug("Unknown Bedrock stop reason: %s", reason)
    return FINISH_REASON_MAP.get(reason or "")


def _map_role(role: str | None) -> Role:
    # Converse only returns user and assistant messages
    return Role.USER if role == "user" else Role.ASSISTANT


def _parse_usage(usage: MutableMapping[str, Any] | None) -> UsageDetails | None:
    if not usage:
        return None
    return UsageDetails(
        input_token_count=usage.get("inputTokens"),
        output_token_count=usage.get("outputTokens"),
        total_token_count=usage.get("totalTokens"),
    )


@use_function_invocation
class BedrockChatClient(BaseChatClient):
    """Chat client for Anthropic models on Amazon Bedrock, over the Converse and ConverseStream APIs.

    Examples:
        .. code-block:: python

            from aiglue.bedrock import BedrockChatClient

            # Set BEDROCK_REGION, BEDROCK_ACCESS_KEY, BEDROCK_SECRET_KEY and BEDROCK_CHAT_MODEL_ID
            client = BedrockChatClient()
            response = await client.get_response("Tell me a joke.")
    """

    model_id: str | None = None
    region: str = DEFAULT_REGION
    _bedrock_client: BaseClient = PrivateAttr()

    def __init__(
        self,
        *,
        region: str | None = None,
        model_id: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        session_token: str | None = None,
        client: BaseClient | None = None,
        boto3_session: Boto3Session | None = None,
        env_file_path: str | None = None,
        env_file_encoding: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Create a Bedrock chat client.

        Args:
            region: Region to send requests to; falls back to BEDROCK_REGION.
            model_id: Default model id; falls back to BEDROCK_CHAT_MODEL_ID.
            access_key: AWS access key id.
            secret_key: AWS secret access key paired with ``access_key``.
            session_token: AWS session token for temporary credentials.
            client: A preconfigured ``bedrock-runtime`` client; no region check is done for it.
            boto3_session: A boto3 session used to create the runtime client.
            env_file_path: Path of the .env file with the settings.
            env_file_encoding: Encoding of the .env file.
            kwargs: Additional arguments forwarded to ``BaseChatClient``.

        Raises:
            ServiceInitializationError: The region is not a known Bedrock runtime region.
        """
        settings = load_settings(
            BedrockSettings,
            env_prefix="BEDROCK_",
            env_file_path=env_file_path,
            env_file_encoding=env_file_encoding,
            region=region,
            chat_model_id=model_id,
            access_key=access_key,
            secret_key=secret_key,
            session_token=session_token,
        )
        resolved_region = settings["region"] or DEFAULT_REGION
        if client is None:
            session = boto3_session or self._create_session(settings, resolved_region)
            available_regions = session.get_available_regions("bedrock-runtime")
            if available_regions and resolved_region not in available_regions:
                raise ServiceInitializationError(f"Unknown AWS Region: {resolved_region}")
            client = session.client(
                "bedrock-runtime",
                region_name=resolved_region,
                config=BotoConfig(user_agent_extra=USER_AGENT),
            )
        super().__init__(model_id=settings["chat_model_id"], region=resolved_region, **kwargs)
        self._bedrock_client = client

    @staticmethod
    def _create_session(settings: BedrockSettings, region: str) -> Boto3Session:
        session_kwargs: dict[str, Any] = {"region_name": region}
        if settings["access_key"] and settings["secret_key"]:
            session_kwargs["aws_access_key_id"] = settings["access_key"].get_secret_value()
            session_kwargs["aws_secret_access_key"] = settings["secret_key"].get_secret_value()
        if settings["session_token"]:
            session_kwargs["aws_session_token"] = settings["session_token"].get_secret_value()
        return Boto3Session(**session_kwargs)

    def service_url(self) -> str:
        """The Bedrock runtime endpoint of the configured region."""
        return f"https://bedrock-runtime.{self.region}.amazonaws.com"

    async def _inner_get_response(
        self,
        *,
        messages: MutableSequence[ChatMessage],
        chat_options: ChatOptions,
        **kwargs: Any,
    ) -> ChatResponse:
        request = self._build_request(messages, chat_options)
        try:
            response = await asyncio.to_thread(self._bedrock_client.converse, **request)
        except (BotoCoreError, ClientError) as ex:
            raise ServiceResponseException(f"Bedrock converse request failed: {ex}", ex) from ex

        message = response.get("output", {}).get("message", {})
        chat_message = ChatMessage(
            role=_map_role(message.get("role")),
            contents=self._parse_content_blocks(message.get("content") or []),
            raw_representation=message,
        )
        return ChatResponse(
            messages=[chat_message],
            response_id=response.get("ResponseMetadata", {}).get("RequestId"),
            model_id=request["modelId"],
            finish_reason=_map_finish_reason(response.get("stopReason")),
            usage_details=_parse_usage(response.get("usage")),
            additional_properties=response.get("additionalModelResponseFields") or None,
            raw_representation=response,
            response_format=chat_options.response_format,
        )

    async def _inner_get_streaming_response(
        self,
        *,
        messages: MutableSequence[ChatMessage],
        chat_options: ChatOptions,
        **kwargs: Any,
    ) -> AsyncIterable[ChatResponseUpdate]:
        request = self._build_request(messages, chat_options)
        model_id = request["modelId"]
        try:
            response = await asyncio.to_thread(self._bedrock_client.converse_stream, **request)
        except (BotoCoreError, ClientError) as ex:
            raise ServiceResponseException(f"Bedrock converse stream request failed: {ex}", ex) from ex

        role: Role | None = None
        finish_reason: FinishReason | None = None
        additional_properties: dict[str, Any] | None = None
        # block index -> (call id, name, argument chunks)
        tool_uses: dict[int, tuple[str, str, list[str]]] = {}

        def update(contents: list[Any], event: dict[str, Any]) -> ChatResponseUpdate:
            return ChatResponseUpdate(
                contents=contents,
                role=role,
                model_id=model_id,
                finish_reason=finish_reason,
                additional_properties=additional_properties,
                raw_representation=event,
            )

        async for event in self._iterate_stream(iter(response["stream"])):
            if (start := event.get("messageStart")) is not None:
                role = role or _map_role(start.get("role"))
            elif (block_start := event.get("contentBlockStart")) is not None:
                tool_use = block_start.get("start", {}).get("toolUse")
                if tool_use is not None and block_start.get("contentBlockIndex") is not None:
                    tool_uses[block_start["contentBlockIndex"]] = (tool_use["toolUseId"], tool_use["name"], [])
            elif (block_delta := event.get("contentBlockDelta")) is not None:
                delta = block_delta.get("delta", {})
                if (text := delta.get("text")) is not None:
                    yield update([TextContent(text=text)], event)
                tool_input = delta.get("toolUse", {}).get("input")
                index = block_delta.get("contentBlockIndex")
                if tool_input and index in tool_uses:
                    tool_uses[index][2].append(tool_input)
            elif (block_stop := event.get("contentBlockStop")) is not None:
                index = block_stop.get("contentBlockIndex")
                if index in tool_uses:
                    call_id, name, chunks = tool_uses.pop(index)
                    arguments = json.loads("".join(chunks)) if chunks else {}
                    yield update([FunctionCallContent(call_id=call_id, name=name, arguments=arguments)], event)
            elif (stop := event.get("messageStop")) is not None:
                finish_reason = finish_reason or _map_finish_reason(stop.get("stopReason"))
                if additional_properties is None and stop.get("additionalModelResponseFields"):
                    additional_properties = dict(stop["additionalModelResponseFields"])
            elif (metadata := event.get("metadata")) is not None:
                usage = _parse_usage(metadata.get("usage"))
                yield update([UsageContent(details=usage)] if usage else [], event)

    @staticmethod
    async def _iterate_stream(events: Iterator[dict[str, Any]]) -> AsyncIterable[dict[str, Any]]:
        """Pull events from the blocking botocore event stream without blocking the loop."""
        while True:
            try:
                event = await asyncio.to_thread(next, events, _STREAM_END)
            except (BotoCoreError, ClientError) as ex:
                raise ServiceResponseException(f"Bedrock stream failed: {ex}", ex) from ex
            if event is _STREAM_END:
                return
            yield event

    # region request mapping

    def _build_request(self, messages: Sequence[ChatMessage], chat_options: ChatOptions) -> dict[str, Any]:
        model_id = chat_options.model_id or self.model_id
        if not model_id:
            raise ServiceInitializationError(
                "Bedrock model_id is required. Set via chat options or BEDROCK_CHAT_MODEL_ID environment variable."
            )
        system, conversation = self._prepare_messages(messages)
        request: dict[str, Any] = {
            "modelId": model_id,
            "messages": conversation,
            "inferenceConfig": self._inference_config(chat_options),
        }
        if system:
            request["system"] = system
        if tool_config := self._tool_config(chat_options.tools):
            request["toolConfig"] = tool_config
            if tool_choice := self._tool_choice(chat_options.tool_choice):
                request["additionalModelRequestFields"] = {"tool_choice": tool_choice}
        return request

    def _prepare_messages(self, messages: Sequence[ChatMessage]) -> tuple[list[dict[str, str]], list[dict[str, Any]]]:
        system: list[dict[str, str]] = []
        conversation: list[dict[str, Any]] = []
        for message in messages:
            if message.role == Role.SYSTEM:
                system.append({"text": message.text})
                continue
            conversation.append({
                "role": "assistant" if message.role == Role.ASSISTANT else "user",
                "content": [self._content_block(content) for content in message.contents],
            })
        return system, conversation

    def _content_block(self, content: Any) -> dict[str, Any]:
        if isinstance(content, TextContent):
            return {"text": content.text}
        if isinstance(content, DataContent) and content.has_top_level_media_type("image"):
            image_format = (content.media_type or "").split("/", 1)[-1].lower()
            return {
                "image": {
                    "format": "jpeg" if image_format == "jpg" else image_format,
                    "source": {"bytes": content.get_data_bytes()},
                }
            }
        if isinstance(content, DataContent) and content.has_top_level_media_type("application"):
            media_type = (content.media_type or "").lower()
            return {
                "document": {
                    "format": DOCUMENT_FORMATS.get(media_type, media_type.split("/", 1)[-1]),
                    "name": (content.additional_properties or {}).get("name", "document"),
                    "source": {"bytes": content.get_data_bytes()},
                }
            }
        if isinstance(content, FunctionCallContent):
            return {
                "toolUse": {
                    "toolUseId": content.call_id,
                    "name": content.name,
                    "input": content.parse_arguments() or {},
                }
            }
        if isinstance(content, FunctionResultContent):
            text = prepare_function_call_results(content.result)
            if not text and content.exception is not None:
                text = f"Error: {content.exception}"
            return {
                "toolResult": {
                    "toolUseId": content.call_id,
                    "status": "error" if content.exception is not None else "success",
                    "content": [{"text": text}],
                }
            }
        raise ServiceInvalidRequestError(f"Unsupported content type: {type(content).__name__}")

    @staticmethod
    def _inference_config(chat_options: ChatOptions) -> dict[str, Any]:
        config: dict[str, Any] = {"stopSequences": chat_options.stop_sequences}
        if chat_options.temperature is not None:
            config["temperature"] = chat_options.temperature
        if chat_options.top_p is not None:
            config["topP"] = chat_options.top_p
        max_tokens = chat_options.max_tokens
        max_tokens_to_sample = chat_options.additional_properties.get("max_tokens_to_sample")
        if isinstance(max_tokens_to_sample, int) and not isinstance(max_tokens_to_sample, bool):
            max_tokens = max_tokens_to_sample
        config["maxTokens"] = max_tokens if max_tokens is not None else DEFAULT_MAX_TOKENS
        return config

    @staticmethod
    def _tool_config(tools: list[ToolProtocol | MutableMapping[str, Any]] | None) -> dict[str, Any] | None:
        if not tools:
            return None
        converted: list[dict[str, Any]] = []
        for tool in tools:
            if isinstance(tool, MutableMapping):
                converted.append(dict(tool))
            elif isinstance(tool, AIFunction):
                schema = tool.parameters()
                converted.append({
                    "toolSpec": {
                        "name": tool.name,
                        "description": tool.description,
                        "inputSchema": {"json": {key: schema[key] for key in TOOL_SCHEMA_KEYS if key in schema}},
                    }
                })
            else:
                logger.debug("Ignoring unsupported tool type for Bedrock: %s", type(tool))
        return {"tools": converted} if converted else None

    @staticmethod
    def _tool_choice(tool_choice: Any) -> dict[str, Any] | None:
        if not isinstance(tool_choice, ChatToolMode) or tool_choice.mode != "required":
            return None
        if tool_choice.required_function_name:
            return {"type": "tool", "name": tool_choice.required_function_name}
        return {"type": "any"}

    # region response mapping

    @staticmethod
    def _parse_content_blocks(blocks: Sequence[MutableMapping[str, Any]]) -> list[Any]:
        contents: list[Any] = []
        for block in blocks:
            if (text := block.get("text")) is not None:
                contents.append(TextContent(text=text, raw_representation=block))
            elif (tool_use := block.get("toolUse")) is not None:
                contents.append(
                    FunctionCallContent(
                        call_id=tool_use["toolUseId"],
                        name=tool_use["name"],
                        arguments=tool_use.get("input") or {},
                        raw_representation=block,
                    )
                )
            else:
                logger.debug("Ignoring unsupported Bedrock content block: %s", block)
        return contents
