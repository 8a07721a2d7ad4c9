# Copyright (c) Microsoft. All rights reserved.

import base64
import json
import re
from collections.abc import AsyncIterable, Iterable, MutableMapping, Sequence
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ._logging import get_logger
from ._pydantic import AIGlueBaseModel
from ._tools import ToolProtocol, ai_function

__all__ = [
    "ChatMessage",
    "ChatOptions",
    "ChatResponse",
    "ChatResponseUpdate",
    "ChatToolMode",
    "Contents",
    "DataContent",
    "FinishReason",
    "FunctionCallContent",
    "FunctionResultContent",
    "Role",
    "TextContent",
    "TextReasoningContent",
    "UsageContent",
    "UsageDetails",
    "prepare_function_call_results",
]

logger = get_logger("aiglue.types")

_DATA_URI = re.compile(r"^data:(?P<media_type>[^;,]+)(;[^,]*)?;base64,(?P<data>[A-Za-z0-9+/=]*)$")


class Role(str, Enum):
    """Who wrote a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    def __str__(self) -> str:
        return self.value


class FinishReason(str, Enum):
    """Why the model stopped producing output."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"

    def __str__(self) -> str:
        return self.value


def _sum_counts(first: int | None, second: int | None) -> int | None:
    if first is None and second is None:
        return None
    return (first or 0) + (second or 0)


class UsageDetails(AIGlueBaseModel):
    """Token counts reported by a service for one request."""

    input_token_count: int | None = None
    output_token_count: int | None = None
    total_token_count: int | None = None

    def __add__(self, other: "UsageDetails | None") -> "UsageDetails":
        if other is None:
            return self
        if not isinstance(other, UsageDetails):
            return NotImplemented
        return UsageDetails(**{
            name: _sum_counts(getattr(self, name), getattr(other, name)) for name in UsageDetails.model_fields
        })


# region Contents


class BaseContent(AIGlueBaseModel):
    additional_properties: dict[str, Any] | None = None
    raw_representation: Any | None = Field(default=None, repr=False, exclude=True)


class _TextBase(BaseContent):
    text: str

    def __init__(self, text: str, **kwargs: Any) -> None:
        super().__init__(text=text, **kwargs)  # type: ignore[reportCallIssue]

    def __add__(self, other: Any) -> Any:
        # text and reasoning never mix, even though both carry text
        if type(other) is not type(self):
            raise TypeError(f"Cannot add {type(other).__name__} to {type(self).__name__}")
        properties = {**(self.additional_properties or {}), **(other.additional_properties or {})}
        return type(self)(self.text + other.text, additional_properties=properties or None)


class TextContent(_TextBase):
    """Text written by a user or a model."""

    type: Literal["text"] = "text"


class TextReasoningContent(_TextBase):
    """The reasoning a model reports next to its answer."""

    type: Literal["text_reasoning"] = "text_reasoning"


class DataContent(BaseContent):
    """Binary data carried as a base64 data URI, for images and documents.

    Either pass ``uri`` or pass ``data`` with ``media_type``; the media type is read from
    the URI when it is not given.
    """

    type: Literal["data"] = "data"
    uri: str
    media_type: str | None = None

    def __init__(
        self,
        *,
        uri: str | None = None,
        data: bytes | None = None,
        media_type: str | None = None,
        **kwargs: Any,
    ) -> None:
        if uri is None:
            if data is None or media_type is None:
                raise ValueError("Either 'data' and 'media_type' or 'uri' must be provided.")
            uri = f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"
        if media_type is None and (match := _DATA_URI.match(uri)):
            media_type = match.group("media_type")
        super().__init__(uri=uri, media_type=media_type, **kwargs)  # type: ignore[reportCallIssue]

    @field_validator("uri")
    @classmethod
    def _check_uri(cls, uri: str) -> str:
        if not _DATA_URI.match(uri):
            raise ValueError(f"Invalid data URI format: {uri[:64]}")
        return uri

    def get_base64_data(self) -> str:
        return self.uri.split(",", 1)[1]

    def get_data_bytes(self) -> bytes:
        return base64.b64decode(self.get_base64_data())

    def has_top_level_media_type(self, top_level_media_type: Literal["application", "audio", "image", "text"]) -> bool:
        """Check the part of the media type before the slash, e.g. ``image`` for ``image/png``."""
        if not self.media_type:
            return False
        return self.media_type.partition("/")[0].lower() == top_level_media_type


class FunctionCallContent(BaseContent):
    """A model's request to call a tool.

    Attributes:
        call_id: Identifies the call; the matching result carries the same id.
        name: The tool to call.
        arguments: A JSON string or an already parsed dict.
    """

    type: Literal["function_call"] = "function_call"
    call_id: str
    name: str
    arguments: str | dict[str, Any] | None = None

    def parse_arguments(self) -> dict[str, Any] | None:
        """The arguments as a dict; text that is not a JSON object lands under ``raw``."""
        if not isinstance(self.arguments, str):
            return self.arguments
        if not self.arguments:
            return {}
        try:
            parsed = json.loads(self.arguments)
        except json.JSONDecodeError:
            return {"raw": self.arguments}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}


class FunctionResultContent(BaseContent):
    """The outcome of a tool call: a result, or the exception it raised."""

    type: Literal["function_result"] = "function_result"
    call_id: str
    result: Any | None = None
    exception: Exception | None = None


class UsageContent(BaseContent):
    type: Literal["usage"] = "usage"
    details: UsageDetails

    def __init__(self, details: UsageDetails, **kwargs: Any) -> None:
        super().__init__(details=details, **kwargs)  # type: ignore[reportCallIssue]


Contents = Annotated[
    TextContent | TextReasoningContent | DataContent | FunctionCallContent | FunctionResultContent | UsageContent,
    Field(discriminator="type"),
]


def prepare_function_call_results(result: Any) -> str:
    """Serialize a function result to the text sent back to a model.

    Strings are returned as is, pydantic models and plain values are dumped as JSON
    and anything that cannot be serialized falls back to ``str()``.
    """
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json(exclude_none=True)
    if isinstance(result, list) and all(isinstance(item, BaseModel) for item in result):
        return json.dumps([item.model_dump(mode="json", exclude_none=True) for item in result])
    try:
        return json.dumps(result)
    except (TypeError, ValueError):
        return str(result)


# region Messages and responses


class ChatMessage(AIGlueBaseModel):
    role: Role
    contents: list[Contents] = Field(default_factory=list)
    message_id: str | None = None
    raw_representation: Any | None = Field(default=None, repr=False, exclude=True)

    def __init__(
        self,
        role: Role | str,
        *,
        text: str | None = None,
        contents: Iterable[Any] | None = None,
        **kwargs: Any,
    ) -> None:
        items = list(contents or [])
        if text is not None:
            items.append(TextContent(text))
        super().__init__(role=role, contents=items, **kwargs)  # type: ignore[reportCallIssue]

    @property
    def text(self) -> str:
        """The text contents joined with spaces."""
        return " ".join(content.text for content in self.contents if isinstance(content, TextContent))


def _merge_adjacent_text(contents: Sequence[Any]) -> list[Any]:
    merged: list[Any] = []
    for content in contents:
        if isinstance(content, _TextBase) and merged and type(merged[-1]) is type(content):
            merged[-1] = merged[-1] + content
        else:
            merged.append(content)
    return merged


class ChatResponse(AIGlueBaseModel):
    """A model's answer: one or more messages plus what the service reported about them.

    Attributes:
        value: The parsed structured output, when a ``response_format`` was requested.
        raw_representation: The service response, or the list of streamed chunks.
    """

    messages: list[ChatMessage] = Field(default_factory=list)
    response_id: str | None = None
    model_id: str | None = None
    created_at: str | None = None
    finish_reason: FinishReason | None = None
    usage_details: UsageDetails | None = None
    value: Any | None = None
    additional_properties: dict[str, Any] | None = None
    raw_representation: Any | None = Field(default=None, repr=False, exclude=True)

    def __init__(
        self,
        *,
        messages: ChatMessage | Iterable[ChatMessage] | None = None,
        text: str | None = None,
        response_format: type[BaseModel] | None = None,
        **kwargs: Any,
    ) -> None:
        items = [messages] if isinstance(messages, ChatMessage) else list(messages or [])
        if text is not None:
            items.append(ChatMessage(Role.ASSISTANT, text=text))
        super().__init__(messages=items, **kwargs)  # type: ignore[reportCallIssue]
        if response_format is not None:
            self.try_parse_value(response_format)

    @classmethod
    def from_chat_response_updates(
        cls, updates: Iterable["ChatResponseUpdate"], *, output_format_type: type[BaseModel] | None = None
    ) -> "ChatResponse":
        """Fold streamed updates into one response."""
        response = cls()
        for update in updates:
            response._apply_update(update)
        response._complete(output_format_type)
        return response

    @classmethod
    async def from_chat_response_generator(
        cls, updates: AsyncIterable["ChatResponseUpdate"], *, output_format_type: type[BaseModel] | None = None
    ) -> "ChatResponse":
        """Consume a stream of updates and fold them into one response."""
        response = cls()
        async for update in updates:
            response._apply_update(update)
        response._complete(output_format_type)
        return response

    def _apply_update(self, update: "ChatResponseUpdate") -> None:
        last = self.messages[-1] if self.messages else None
        if (
            last is None
            or (update.role is not None and update.role != last.role)
            or (update.message_id is not None and last.message_id not in (None, update.message_id))
        ):
            last = ChatMessage(update.role or Role.ASSISTANT, message_id=update.message_id)
            self.messages.append(last)
        elif last.message_id is None and update.message_id is not None:
            last.message_id = update.message_id

        for content in update.contents:
            if isinstance(content, UsageContent):
                self.usage_details = content.details + self.usage_details
            else:
                last.contents.append(content)

        for name in ("response_id", "model_id", "created_at", "finish_reason"):
            if (value := getattr(update, name)) is not None:
                setattr(self, name, value)
        if update.additional_properties:
            self.additional_properties = {**(self.additional_properties or {}), **update.additional_properties}
        self.raw_representation = [*(self.raw_representation or []), update.raw_representation]

    def _complete(self, output_format_type: type[BaseModel] | None) -> None:
        for message in self.messages:
            message.contents = _merge_adjacent_text(message.contents)
        if output_format_type is not None:
            self.try_parse_value(output_format_type)

    @property
    def text(self) -> str:
        return "\n".join(message.text for message in self.messages).strip()

    def __str__(self) -> str:
        return self.text

    def try_parse_value(self, output_format_type: type[BaseModel]) -> None:
        """Parse the text into ``output_format_type`` unless a value is already set."""
        if self.value is not None:
            return
        try:
            self.value = output_format_type.model_validate_json(self.text)
        except ValidationError as ex:
            logger.debug("Response text is not a valid %s: %s", output_format_type.__name__, ex)


class ChatResponseUpdate(AIGlueBaseModel):
    """One chunk of a streamed response."""

    contents: list[Contents] = Field(default_factory=list)
    role: Role | None = None
    response_id: str | None = None
    message_id: str | None = None
    model_id: str | None = None
    created_at: str | None = None
    finish_reason: FinishReason | None = None
    additional_properties: dict[str, Any] | None = None
    raw_representation: Any | None = Field(default=None, repr=False, exclude=True)

    def __init__(self, *, text: str | None = None, contents: Iterable[Any] | None = None, **kwargs: Any) -> None:
        items = list(contents or [])
        if text is not None:
            items.append(TextContent(text))
        super().__init__(contents=items, **kwargs)  # type: ignore[reportCallIssue]

    @property
    def text(self) -> str:
        return "".join(content.text for content in self.contents if isinstance(content, TextContent))

    def __str__(self) -> str:
        return self.text


# region Options


class ChatToolMode(AIGlueBaseModel):
    """Whether the model may, must or must not call tools.

    ``REQUIRED("name")`` forces one specific tool, ``REQUIRED_ANY`` forces any tool.
    """

    model_config = ConfigDict(frozen=True)

    mode: Literal["auto", "required", "none"]
    required_function_name: str | None = None

    AUTO: ClassVar["ChatToolMode"]
    REQUIRED_ANY: ClassVar["ChatToolMode"]
    NONE: ClassVar["ChatToolMode"]

    @classmethod
    def REQUIRED(cls, function_name: str | None = None) -> "ChatToolMode":  # noqa: N802
        return cls(mode="required", required_function_name=function_name)


ChatToolMode.AUTO = ChatToolMode(mode="auto")
ChatToolMode.REQUIRED_ANY = ChatToolMode(mode="required")
ChatToolMode.NONE = ChatToolMode(mode="none")

_TOOL_MODES: dict[str, ChatToolMode] = {
    "auto": ChatToolMode.AUTO,
    "required": ChatToolMode.REQUIRED_ANY,
    "none": ChatToolMode.NONE,
}


class ChatOptions(AIGlueBaseModel):
    """Request settings shared by the chat clients.

    Attributes:
        tools: AIFunctions, or raw tool dicts passed to the service unchanged.
            Plain callables are wrapped with ``ai_function``.
        tool_choice: A ``ChatToolMode`` or one of ``"auto"``, ``"required"`` and ``"none"``.
        additional_properties: Provider specific settings, e.g. ``max_tokens_to_sample``
            for Bedrock or ``keep_alive`` for Ollama.
    """

    model_id: str | None = None
    max_tokens: Annotated[int | None, Field(gt=0)] = None
    temperature: Annotated[float | None, Field(ge=0.0, le=2.0)] = None
    top_p: Annotated[float | None, Field(ge=0.0, le=1.0)] = None
    stop: str | list[str] | None = None
    response_format: type[BaseModel] | None = None
    tool_choice: ChatToolMode | None = None
    tools: list[ToolProtocol | MutableMapping[str, Any]] | None = None
    additional_properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tools", mode="before")
    @classmethod
    def _wrap_callables(cls, tools: Any) -> list[Any] | None:
        if not tools:
            return None
        items: list[Any] = tools if isinstance(tools, list) else [tools]
        return [
            ai_function(tool) if callable(tool) and not isinstance(tool, (ToolProtocol, MutableMapping)) else tool
            for tool in items
        ]

    @field_validator("tool_choice", mode="before")
    @classmethod
    def _parse_tool_choice(cls, tool_choice: Any) -> Any:
        if not tool_choice:
            return None
        if isinstance(tool_choice, str):
            if tool_choice not in _TOOL_MODES:
                raise ValueError(f"Invalid tool choice: {tool_choice}")
            return _TOOL_MODES[tool_choice]
        return tool_choice

    @property
    def stop_sequences(self) -> list[str]:
        if self.stop is None:
            return []
        return [self.stop] if isinstance(self.stop, str) else list(self.stop)
