# Copyright (c) Microsoft. All rights reserved.

import asyncio
import inspect
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable, MutableMapping, Sequence
from functools import wraps
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Final,
    Generic,
    Protocol,
    TypeVar,
    get_args,
    get_origin,
    runtime_checkable,
)

from pydantic import BaseModel, Field, create_model

from ._logging import get_logger
from ._pydantic import AIGlueBaseModel
from .exceptions import ChatClientInitializationError, ToolException

if TYPE_CHECKING:
    from ._clients import ChatClientProtocol
    from ._types import ChatMessage, ChatResponse, ChatResponseUpdate, FunctionCallContent, FunctionResultContent

__all__ = [
    "FUNCTION_INVOKING_CHAT_CLIENT_MARKER",
    "AIFunction",
    "ToolProtocol",
    "ai_function",
    "execute_function_calls",
    "use_function_invocation",
]

logger = get_logger("aiglue.tools")

FUNCTION_INVOKING_CHAT_CLIENT_MARKER: Final[str] = "__function_invoking_chat_client__"
MAX_FUNCTION_ROUNDS: Final[int] = 10

TChatClient = TypeVar("TChatClient", bound="ChatClientProtocol")
ArgsT = TypeVar("ArgsT", bound=BaseModel)
ReturnT = TypeVar("ReturnT")


@runtime_checkable
class ToolProtocol(Protocol):
    """Anything a chat client can describe to a model as a tool."""

    name: str
    description: str
    additional_properties: dict[str, Any] | None


class AIFunction(AIGlueBaseModel, Generic[ArgsT, ReturnT]):
    """A Python callable exposed to a model as a tool.

    The ``input_model`` validates the model's arguments and provides the JSON schema
    advertised to the service.
    """

    name: str
    description: str = ""
    additional_properties: dict[str, Any] | None = None
    func: Callable[..., Awaitable[ReturnT] | ReturnT]
    input_model: type[ArgsT]

    def __call__(self, *args: Any, **kwargs: Any) -> ReturnT | Awaitable[ReturnT]:
        return self.func(*args, **kwargs)

    def __str__(self) -> str:
        return f"{type(self).__name__}(name={self.name})"

    async def invoke(self, *, arguments: ArgsT | None = None, **kwargs: Any) -> ReturnT:
        """Run the function, awaiting it when it is a coroutine function.

        Args:
            arguments: Validated arguments; when given, ``kwargs`` are ignored.
            kwargs: Keyword arguments passed straight to the function.
        """
        if arguments is not None:
            if not isinstance(arguments, self.input_model):
                raise TypeError(f"Expected {self.input_model.__name__}, got {type(arguments).__name__}")
            kwargs = arguments.model_dump(exclude_none=True)
        logger.info("Invoking function %s", self.name)
        logger.debug("Arguments for %s: %s", self.name, kwargs)
        try:
            result = self(**kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as ex:
            logger.error("Function %s raised: %s", self.name, ex)
            raise
        logger.debug("Function %s returned: %s", self.name, result)
        return result  # type: ignore[return-value]

    def parameters(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()

    def to_json_schema_spec(self) -> dict[str, Any]:
        """The function described in the OpenAI style tool format Ollama also accepts."""
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": self.parameters()},
        }


def _field_for(param: inspect.Parameter) -> tuple[Any, Any]:
    annotation = str if param.annotation is inspect.Parameter.empty else param.annotation
    default = ... if param.default is inspect.Parameter.empty else param.default
    if get_origin(annotation) is Annotated:
        base, *metadata = get_args(annotation)
        descriptions = [item for item in metadata if isinstance(item, str)]
        if descriptions:
            return base, Field(default, description=descriptions[0])
    return annotation, default


def ai_function(
    func: Callable[..., ReturnT | Awaitable[ReturnT]] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    additional_properties: dict[str, Any] | None = None,
) -> Any:
    """Wrap a function as an ``AIFunction``, directly or as a decorator.

    The name defaults to the function's name and the description to its docstring.
    A string in ``Annotated`` becomes the parameter description:

    Example:

        .. code-block:: python

            from typing import Annotated


            @ai_function(name="Weather")
            def get_weather(city: Annotated[str, "The city to look up."]) -> str:
                return f"It is sunny in {city}."
    """

    def decorator(f: Callable[..., ReturnT | Awaitable[ReturnT]]) -> AIFunction[Any, ReturnT]:
        tool_name = name or getattr(f, "__name__", "function")
        fields = {
            param_name: _field_for(param)
            for param_name, param in inspect.signature(f).parameters.items()
            if param_name not in ("self", "cls")
            and param.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        }
        return AIFunction[Any, ReturnT](
            name=tool_name,
            description=description or inspect.getdoc(f) or "",
            additional_properties=additional_properties or {},
            func=f,
            input_model=create_model(f"{tool_name}_input", **fields),  # type: ignore[call-overload]
        )

    return decorator(func) if func is not None else decorator


# region Function invocation


def _tool_map(tools: Any) -> dict[str, AIFunction[Any, Any]]:
    """Index the callable tools by name; raw tool dicts cannot be invoked locally and are skipped."""
    items = tools if isinstance(tools, Sequence) else [tools]
    mapped: dict[str, AIFunction[Any, Any]] = {}
    for tool in items:
        if not isinstance(tool, AIFunction) and callable(tool) and not isinstance(tool, MutableMapping):
            tool = ai_function(tool)
        if isinstance(tool, AIFunction):
            mapped[tool.name] = tool
    return mapped


async def _invoke_function_call(
    call: "FunctionCallContent",
    tool_map: dict[str, AIFunction[Any, Any]],
    custom_args: dict[str, Any],
) -> "FunctionResultContent":
    from ._types import FunctionResultContent

    tool = tool_map.get(call.name)
    if tool is None:
        return FunctionResultContent(
            call_id=call.call_id, exception=ToolException(f"No tool or function named '{call.name}'")
        )
    # caller kwargs fill in only the parameters the tool declares; the model's arguments win
    arguments = {key: value for key, value in custom_args.items() if key in tool.input_model.model_fields}
    arguments.update(call.parse_arguments() or {})
    try:
        result = await tool.invoke(arguments=tool.input_model.model_validate(arguments))
    except Exception as ex:
        return FunctionResultContent(call_id=call.call_id, exception=ex)
    return FunctionResultContent(call_id=call.call_id, result=result)


async def execute_function_calls(
    function_calls: Sequence["FunctionCallContent"],
    tools: Any,
    custom_args: dict[str, Any] | None = None,
) -> list["FunctionResultContent"]:
    """Run the calls concurrently; results keep the order of the calls.

    A failing call, or a call to an unknown tool, yields a result carrying the exception.
    """
    tool_map = _tool_map(tools)
    return list(
        await asyncio.gather(*(_invoke_function_call(call, tool_map, custom_args or {}) for call in function_calls))
    )


def _tools_from(kwargs: dict[str, Any]) -> Any:
    from ._types import ChatOptions

    if tools := kwargs.get("tools"):
        return tools
    chat_options = kwargs.get("chat_options")
    return chat_options.tools if isinstance(chat_options, ChatOptions) else None


def _pending_calls(messages: Iterable["ChatMessage"]) -> list["FunctionCallContent"]:
    """Function calls in the messages that have no result yet."""
    from ._types import FunctionCallContent, FunctionResultContent

    contents = [content for message in messages for content in message.contents]
    answered = {content.call_id for content in contents if isinstance(content, FunctionResultContent)}
    return [
        content for content in contents if isinstance(content, FunctionCallContent) and content.call_id not in answered
    ]


def _handle_function_calls_response(
    func: Callable[..., Awaitable["ChatResponse"]],
) -> Callable[..., Awaitable["ChatResponse"]]:
    @wraps(func)
    async def wrapper(self: "ChatClientProtocol", messages: Any, **kwargs: Any) -> "ChatResponse":
        from ._clients import prepare_messages
        from ._types import ChatMessage, Role

        conversation = prepare_messages(messages)
        history: list[ChatMessage] = []
        for _ in range(MAX_FUNCTION_ROUNDS):
            response = await func(self, conversation, **kwargs)
            calls = _pending_calls(response.messages)
            tools = _tools_from(kwargs)
            if not calls or not tools:
                break
            results = await execute_function_calls(calls, tools, kwargs)
            response.messages.append(ChatMessage(Role.TOOL, contents=results))
            history.extend(response.messages)
            conversation.extend(response.messages)
        else:
            logger.info("Reached %d function call rounds, asking for an answer without tools", MAX_FUNCTION_ROUNDS)
            response = await func(self, conversation, **{**kwargs, "tool_choice": "none"})
        response.messages[:0] = history
        return response

    return wrapper


def _handle_function_calls_streaming_response(
    func: Callable[..., AsyncIterable["ChatResponseUpdate"]],
) -> Callable[..., AsyncIterable["ChatResponseUpdate"]]:
    @wraps(func)
    async def wrapper(self: "ChatClientProtocol", messages: Any, **kwargs: Any) -> AsyncIterable["ChatResponseUpdate"]:
        from ._clients import prepare_messages
        from ._types import ChatMessage, ChatResponse, ChatResponseUpdate, Role

        conversation = prepare_messages(messages)
        for _ in range(MAX_FUNCTION_ROUNDS):
            updates: list[ChatResponseUpdate] = []
            async for update in func(self, conversation, **kwargs):
                updates.append(update)
                yield update
            response = ChatResponse.from_chat_response_updates(updates)
            calls = _pending_calls(response.messages)
            tools = _tools_from(kwargs)
            if not calls or not tools:
                return
            results = await execute_function_calls(calls, tools, kwargs)
            yield ChatResponseUpdate(role=Role.TOOL, contents=results)
            conversation.extend(response.messages)
            conversation.append(ChatMessage(Role.TOOL, contents=results))

        logger.info("Reached %d function call rounds, asking for an answer without tools", MAX_FUNCTION_ROUNDS)
        async for update in func(self, conversation, **{**kwargs, "tool_choice": "none"}):
            yield update

    return wrapper


def use_function_invocation(chat_client: type[TChatClient]) -> type[TChatClient]:
    """Class decorator that runs the tools a model asks for and sends the results back.

    Both ``get_response`` and ``get_streaming_response`` are wrapped. Applying it twice
    is a no-op.
    """
    if getattr(chat_client, FUNCTION_INVOKING_CHAT_CLIENT_MARKER, False):
        return chat_client
    wrappers = {
        "get_response": _handle_function_calls_response,
        "get_streaming_response": _handle_function_calls_streaming_response,
    }
    for method_name, wrap in wrappers.items():
        method = getattr(chat_client, method_name, None)
        if method is None:
            raise ChatClientInitializationError(
                f"Chat client {chat_client.__name__} has no {method_name} method, cannot apply function invocation."
            )
        setattr(chat_client, method_name, wrap(method))
    setattr(chat_client, FUNCTION_INVOKING_CHAT_CLIENT_MARKER, True)
    return chat_client
