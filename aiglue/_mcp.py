# Copyright (c) Microsoft. All rights reserved.

import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Annotated, Any

from mcp import types
from mcp.server.lowlevel import Server

from ._logging import get_logger
from ._prompts import PromptTemplate, PromptTemplateConfig
from ._tools import AIFunction, ai_function
from ._types import ChatMessage, DataContent, Role, TextContent, prepare_function_call_results

if sys.version_info >= (3, 12):
    from typing import override  # type: ignore # pragma: no cover
else:
    from typing_extensions import override  # type: ignore[import] # pragma: no cover

__all__ = [
    "FunctionServerPrompt",
    "McpPromptServer",
    "McpServerPrompt",
    "TemplateServerPrompt",
    "joke_prompt",
]

logger = get_logger("aiglue.mcp")


def _prepare_content_for_mcp(content: Any) -> types.TextContent | types.ImageContent | None:
    """Prepare an aiglue content type for an MCP prompt message."""
    if isinstance(content, TextContent):
        return types.TextContent(type="text", text=content.text)
    if isinstance(content, DataContent) and content.has_top_level_media_type("image"):
        return types.ImageContent(type="image", data=content.get_base64_data(), mimeType=content.media_type)
    return None


def _prepare_message_for_mcp(message: ChatMessage) -> list[types.PromptMessage]:
    # MCP prompt messages only know the user and assistant roles
    role = "assistant" if message.role == Role.ASSISTANT else "user"
    return [
        types.PromptMessage(role=role, content=mcp_content)
        for content in message.contents
        if (mcp_content := _prepare_content_for_mcp(content)) is not None
    ]


def _user_text_message(text: str) -> types.PromptMessage:
    return types.PromptMessage(role="user", content=types.TextContent(type="text", text=text))


class McpServerPrompt(ABC):
    """A prompt served over the Model Context Protocol."""

    @property
    @abstractmethod
    def protocol_prompt(self) -> types.Prompt:
        """The prompt as listed to MCP clients."""
        ...

    @property
    def name(self) -> str:
        return self.protocol_prompt.name

    @abstractmethod
    async def get(self, arguments: Mapping[str, Any] | None = None) -> types.GetPromptResult:
        """Produce the prompt messages for the given arguments."""
        ...


class TemplateServerPrompt(McpServerPrompt):
    """Serves a prompt template; getting the prompt renders it into one user message.

    Example:
        .. code-block:: python

            from aiglue import STORY_PROMPT_CONFIG, TemplateServerPrompt

            story = TemplateServerPrompt(STORY_PROMPT_CONFIG)
            result = await story.get({"topic": "a dragon", "length": "3"})
    """

    def __init__(self, config: PromptTemplateConfig, plugins: Mapping[str, Any] | None = None) -> None:
        self._template = PromptTemplate(config, plugins)
        self._protocol_prompt = types.Prompt(
            name=config.name or self.__class__.__name__,
            description=config.description or None,
            arguments=[
                types.PromptArgument(
                    name=variable.name,
                    description=variable.description or None,
                    required=variable.is_required,
                )
                for variable in self._template.config.input_variables
            ],
        )

    @property
    @override
    def protocol_prompt(self) -> types.Prompt:
        return self._protocol_prompt

    @override
    async def get(self, arguments: Mapping[str, Any] | None = None) -> types.GetPromptResult:
        text = await self._template.render(arguments)
        return types.GetPromptResult(messages=[_user_text_message(text)])


class FunctionServerPrompt(McpServerPrompt):
    """Serves an AIFunction; the function result becomes the prompt messages."""

    def __init__(self, function: AIFunction[Any, Any]) -> None:
        self.function = function
        parameters = function.parameters()
        required = set(parameters.get("required", []))
        self._protocol_prompt = types.Prompt(
            name=function.name,
            description=function.description or None,
            arguments=[
                types.PromptArgument(
                    name=name,
                    description=schema.get("description"),
                    required=name in required,
                )
                for name, schema in parameters.get("properties", {}).items()
            ],
        )

    @classmethod
    def create(cls, function: AIFunction[Any, Any]) -> "FunctionServerPrompt":
        return cls(function)

    @property
    @override
    def protocol_prompt(self) -> types.Prompt:
        return self._protocol_prompt

    @override
    async def get(self, arguments: Mapping[str, Any] | None = None) -> types.GetPromptResult:
        args = self.function.input_model.model_validate(dict(arguments or {}))
        result = await self.function.invoke(arguments=args)
        if isinstance(result, types.GetPromptResult):
            return result
        if isinstance(result, ChatMessage):
            result = [result]
        if isinstance(result, list) and all(isinstance(item, ChatMessage) for item in result):
            messages = [prompt_message for message in result for prompt_message in _prepare_message_for_mcp(message)]
        else:
            messages = [_user_text_message(prepare_function_call_results(result))]
        return types.GetPromptResult(description=self.function.description or None, messages=messages)


@ai_function(name="Joke", description="Tell a joke about a topic.")
def joke_prompt(topic: Annotated[str, "The topic of the joke."]) -> list[ChatMessage]:
    logger.info("Generating prompt with topic: %s", topic)
    return [ChatMessage(role=Role.USER, text=f"Tell a joke about {topic}.")]


class McpPromptServer:
    """A low-level MCP server that lists and renders prompts.

    Examples:
        .. code-block:: python

            from mcp.server.stdio import stdio_server

            prompt_server = McpPromptServer("prompts", [TemplateServerPrompt(STORY_PROMPT_CONFIG)])
            async with stdio_server() as (read_stream, write_stream):
                await prompt_server.server.run(
                    read_stream, write_stream, prompt_server.server.create_initialization_options()
                )
    """

    def __init__(self, name: str, prompts: Iterable[McpServerPrompt] | None = None) -> None:
        self._prompts: dict[str, McpServerPrompt] = {}
        for prompt in prompts or []:
            self.add(prompt)
        self.server: Server = Server(name)
        self.server.list_prompts()(self.list_prompts)
        self.server.get_prompt()(self.get_prompt)

    @property
    def prompts(self) -> list[McpServerPrompt]:
        return list(self._prompts.values())

    def add(self, prompt: McpServerPrompt) -> None:
        if prompt.name in self._prompts:
            raise ValueError(f"A prompt named '{prompt.name}' is already registered.")
        self._prompts[prompt.name] = prompt

    async def list_prompts(self) -> list[types.Prompt]:
        return [prompt.protocol_prompt for prompt in self._prompts.values()]

    async def get_prompt(self, name: str, arguments: dict[str, str] | None = None) -> types.GetPromptResult:
        prompt = self._prompts.get(name)
        if prompt is None:
            raise ValueError(f"Unknown prompt: '{name}'")
        logger.debug("Getting prompt %s", name)
        return await prompt.get(arguments)

    async def run_stdio(self) -> None:
        """Serve the prompts over stdin and stdout until the client disconnects."""
        from mcp.server.stdio import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
