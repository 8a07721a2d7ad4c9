# Copyright (c) Microsoft. All rights reserved.

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, create_model
from semantic_kernel import Kernel
from semantic_kernel.core_plugins import TextPlugin, TimePlugin
from semantic_kernel.exceptions import KernelException
from semantic_kernel.functions import KernelArguments
from semantic_kernel.prompt_template import InputVariable, KernelPromptTemplate, PromptTemplateConfig

from ._logging import get_logger
from ._tools import AIFunction
from .exceptions import PromptRenderingException, PromptTemplateException

__all__ = [
    "DAY_PROMPT_CONFIG",
    "HUMOR_PROMPT_CONFIG",
    "STORY_PROMPT_CONFIG",
    "InputVariable",
    "PromptTemplate",
    "PromptTemplateConfig",
    "TemplateAIFunction",
]

logger = get_logger("aiglue.prompts")


def _has_default(variable: InputVariable) -> bool:
    # Semantic Kernel uses "" for a variable without a default
    return variable.default not in (None, "")


class PromptTemplate:
    """A Semantic Kernel prompt template bound to a kernel holding its plugins.

    The template syntax is the Semantic Kernel one: ``{{$name}}`` reads an argument,
    ``{{plugin.function}}`` calls a plugin function and arguments are passed positionally
    or by name, e.g. ``{{text.uppercase input=$topic}}``. The ``time`` and ``text`` core
    plugins are always registered unless ``plugins`` replaces them.

    Argument values and function results are HTML escaped unless the config, or the
    variable, sets ``allow_dangerously_set_content``.

    Args:
        config: The template configuration; it is copied, variables the template uses
            but does not declare are added to the copy as required.
        plugins: Objects with ``@kernel_function`` methods, keyed by plugin name.
    """

    def __init__(self, config: PromptTemplateConfig, plugins: Mapping[str, Any] | None = None) -> None:
        self.kernel = Kernel()
        for plugin_name, plugin in {"time": TimePlugin(), "text": TextPlugin(), **(plugins or {})}.items():
            self.kernel.add_plugin(plugin, plugin_name=plugin_name)
        try:
            self._template = KernelPromptTemplate(prompt_template_config=config.model_copy(deep=True))
        except (KernelException, ValueError) as ex:
            raise PromptTemplateException(f"Invalid prompt template '{config.name}': {ex}", ex) from ex

    @property
    def config(self) -> PromptTemplateConfig:
        return self._template.prompt_template_config

    async def render(self, arguments: Mapping[str, Any] | None = None) -> str:
        """Render the template; missing arguments take the variable default, or render empty."""
        values = dict(arguments or {})
        for variable in self.config.input_variables:
            if values.get(variable.name) is None and _has_default(variable):
                values[variable.name] = variable.default
        try:
            result = await self._template.render(self.kernel, arguments=KernelArguments(**values))
        except KernelException as ex:
            raise PromptRenderingException(f"Failed to render prompt '{self.config.name}': {ex}", ex) from ex
        logger.info("Rendered prompt %s: %s", self.config.name, result)
        return result


class TemplateAIFunction(AIFunction[BaseModel, str]):
    """A prompt template exposed as a tool; invoking it returns the rendered prompt.

    Examples:
        .. code-block:: python

            from aiglue import HUMOR_PROMPT_CONFIG, TemplateAIFunction

            humor = TemplateAIFunction(HUMOR_PROMPT_CONFIG)
            prompt = await humor.invoke(input="Why did the chicken cross the road?")
    """

    template: PromptTemplate

    def __init__(self, config: PromptTemplateConfig, plugins: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        template = PromptTemplate(config, plugins)
        name = config.name or "TemplateAIFunction"
        fields: dict[str, Any] = {
            variable.name: (
                Any,
                Field(
                    default=variable.default if _has_default(variable) or not variable.is_required else ...,
                    description=variable.description or None,
                ),
            )
            for variable in template.config.input_variables
        }

        async def render(**arguments: Any) -> str:
            return await template.render(arguments)

        super().__init__(
            name=name,
            description=config.description or "",
            func=render,
            input_model=create_model(f"{name}_input", **fields),  # type: ignore[call-overload]
            template=template,
            **kwargs,
        )

    def parameters(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        required: list[str] = []
        for variable in self.template.config.input_variables:
            schema: dict[str, Any] = {}
            if variable.description:
                schema["description"] = variable.description
            if _has_default(variable):
                schema["default"] = variable.default
            properties[variable.name] = schema
            if variable.is_required:
                required.append(variable.name)
        parameters: dict[str, Any] = {"type": "object", "description": self.description, "properties": properties}
        if required:
            parameters["required"] = required
        return parameters


STORY_PROMPT_CONFIG = PromptTemplateConfig.from_json(
    """
    {
      "name": "Story",
      "template": "Tell a story about {{$topic}} that is {{$length}} sentences long.",
      "description": "Generate a story about a topic.",
      "input_variables": [
        {"name": "topic", "description": "The topic of the story.", "is_required": true},
        {"name": "length", "description": "The number of sentences in the story.", "is_required": true}
      ]
    }
    """
)

HUMOR_PROMPT_CONFIG = PromptTemplateConfig.from_json(
    """
    {
      "name": "Humor",
      "template": "Is the following funny? \\n'{{$input}}'\\n Answer with yes, no or unsure in one word.",
      "description": "Determine whether input is funny or not.",
      "input_variables": [
        {"name": "input", "description": "The input text.", "is_required": true}
      ]
    }
    """
)

DAY_PROMPT_CONFIG = PromptTemplateConfig(
    name="day",
    description="Get day of week after number of days from today.",
    template="Today is: {{time.date}}\n\nWhat day of the week it is after {{$length}} days?",
)
