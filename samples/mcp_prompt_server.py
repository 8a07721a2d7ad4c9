# Copyright (c) Microsoft. All rights reserved.

import asyncio
import logging

from aiglue import (
    DAY_PROMPT_CONFIG,
    HUMOR_PROMPT_CONFIG,
    STORY_PROMPT_CONFIG,
    FunctionServerPrompt,
    McpPromptServer,
    TemplateServerPrompt,
    joke_prompt,
    setup_logging,
)

"""
MCP Prompt Server Example

This sample serves four prompts over stdio with the Model Context Protocol:
Story and Day are prompt templates, Humor is a template wrapped as a function
and Joke is a plain function returning chat messages.

Add it to an MCP client, e.g. in a VS Code mcp.json:
    "prompts": {"type": "stdio", "command": "python", "args": ["samples/mcp_prompt_server.py"]}
"""


async def main() -> None:
    # stdout carries the protocol, so keep the logs quiet
    setup_logging(logging.WARNING)
    server = McpPromptServer(
        "aiglue-prompts",
        [
            TemplateServerPrompt(STORY_PROMPT_CONFIG),
            TemplateServerPrompt(DAY_PROMPT_CONFIG),
            FunctionServerPrompt.create(joke_prompt),
        ],
    )
    server.add(TemplateServerPrompt(HUMOR_PROMPT_CONFIG))
    await server.run_stdio()


if __name__ == "__main__":
    asyncio.run(main())
