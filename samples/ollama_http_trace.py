# Copyright (c) Microsoft. All rights reserved.

import asyncio

from aiglue import setup_logging
from aiglue.ollama import OllamaChatClient

"""
Ollama HTTP Tracing Example

This sample logs every HTTP request and response exchanged with the Ollama server,
including the response headers, at info level.

Environment Variables:
- OLLAMA_HOST: The Ollama server (optional, defaults to http://localhost:11434)
- OLLAMA_MODEL_ID: The model to use (e.g., "phi4", "llama3.2")
"""


async def main() -> None:
    setup_logging()
    client = OllamaChatClient(http_trace=True)

    response = await client.get_response("Why is the sky blue? Answer in one sentence.")
    print(f"Assistant: {response.text}")


if __name__ == "__main__":
    asyncio.run(main())
