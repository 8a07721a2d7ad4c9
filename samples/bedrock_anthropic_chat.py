# Copyright (c) Microsoft. All rights reserved.

import asyncio
from random import randint
from typing import Annotated

from aiglue import ai_function, setup_logging
from aiglue.bedrock import BedrockChatClient

"""
Bedrock Anthropic Chat Example

This sample calls an Anthropic model on Amazon Bedrock through the Converse API,
lets the model call a local tool, and then streams a second answer.

Environment Variables:
- BEDROCK_REGION: The AWS region (e.g., "us-east-1")
- BEDROCK_CHAT_MODEL_ID: The model id (e.g., "anthropic.claude-3-haiku-20240307-v1:0")
- BEDROCK_ACCESS_KEY / BEDROCK_SECRET_KEY: Optional, the default AWS credential chain is used otherwise
"""


@ai_function
def get_weather(location: Annotated[str, "The location to get the weather for."]) -> str:
    """Get the weather for a given location."""
    conditions = ["sunny", "cloudy", "rainy", "stormy"]
    return f"The weather in {location} is {conditions[randint(0, 3)]} with a high of {randint(10, 30)}°C."


async def main() -> None:
    setup_logging()
    client = BedrockChatClient()

    query = "What's the weather like in Seattle?"
    print(f"User: {query}")
    response = await client.get_response(query, tools=[get_weather], max_tokens=512)
    print(f"Assistant: {response.text}\n")

    query = "Write a haiku about the rain."
    print(f"User: {query}")
    print("Assistant: ", end="", flush=True)
    async for update in client.get_streaming_response(query, temperature=0.7):
        if update.text:
            print(update.text, end="", flush=True)
    print()


if __name__ == "__main__":
    asyncio.run(main())
