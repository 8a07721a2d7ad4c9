# Copyright (c) Microsoft. All rights reserved.

import asyncio

from pydantic import BaseModel

from aiglue import ChatMessage, setup_logging
from aiglue.ollama import OllamaChatClient

"""
Ollama Structured Output Example

This sample asks a local Ollama model to extract a calendar event, passing the
pydantic model as the response format so the reply is parsed into it.

Environment Variables:
- OLLAMA_HOST: The Ollama server (optional, defaults to http://localhost:11434)
- OLLAMA_MODEL_ID: The model to use (e.g., "phi4", "llama3.2")
"""


class CalendarEvent(BaseModel):
    name: str
    date: str
    participants: list[str]


async def main() -> None:
    setup_logging()
    client = OllamaChatClient()

    messages = [
        ChatMessage(role="system", text="Extract the event information."),
        ChatMessage(role="user", text="Alice and Bob are going to a science fair on Friday."),
    ]
    response = await client.get_response(messages, response_format=CalendarEvent)

    if isinstance(response.value, CalendarEvent):
        event = response.value
        print(f"Event: {event.name} on {event.date} with {', '.join(event.participants)}")
    else:
        print(f"Could not parse the reply: {response.text}")


if __name__ == "__main__":
    asyncio.run(main())
