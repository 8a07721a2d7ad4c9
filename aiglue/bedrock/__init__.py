# Copyright (c) Microsoft. All rights reserved.

from ._chat_client import BedrockChatClient, BedrockSettings

__all__ = ["BedrockChatClient", "BedrockSettings"]
