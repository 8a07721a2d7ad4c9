# Copyright (c) Microsoft. All rights reserved.

from ._chat_client import OllamaChatClient, OllamaSettings
from ._embedding_generator import OllamaEmbeddingGenerator

__all__ = ["OllamaChatClient", "OllamaEmbeddingGenerator", "OllamaSettings"]
