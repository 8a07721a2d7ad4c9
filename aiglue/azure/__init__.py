# Copyright (c) Microsoft. All rights reserved.

from ._cosmos_memory import AzureCosmosDbMemory, with_tags
from ._cosmos_record import AzureCosmosDbMemoryRecord
from ._image_to_text import AzureImageToText
from ._shared import AzureAIServiceSettings, AzureCosmosDbSettings

__all__ = [
    "AzureAIServiceSettings",
    "AzureCosmosDbMemory",
    "AzureCosmosDbMemoryRecord",
    "AzureCosmosDbSettings",
    "AzureImageToText",
    "with_tags",
]
