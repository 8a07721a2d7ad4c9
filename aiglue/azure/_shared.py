# Copyright (c) Microsoft. All rights reserved.

import sys

from .._settings import SecretString

if sys.version_info >= (3, 11):
    from typing import TypedDict  # pragma: no cover
else:
    from typing_extensions import TypedDict  # pragma: no cover

__all__ = ["DEFAULT_COSMOS_DATABASE_NAME", "AzureAIServiceSettings", "AzureCosmosDbSettings"]

DEFAULT_COSMOS_DATABASE_NAME = "memory"


class AzureCosmosDbSettings(TypedDict, total=False):
    """Azure Cosmos DB settings.

    The settings are loaded with the prefix 'AZURE_COSMOS_'.

    Keys:
        endpoint: The account endpoint, e.g. ``https://<account>.documents.azure.com:443/``.
            (Env var AZURE_COSMOS_ENDPOINT)
        key: The account key; when not set ``DefaultAzureCredential`` is used.
            (Env var AZURE_COSMOS_KEY)
        database_name: The database holding one container per index, defaults to ``memory``.
            (Env var AZURE_COSMOS_DATABASE_NAME)
    """

    endpoint: str | None
    key: SecretString | None
    database_name: str | None


class AzureAIServiceSettings(TypedDict, total=False):
    """Azure AI services (Image Analysis) settings.

    Keys:
        endpoint: The resource endpoint. (Env var AZURE_AI_SERVICE_ENDPOINT)
        api_key: The resource key; when not set ``DefaultAzureCredential`` is used.
            (Env var AZURE_AI_SERVICE_API_KEY)
    """

    endpoint: str | None
    api_key: SecretString | None
