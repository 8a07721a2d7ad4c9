# Copyright (c) Microsoft. All rights reserved.

import sys
from typing import Any, BinaryIO

from azure.ai.vision.imageanalysis.aio import ImageAnalysisClient
from azure.ai.vision.imageanalysis.models import VisualFeatures
from azure.core.credentials import AzureKeyCredential
from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import HttpResponseError
from azure.identity.aio import DefaultAzureCredential

from .._logging import get_logger
from .._settings import load_settings
from ..exceptions import ServiceInitializationError, ServiceResponseException
from ._shared import AzureAIServiceSettings

if sys.version_info >= (3, 11):
    from typing import Self  # pragma: no cover
else:
    from typing_extensions import Self  # pragma: no cover

__all__ = ["AzureImageToText"]

logger = get_logger("aiglue.azure.image_to_text")


class AzureImageToText:
    """OCR over the Azure AI Vision Image Analysis READ feature."""

    def __init__(
        self,
        *,
        client: ImageAnalysisClient | None = None,
        endpoint: str | None = None,
        api_key: str | None = None,
        credential: AzureKeyCredential | AsyncTokenCredential | None = None,
        env_file_path: str | None = None,
        env_file_encoding: str | None = None,
    ) -> None:
        """Create the OCR engine from an existing client, or from settings.

        Keyword Args:
            client: An existing ``ImageAnalysisClient``; it is not closed by this instance.
            endpoint: The resource endpoint (env var AZURE_AI_SERVICE_ENDPOINT).
            api_key: The resource key (env var AZURE_AI_SERVICE_API_KEY).
            credential: A credential used instead of the key.
            env_file_path: Path of the .env file with the settings.
            env_file_encoding: Encoding of the .env file.
        """
        self._owns_client = client is None
        self._owned_credential: DefaultAzureCredential | None = None
        if client is None:
            settings = load_settings(
                AzureAIServiceSettings,
                env_prefix="AZURE_AI_SERVICE_",
                env_file_path=env_file_path,
                env_file_encoding=env_file_encoding,
                endpoint=endpoint,
                api_key=api_key,
            )
            if not settings["endpoint"]:
                raise ServiceInitializationError(
                    "Azure AI service endpoint is required. Set via 'endpoint' parameter "
                    "or 'AZURE_AI_SERVICE_ENDPOINT' environment variable."
                )
            if credential is None and settings["api_key"]:
                credential = AzureKeyCredential(settings["api_key"].get_secret_value())
            if credential is None:
                credential = self._owned_credential = DefaultAzureCredential()
            client = ImageAnalysisClient(endpoint=settings["endpoint"], credential=credential)
        self.client = client

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client and the default credential when this instance created them."""
        if self._owns_client:
            await self.client.close()
        if self._owned_credential is not None:
            await self._owned_credential.close()
            self._owned_credential = None

    async def extract_text_from_image(self, image: bytes | BinaryIO) -> str:
        """Read the text in an image.

        Every text block starts with an empty line, followed by one line per recognized line.
        """
        image_data = image if isinstance(image, bytes) else image.read()
        try:
            result = await self.client.analyze(
                image_data=image_data,
                visual_features=[VisualFeatures.READ],
                gender_neutral_caption=True,
            )
        except HttpResponseError as ex:
            raise ServiceResponseException(f"Image analysis request failed: {ex.message}", ex) from ex
        logger.debug("%s", result.as_dict())

        buffer: list[str] = []
        if result.read is not None:
            for block in result.read.blocks:
                buffer.append("\n")
                for line in block.lines:
                    buffer.append(f"{line.text}\n")
        return "".join(buffer)
