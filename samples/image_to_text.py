# Copyright (c) Microsoft. All rights reserved.

import asyncio
import sys
from pathlib import Path

from aiglue import setup_logging
from aiglue.azure import AzureImageToText

"""
Image to Text Example

This sample reads the text in an image with the Azure AI Vision Image Analysis READ feature.

Usage:
    python samples/image_to_text.py path/to/image.png

Environment Variables:
- AZURE_AI_SERVICE_ENDPOINT: The Azure AI services endpoint
- AZURE_AI_SERVICE_API_KEY: The resource key (optional, DefaultAzureCredential is used when not set)
"""


async def main(image_path: Path) -> None:
    setup_logging()
    async with AzureImageToText() as ocr:
        with image_path.open("rb") as image:
            text = await ocr.extract_text_from_image(image)
    print(text)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python samples/image_to_text.py <image>")
        sys.exit(1)
    asyncio.run(main(Path(sys.argv[1])))
