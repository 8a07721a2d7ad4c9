# Copyright (c) Microsoft. All rights reserved.

import logging
from collections.abc import Awaitable, Callable

import httpx

from ._logging import get_logger

__all__ = ["HttpTraceHooks"]


class HttpTraceHooks:
    """httpx event hooks that log every request and response body at info level.

    The response body is read into memory before it is logged, so streamed responses
    are delivered to the caller only after they complete.

    Example:
        .. code-block:: python

            hooks = HttpTraceHooks()
            async with httpx.AsyncClient(event_hooks=hooks.as_event_hooks()) as client:
                await client.get("http://localhost:11434/api/tags")
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or get_logger("aiglue.http")

    async def log_request(self, request: httpx.Request) -> None:
        body = await request.aread()
        if body:
            self.logger.info("%s %s %s", request.method, request.url, body.decode("utf-8", errors="replace"))

    async def log_response(self, response: httpx.Response) -> None:
        await response.aread()
        self.logger.info("Response headers")
        headers: dict[str, list[str]] = {}
        for key, value in response.headers.multi_items():
            headers.setdefault(key, []).append(value)
        for key, values in headers.items():
            self.logger.info("%s=%s", key, ";".join(values))
        self.logger.info("%s %s", response.status_code, response.text)

    def as_event_hooks(self) -> dict[str, list[Callable[..., Awaitable[None]]]]:
        """The ``event_hooks`` argument for ``httpx.AsyncClient``."""
        return {"request": [self.log_request], "response": [self.log_response]}
