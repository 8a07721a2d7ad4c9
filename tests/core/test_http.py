# Copyright (c) Microsoft. All rights reserved.

import logging

import httpx

from aiglue import HttpTraceHooks


def _handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, headers=[("x-trace", "a"), ("x-trace", "b")], json={"ok": True})


async def test_http_trace_hooks_log_request_and_response(caplog):
    hooks = HttpTraceHooks()
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler), event_hooks=hooks.as_event_hooks()) as client:
        with caplog.at_level(logging.INFO, logger="aiglue.http"):
            response = await client.post("http://localhost:11434/api/chat", json={"model": "phi4"})

    assert response.json() == {"ok": True}
    messages = [record.getMessage() for record in caplog.records]
    assert any(
        message.startswith("POST http://localhost:11434/api/chat ") and "phi4" in message for message in messages
    )
    assert "Response headers" in messages
    assert "x-trace=a;b" in messages
    assert any(message.startswith("200 ") and '"ok"' in message for message in messages)


async def test_http_trace_hooks_skip_empty_request_body(caplog):
    logger = logging.getLogger("aiglue.http.test")
    hooks = HttpTraceHooks(logger)
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler), event_hooks=hooks.as_event_hooks()) as client:
        with caplog.at_level(logging.INFO, logger="aiglue.http.test"):
            await client.get("http://localhost:11434/api/tags")

    messages = [record.getMessage() for record in caplog.records]
    assert not any(message.startswith("GET ") for message in messages)
    assert "Response headers" in messages


def test_as_event_hooks():
    hooks = HttpTraceHooks()
    event_hooks = hooks.as_event_hooks()
    assert event_hooks["request"] == [hooks.log_request]
    assert event_hooks["response"] == [hooks.log_response]
