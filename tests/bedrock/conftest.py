# Copyright (c) Microsoft. All rights reserved.

from typing import Any
from unittest.mock import MagicMock

from pytest import fixture


@fixture
def exclude_list(request: Any) -> list[str]:
    """Fixture that returns a list of environment variables to exclude."""
    return request.param if hasattr(request, "param") else []


@fixture
def override_env_param_dict(request: Any) -> dict[str, str]:
    """Fixture that returns a dict of environment variables to override."""
    return request.param if hasattr(request, "param") else {}


@fixture()
def bedrock_unit_test_env(monkeypatch, exclude_list, override_env_param_dict):  # type: ignore
    """Fixture to set environment variables for BedrockSettings."""
    env_vars = {
        "BEDROCK_REGION": "us-west-2",
        "BEDROCK_CHAT_MODEL_ID": "anthropic.claude-3-haiku-20240307-v1:0",
        "BEDROCK_ACCESS_KEY": "test_access_key",
        "BEDROCK_SECRET_KEY": "test_secret_key",
        "BEDROCK_SESSION_TOKEN": "test_session_token",
    }

    env_vars.update(override_env_param_dict)  # type: ignore

    for key, value in env_vars.items():
        if key in exclude_list:
            monkeypatch.delenv(key, raising=False)  # type: ignore
            continue
        monkeypatch.setenv(key, value)  # type: ignore

    return env_vars


@fixture
def mock_bedrock_runtime() -> MagicMock:
    """A bedrock-runtime client double; converse and converse_stream are set per test."""
    return MagicMock()


@fixture
def mock_boto3_session(mock_bedrock_runtime) -> MagicMock:
    session = MagicMock()
    session.get_available_regions.return_value = ["us-east-1", "us-west-2", "eu-central-1"]
    session.client.return_value = mock_bedrock_runtime
    return session


def converse_text_response(text: str, stop_reason: str = "end_turn") -> dict[str, Any]:
    return {
        "ResponseMetadata": {"RequestId": "req-1"},
        "output": {"message": {"role": "assistant", "content": [{"text": text}]}},
        "stopReason": stop_reason,
        "usage": {"inputTokens": 5, "outputTokens": 3, "totalTokens": 8},
    }


@fixture
def text_response():
    return converse_text_response
