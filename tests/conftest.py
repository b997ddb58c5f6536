"""Pytest fixtures for popup-gpt tests."""

import json
import os
from unittest.mock import patch

import httpx
import pytest

from popup_gpt.chat.client import ChatClient
from popup_gpt.config import Settings

TEST_ENDPOINT = "http://chat.test/v1/chat/completions"


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "OPENAI_API_KEY": "test-token",
        "CHAT_ENDPOINT": TEST_ENDPOINT,
        "CHAT_MODEL": "test-model",
        "LOG_LEVEL": "DEBUG",
    }
    with patch.dict(os.environ, env_vars, clear=False):
        yield env_vars


@pytest.fixture
def settings(mock_env_vars) -> Settings:
    """Create Settings instance with mocked environment."""
    return Settings()


@pytest.fixture
def make_client(settings):
    """Build a ChatClient whose HTTP calls go to ``handler``."""
    clients = []

    def _make(handler, settings_override: Settings | None = None) -> ChatClient:
        http = httpx.Client(transport=httpx.MockTransport(handler))
        client = ChatClient(settings_override or settings, http_client=http)
        clients.append(http)
        return client

    yield _make

    for http in clients:
        http.close()


def sse_body(*payloads: dict | str) -> bytes:
    """Encode payloads as ``data: ...`` frames, ending with the [DONE] frame."""
    frames = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        frames.append(f"data: {data}\n\n")
    frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def delta_chunk(content=None, role=None, index=0, finish_reason=None) -> dict:
    """Build one streamed chat.completion.chunk object."""
    delta = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
    }
