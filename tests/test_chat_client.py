"""Tests for ChatClient."""

import gzip
import json
import os
from unittest.mock import patch

import httpx
import pytest
from conftest import TEST_ENDPOINT, delta_chunk, sse_body

from popup_gpt.chat.client import (
    CallInFlightError,
    DecodeError,
    ProtocolError,
    TransportError,
)
from popup_gpt.chat.models import CompletionResponse, Message
from popup_gpt.chat.sse import StreamStatus
from popup_gpt.config import Settings


def _completion_body(content="The answer is 42."):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 5, "completion_tokens": 5, "total_tokens": 10},
    }


def _chunked(body: bytes, size: int = 7):
    """Deliver a body in small pieces, like a slow network."""
    return iter([body[i : i + size] for i in range(0, len(body), size)])


class TestAsk:
    def test_returns_response_and_extends_conversation(self, make_client):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=_completion_body())

        client = make_client(handler)
        result = client.ask("What is the answer?")

        assert isinstance(result, CompletionResponse)
        assert result.primary_response() == "The answer is 42."
        assert client.conversation == [
            Message.user("What is the answer?"),
            Message.assistant("The answer is 42."),
        ]

        request = requests[0]
        assert str(request.url) == TEST_ENDPOINT
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer test-token"
        body = json.loads(request.content)
        assert body["model"] == "test-model"
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1] == {"role": "user", "content": "What is the answer?"}
        assert "stream" not in body

    def test_second_question_carries_history(self, make_client):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=_completion_body(f"A{len(bodies)}"))

        client = make_client(handler)
        client.ask("Q1")
        client.ask("Q2")

        contents = [m["content"] for m in bodies[1]["messages"][1:]]
        assert contents == ["Q1", "A1", "Q2"]

    def test_sends_sampling_options(self, mock_env_vars, make_client):
        with patch.dict(os.environ, {"CHAT_TEMPERATURE": "0.3", "CHAT_MAX_TOKENS": "100"}):
            settings = Settings()
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=_completion_body())

        make_client(handler, settings).ask("Q")

        assert bodies[0]["temperature"] == 0.3
        assert bodies[0]["max_tokens"] == 100

    def test_http_error_raises_transport_error(self, make_client):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(TransportError):
            client.ask("Q")
        # the question stays so a retry resends the context
        assert client.conversation == [Message.user("Q")]

    def test_connection_error_raises_transport_error(self, make_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            make_client(handler).ask("Q")

    def test_invalid_body_raises_decode_error(self, make_client):
        client = make_client(lambda request: httpx.Response(200, text="not json"))
        with pytest.raises(DecodeError):
            client.ask("Q")

    def test_missing_choice_raises_protocol_error(self, make_client):
        body = _completion_body()
        body["choices"] = []
        client = make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ProtocolError):
            client.ask("Q")
        assert client.conversation == [Message.user("Q")]


class TestAskStream:
    def _stream_handler(self, body: bytes, status: int = 200, seen: list | None = None):
        def handler(request):
            if seen is not None:
                seen.append(request)
            return httpx.Response(status, content=_chunked(body))

        return handler

    def test_streams_partials_and_returns_accumulated(self, make_client):
        body = sse_body(
            delta_chunk(role="assistant", content=""),
            delta_chunk(content="Hello"),
            delta_chunk(content=" world"),
            delta_chunk(finish_reason="stop"),
        )
        seen = []
        client = make_client(self._stream_handler(body, seen=seen))
        partials = []

        result = client.ask_stream("Hi", partials.append)

        assert [p.primary_delta() for p in partials] == ["", "Hello", " world", None]
        assert result.primary_response() == "Hello world"
        assert result.choices[0].finish_reason == "stop"
        assert result.id == "chatcmpl-1"
        assert client.last_stream_status is StreamStatus.COMPLETED
        assert client.conversation == [Message.user("Hi"), Message.assistant("Hello world")]
        assert json.loads(seen[0].content)["stream"] is True

    def test_gzip_encoded_stream_is_decoded(self, make_client):
        body = gzip.compress(
            sse_body(
                delta_chunk(role="assistant", content=""),
                delta_chunk(content="Hi"),
            )
        )

        def handler(request):
            return httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                content=_chunked(body),
            )

        client = make_client(handler)

        result = client.ask_stream("Hello", lambda _: None)

        assert result.primary_response() == "Hi"
        assert client.last_stream_status is StreamStatus.COMPLETED

    def test_sink_receives_chunks_not_the_accumulator(self, make_client):
        body = sse_body(
            delta_chunk(role="assistant", content=""),
            delta_chunk(content="a"),
            delta_chunk(content="b"),
        )
        client = make_client(self._stream_handler(body))
        partials = []

        result = client.ask_stream("Q", partials.append)

        assert all(p is not result for p in partials)
        assert all(p.primary_response() is None for p in partials)
        assert result.primary_response() == "ab"

    def test_multiple_choices_accumulate_independently(self, make_client):
        body = sse_body(
            delta_chunk(role="assistant", content="", index=0),
            delta_chunk(role="assistant", content="", index=1),
            delta_chunk(content="zero", index=0),
            delta_chunk(content="one", index=1),
        )
        result = make_client(self._stream_handler(body)).ask_stream("Q", lambda p: None)

        assert [c.message.content for c in result.choices] == ["zero", "one"]

    def test_malformed_payload_aborts_call(self, make_client):
        body = sse_body(delta_chunk(role="assistant", content="ok"), "{not json")
        client = make_client(self._stream_handler(body))
        partials = []

        with pytest.raises(DecodeError):
            client.ask_stream("Q", partials.append)

        assert len(partials) == 1
        assert client.conversation == [Message.user("Q")]

    def test_stream_ending_without_sentinel_is_marked_aborted(self, make_client):
        body = (
            f"data: {json.dumps(delta_chunk(role='assistant', content='partial'))}\n\n"
        ).encode()
        client = make_client(self._stream_handler(body))

        result = client.ask_stream("Q", lambda p: None)

        assert result.primary_response() == "partial"
        assert client.last_stream_status is StreamStatus.ABORTED

    def test_empty_stream_raises_protocol_error(self, make_client):
        client = make_client(self._stream_handler(b"data: [DONE]\n\n"))
        with pytest.raises(ProtocolError):
            client.ask_stream("Q", lambda p: None)

    def test_http_error_raises_transport_error(self, make_client):
        client = make_client(self._stream_handler(b'{"error": "bad key"}', status=401))
        with pytest.raises(TransportError):
            client.ask_stream("Q", lambda p: None)
        assert client.conversation == [Message.user("Q")]


class TestCallExclusivity:
    def test_second_call_during_stream_is_refused(self, make_client):
        body = sse_body(delta_chunk(role="assistant", content="x"))
        client = make_client(lambda request: httpx.Response(200, content=_chunked(body)))
        errors = []

        def sink(partial):
            assert client.in_flight
            try:
                client.ask("nested")
            except CallInFlightError as e:
                errors.append(e)

        client.ask_stream("Q", sink)

        assert len(errors) == 1
        assert not client.in_flight
        # the refused call left no trace
        assert client.conversation == [Message.user("Q"), Message.assistant("x")]

    def test_clear_during_stream_discards_answer(self, make_client):
        body = sse_body(delta_chunk(role="assistant", content=""), delta_chunk(content="late"))
        client = make_client(lambda request: httpx.Response(200, content=_chunked(body)))

        def sink(partial):
            client.clear_conversation()

        result = client.ask_stream("Q", sink)

        assert result.primary_response() == "late"
        assert client.conversation == []

    def test_clear_conversation_is_idempotent(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json=_completion_body()))
        client.ask("Q")

        client.clear_conversation()
        once = client.conversation
        client.clear_conversation()

        assert client.conversation == once == []

    def test_lock_released_after_failure(self, make_client):
        client = make_client(lambda request: httpx.Response(503))
        with pytest.raises(TransportError):
            client.ask("Q")
        assert not client.in_flight


def test_close_leaves_injected_client_open(make_client):
    client = make_client(lambda request: httpx.Response(200, json=_completion_body()))
    with client:
        pass
    client.ask("still usable")
