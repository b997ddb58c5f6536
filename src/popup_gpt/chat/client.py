"""Client for an OpenAI-compatible chat-completion endpoint."""

from __future__ import annotations

import threading
from collections.abc import Callable

import httpx
import structlog
from pydantic import ValidationError

from popup_gpt.chat.conversation import Conversation
from popup_gpt.chat.models import CompletionRequest, CompletionResponse, Message
from popup_gpt.chat.sse import ResponseReader, SSEStream, StreamStatus
from popup_gpt.config import Settings

logger = structlog.get_logger()

CHATGPT_ENDPOINT = "https://api.openai.com/v1/chat/completions"


class ChatClientError(Exception):
    """Base class for failures of a single ask/ask_stream call."""


class TransportError(ChatClientError):
    """The HTTP call failed or returned a non-success status."""


class DecodeError(ChatClientError):
    """A response body or streamed payload was not a valid completion response."""


class ProtocolError(ChatClientError):
    """The decoded response carried no message for the first choice."""


class CallInFlightError(ChatClientError):
    """Another call is still running against this client."""


class ChatClient:
    """Blocking chat client that keeps the conversation between calls.

    Only one call may run at a time: ``ask`` and ``ask_stream`` raise
    CallInFlightError instead of waiting for a running call. Clearing
    the conversation never waits for a running call; the running call
    then finishes without touching the fresh conversation.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._endpoint = settings.endpoint or CHATGPT_ENDPOINT
        self._token = settings.api_token
        self._model = settings.model_name
        self._options = settings.sampling_options()
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=settings.timeout)

        self._conversation = Conversation(settings.system_message)
        # Bumped by clear_conversation so a running call can tell its history is gone
        self._generation = 0
        self._state_lock = threading.Lock()
        self._call_lock = threading.Lock()

        self.last_stream_status: StreamStatus | None = None

    def __enter__(self) -> ChatClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http and not self._http.is_closed:
            self._http.close()

    @property
    def conversation(self) -> list[Message]:
        with self._state_lock:
            return self._conversation.messages

    @property
    def in_flight(self) -> bool:
        return self._call_lock.locked()

    def clear_conversation(self) -> None:
        """Start a new conversation. Calling it repeatedly is harmless."""
        with self._state_lock:
            self._conversation.clear()
            self._generation += 1

    def ask(self, question: str) -> CompletionResponse:
        """Send the question and wait for the whole answer.

        Raises:
            CallInFlightError: another call is running.
            TransportError: the HTTP call failed.
            DecodeError: the body is not a completion response.
            ProtocolError: the response has no first choice message.
        """
        with self._exclusive_call():
            request, generation = self._begin(question, stream=False)

            logger.info("chat_request_start", model=request.model, stream=False,
                        message_count=len(request.messages))
            try:
                response = self._http.post(
                    self._endpoint,
                    json=request.to_payload(),
                    headers=self._headers(),
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error("chat_request_failed", error=str(e))
                raise TransportError(str(e)) from e

            try:
                result = CompletionResponse.model_validate_json(response.content)
            except ValidationError as e:
                logger.error("chat_response_invalid", error_count=e.error_count())
                raise DecodeError(str(e)) from e

            self._finish(result, generation)
            logger.info("chat_request_complete", response_id=result.id,
                        used_tokens=result.used_tokens())
            return result

    def ask_stream(
        self,
        question: str,
        sink: Callable[[CompletionResponse], None],
    ) -> CompletionResponse:
        """Send the question and stream the answer.

        Each decoded chunk is merged into the running response and then
        handed to ``sink``. Returns the accumulated response once the
        stream ends; :attr:`last_stream_status` records whether it ended
        on the ``[DONE]`` sentinel or on a broken read.

        Raises the same errors as :meth:`ask`. One malformed chunk aborts
        the whole call.
        """
        with self._exclusive_call():
            request, generation = self._begin(question, stream=True)
            self.last_stream_status = None

            logger.info("chat_request_start", model=request.model, stream=True,
                        message_count=len(request.messages))
            accumulated = CompletionResponse()
            chunk_count = 0
            try:
                with self._http.stream(
                    "POST",
                    self._endpoint,
                    json=request.to_payload(),
                    headers=self._headers(),
                ) as response:
                    response.raise_for_status()
                    events = SSEStream(ResponseReader(response.iter_bytes()))

                    for event in events:
                        try:
                            partial = CompletionResponse.model_validate_json(event)
                        except ValidationError as e:
                            logger.error("chat_chunk_invalid", chunk_number=chunk_count + 1,
                                         error_count=e.error_count())
                            raise DecodeError(str(e)) from e

                        chunk_count += 1
                        accumulated.merge_delta(partial)
                        sink(partial)
            except httpx.HTTPError as e:
                logger.error("chat_request_failed", error=str(e), chunks=chunk_count)
                raise TransportError(str(e)) from e

            self.last_stream_status = events.status
            self._finish(accumulated, generation)
            logger.info(
                "chat_stream_complete",
                status=events.status.value,
                total_chunks_received=chunk_count,
                answer_length=len(accumulated.primary_response() or ""),
            )
            return accumulated

    def _exclusive_call(self) -> _CallGuard:
        return _CallGuard(self._call_lock)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def _begin(self, question: str, stream: bool) -> tuple[CompletionRequest, int]:
        with self._state_lock:
            self._conversation.append(Message.user(question))
            request = self._conversation.build_request(
                model=self._model, stream=stream, **self._options
            )
            return request, self._generation

    def _finish(self, response: CompletionResponse, generation: int) -> None:
        if not response.choices or response.choices[0].message is None:
            raise ProtocolError("response has no message for choice 0")

        with self._state_lock:
            if generation != self._generation:
                logger.info("chat_answer_discarded", reason="conversation_cleared")
                return
            self._conversation.append(response.choices[0].message)


class _CallGuard:
    """Holds the call lock for one call, failing fast if it is taken."""

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock

    def __enter__(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise CallInFlightError("a call is already in flight on this client")

    def __exit__(self, *exc_info) -> None:
        self._lock.release()
