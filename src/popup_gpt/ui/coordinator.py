"""Runs blocking chat calls off the UI thread and relays their output."""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable

import structlog

from popup_gpt.chat.client import ChatClient, ChatClientError
from popup_gpt.chat.models import CompletionResponse
from popup_gpt.ui.messages import CompletionMessage, Flush, GUIMessage, PartialCompletionMessage

logger = structlog.get_logger()

# Closes the fragment channel between producer and relay
_CLOSED = object()


class StreamingCoordinator:
    """Producer/relay thread pair for one chat call at a time.

    The producer owns the client for the duration of the call and puts
    each streamed chunk on a private fragment queue. The relay forwards
    those chunks to ``outbox`` and asks for a repaint after each one.
    The producer waits for the relay to drain before it puts the final
    Flush, so Flush always follows every chunk of its call.
    """

    def __init__(
        self,
        client: ChatClient,
        outbox: queue.Queue[GUIMessage],
        request_repaint: Callable[[], None] | None = None,
    ) -> None:
        self._client = client
        self._outbox = outbox
        self._request_repaint = request_repaint or (lambda: None)
        self._threads: list[threading.Thread] = []

    @property
    def busy(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self, prompt: str, stream: bool = True) -> bool:
        """Start a call in the background. Returns False if one is still running."""
        if self.busy or self._client.in_flight:
            logger.warning("coordinator_start_refused", reason="call_in_flight")
            return False

        fragments: queue.Queue = queue.Queue()
        relay = threading.Thread(
            target=self._relay, args=(fragments,), name="chat-relay", daemon=True
        )
        producer = threading.Thread(
            target=self._produce,
            args=(prompt, stream, fragments, relay),
            name="chat-producer",
            daemon=True,
        )
        self._threads = [producer, relay]
        relay.start()
        producer.start()
        logger.debug("coordinator_started", stream=stream, prompt_length=len(prompt))
        return True

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def _produce(
        self,
        prompt: str,
        stream: bool,
        fragments: queue.Queue,
        relay: threading.Thread,
    ) -> None:
        error = None
        try:
            if stream:
                self._client.ask_stream(prompt, fragments.put)
            else:
                response = self._client.ask(prompt)
                fragments.put(CompletionMessage(response))
        except ChatClientError as e:
            logger.error("coordinator_call_failed", error=str(e), error_type=type(e).__name__)
            error = str(e)
        except Exception as e:
            logger.exception("coordinator_call_crashed")
            error = str(e)
        finally:
            fragments.put(_CLOSED)
            relay.join()

        self._outbox.put(Flush(error=error))
        self._request_repaint()

    def _relay(self, fragments: queue.Queue) -> None:
        forwarded = 0
        while True:
            item = fragments.get()
            if item is _CLOSED:
                break
            if isinstance(item, CompletionResponse):
                item = PartialCompletionMessage(item)
            self._outbox.put(item)
            self._request_repaint()
            forwarded += 1
        logger.debug("coordinator_relay_closed", forwarded=forwarded)
