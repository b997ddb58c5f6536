"""Presentation-side state of the popup answer pane.

The overlay calls :meth:`ResponseView.poll` and
:meth:`ResponseView.advance_render` once per frame and draws
:attr:`ResponseView.visible_text`. Nothing here blocks.
"""

from __future__ import annotations

import queue
from collections.abc import Callable

import structlog

from popup_gpt.chat.client import ChatClient
from popup_gpt.ui.coordinator import StreamingCoordinator
from popup_gpt.ui.messages import CompletionMessage, Flush, GUIMessage, PartialCompletionMessage

logger = structlog.get_logger()


class ResponseView:
    """Answer pane state: the text received so far and how much of it is shown.

    ``submit`` hands a prompt to the streaming coordinator, ``poll`` takes
    at most one message off the inbox per frame and ``advance_render``
    reveals the received text a character at a time. ``reset`` drops the
    current answer; output still arriving for it is ignored.
    """

    def __init__(
        self,
        client: ChatClient,
        request_repaint: Callable[[], None] | None = None,
    ) -> None:
        self._client = client
        self.inbox: queue.Queue[GUIMessage] = queue.Queue()
        self.coordinator = StreamingCoordinator(client, self.inbox, request_repaint)

        self.in_flight = False
        self.response = ""
        self.render_len = 0
        self.error: str | None = None

    @property
    def visible_text(self) -> str:
        return self.response[: self.render_len]

    def submit(self, prompt: str) -> bool:
        """Start streaming an answer, unless one is already on its way."""
        if self.in_flight:
            return False
        self._drain()
        if not self.coordinator.start(prompt):
            return False

        self.in_flight = True
        self.response = ""
        self.render_len = 0
        self.error = None
        return True

    def poll(self) -> bool:
        """Apply at most one queued message. Returns True if one was applied."""
        try:
            msg = self.inbox.get_nowait()
        except queue.Empty:
            return False

        if not self.in_flight:
            # late output of a call that was reset
            logger.debug("view_message_dropped", kind=type(msg).__name__)
            return False

        if isinstance(msg, PartialCompletionMessage):
            delta = msg.response.primary_delta()
            if delta:
                self.response += delta
        elif isinstance(msg, CompletionMessage):
            self.response = msg.response.primary_response() or ""
            self.in_flight = False
        elif isinstance(msg, Flush):
            self.in_flight = False
            self.error = msg.error
        return True

    def advance_render(self) -> bool:
        """Reveal one more character. Returns True while text remains hidden."""
        if self.render_len < len(self.response):
            self.render_len += 1
        return self.render_len < len(self.response)

    def _drain(self) -> None:
        # Leftovers of a reset call must not land in the next answer
        while True:
            try:
                self.inbox.get_nowait()
            except queue.Empty:
                return

    def reset(self) -> None:
        """Start over: forget the answer and the conversation.

        A running call is not interrupted; its remaining output is dropped
        by :meth:`poll`.
        """
        self.in_flight = False
        self.response = ""
        self.render_len = 0
        self.error = None
        self._client.clear_conversation()
