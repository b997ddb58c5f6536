"""Conversation history for a single chat session."""

import structlog

from popup_gpt.chat.models import DEFAULT_MODEL, CompletionRequest, Message

logger = structlog.get_logger()


class Conversation:
    """Ordered message history plus the system message that opens every request.

    The system message is synthesized into each request and never stored
    in the history itself.
    """

    def __init__(self, system_message: str = "You are a helpful AI assistant.") -> None:
        self.system_message = system_message
        self._messages: list[Message] = []

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def clear(self) -> None:
        if self._messages:
            logger.debug("conversation_cleared", message_count=len(self._messages))
        self._messages.clear()

    def build_request(
        self,
        model: str = DEFAULT_MODEL,
        stream: bool = False,
        **options,
    ) -> CompletionRequest:
        """Snapshot the history into a new request.

        Args:
            model: Model identifier for the request.
            stream: Ask the service for server-sent delta events.
            **options: Optional sampling/limit fields of CompletionRequest.
        """
        return CompletionRequest(
            model=model,
            messages=(Message.system(self.system_message), *self._messages),
            stream=True if stream else None,
            **options,
        )
