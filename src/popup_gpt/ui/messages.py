"""Messages passed from the chat core to the presentation layer."""

from dataclasses import dataclass

from popup_gpt.chat.models import CompletionResponse


@dataclass(slots=True)
class CompletionMessage:
    """A whole response from a non-streaming call."""

    response: CompletionResponse


@dataclass(slots=True)
class PartialCompletionMessage:
    """One streamed chunk of a response."""

    response: CompletionResponse


@dataclass(slots=True)
class Flush:
    """The call is over. ``error`` is set when it failed."""

    error: str | None = None


GUIMessage = CompletionMessage | PartialCompletionMessage | Flush
