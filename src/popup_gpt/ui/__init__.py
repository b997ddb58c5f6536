"""Presentation-facing side of the chat core."""

from popup_gpt.ui.coordinator import StreamingCoordinator
from popup_gpt.ui.messages import CompletionMessage, Flush, GUIMessage, PartialCompletionMessage
from popup_gpt.ui.view import ResponseView

__all__ = [
    "CompletionMessage",
    "Flush",
    "GUIMessage",
    "PartialCompletionMessage",
    "ResponseView",
    "StreamingCoordinator",
]
