"""Chat-completion client module."""

from popup_gpt.chat.client import (
    CallInFlightError,
    ChatClient,
    ChatClientError,
    DecodeError,
    ProtocolError,
    TransportError,
)
from popup_gpt.chat.conversation import Conversation
from popup_gpt.chat.models import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    Message,
    MessageDelta,
    Role,
    Usage,
    merge,
)
from popup_gpt.chat.sse import ResponseReader, SSEStream, StreamStatus

__all__ = [
    "CallInFlightError",
    "ChatClient",
    "ChatClientError",
    "Choice",
    "CompletionRequest",
    "CompletionResponse",
    "Conversation",
    "DecodeError",
    "Message",
    "MessageDelta",
    "ProtocolError",
    "ResponseReader",
    "Role",
    "SSEStream",
    "StreamStatus",
    "TransportError",
    "Usage",
    "merge",
]
