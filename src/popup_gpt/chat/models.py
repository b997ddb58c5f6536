"""Data models for chat-completion requests and responses.

Field names follow the OpenAI chat-completion wire format:

- https://platform.openai.com/docs/api-reference/chat/create
- https://platform.openai.com/docs/api-reference/chat/streaming
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MODEL = "gpt-3.5-turbo"


class Role(str, Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class Message(BaseModel):
    """A single chat message, sent in a request or returned in a response."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role=Role.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=text)


class CompletionRequest(BaseModel):
    """A chat completion request. Unset optional fields are left out of the body."""

    model_config = ConfigDict(frozen=True)

    model: str = DEFAULT_MODEL
    messages: tuple[Message, ...] = ()
    # Between 0 and 2; alter this or top_p, not both.
    temperature: float | None = None
    top_p: float | None = None
    # Number of choices to generate per input message.
    n: int | None = None
    # Partial deltas are sent as data-only server-sent events, ended by `data: [DONE]`.
    stream: bool | None = None
    max_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    user: str | None = None

    def to_payload(self) -> dict:
        """JSON-ready request body."""
        return self.model_dump(mode="json", exclude_none=True)


class MessageDelta(BaseModel):
    """Incremental update to one choice's message during streaming."""

    role: Role | None = None
    content: str | None = None


class Usage(BaseModel):
    """Token usage of the associated request and response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(BaseModel):
    """One completion variant. A response can carry several, addressed by index."""

    index: int = 0
    message: Message | None = None
    delta: MessageDelta | None = None
    finish_reason: str | None = None


class CompletionResponse(BaseModel):
    """A completion response, or a single streamed chunk of one."""

    id: str = ""
    object: str = ""
    created: int = 0
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage | None = None

    def primary_response(self) -> str | None:
        """Text of the first choice's message, if any."""
        if not self.choices or self.choices[0].message is None:
            return None
        return self.choices[0].message.content

    def primary_delta(self) -> str | None:
        """Incremental text carried by the first choice of a streamed chunk."""
        if not self.choices or self.choices[0].delta is None:
            return None
        return self.choices[0].delta.content

    def used_tokens(self) -> int | None:
        return self.usage.total_tokens if self.usage else None

    def merge_delta(self, other: "CompletionResponse") -> None:
        """Fold the delta-bearing choices of a streamed chunk into this response.

        Choice indices are positions: missing positions are filled with
        empty choices. A delta carrying a role starts that choice's
        message over; delta content is appended to it in arrival order.
        """
        if not self.id and other.id:
            self.id = other.id
            self.object = other.object
            self.created = other.created
        if other.usage is not None:
            self.usage = other.usage

        for choice in other.choices:
            while len(self.choices) <= choice.index:
                self.choices.append(Choice(index=len(self.choices)))

            own = self.choices[choice.index]

            # The service sends a role before any content for the same index
            if choice.delta is not None:
                if choice.delta.role is not None:
                    own.message = Message(role=choice.delta.role, content="")
                if choice.delta.content is not None:
                    own.message = own.message.model_copy(
                        update={"content": own.message.content + choice.delta.content}
                    )

            if choice.finish_reason is not None:
                own.finish_reason = choice.finish_reason


def merge(target: CompletionResponse, incoming: CompletionResponse) -> None:
    """Merge ``incoming`` into ``target`` in place."""
    target.merge_delta(incoming)
