"""Neutral message types shared by the loop and every provider adapter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

ANTHROPIC_FAMILY = "anthropic"
OPENAI_FAMILY = "openai"


@dataclass(slots=True, frozen=True)
class Message:
    role: str  # "user" | "assistant"
    content: str


@dataclass(slots=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ToolResult:
    tool_call_id: str
    content: str


@dataclass(slots=True, frozen=True)
class AnthropicAssistantTurn:
    """Assistant content blocks exactly as the Messages API emitted them."""

    family: ClassVar[str] = ANTHROPIC_FAMILY
    content: list[dict[str, Any]]


@dataclass(slots=True, frozen=True)
class OpenAIAssistantTurn:
    """Assistant chat message, including its ``tool_calls`` list when present."""

    family: ClassVar[str] = OPENAI_FAMILY
    message: dict[str, Any]


RawAssistantMessage = Union[AnthropicAssistantTurn, OpenAIAssistantTurn]


@dataclass(slots=True, frozen=True)
class NativeMessage:
    """A vendor-shaped message that only the adapter family that built it accepts."""

    family: str
    payload: dict[str, Any]


ConversationEntry = Union[Message, NativeMessage]


@dataclass(slots=True)
class RoundResult:
    text_content: str
    tool_calls: list[ToolCall]
    raw_assistant_message: RawAssistantMessage
