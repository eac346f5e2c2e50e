"""Provider base types: ToolDefinition / ChatRequest / StreamRound / ProviderAdapter."""
from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

from nudge.agent.messages import ConversationEntry, Message, NativeMessage, RawAssistantMessage, RoundResult, ToolResult
from nudge.agent.providers.errors import (
    ProviderMismatchError,
    ProviderNotConfiguredError,
    StreamAborted,
    classify_provider_exception,
)


DEFAULT_MAX_TOKENS = 4096

TextCallback = Callable[[str], Awaitable[None] | None]


@dataclass(slots=True, frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(slots=True, frozen=True)
class ModelOption:
    value: str
    label: str


@dataclass(slots=True)
class ChatRequest:
    model: str
    system_prompt: str
    messages: list[ConversationEntry]
    tools: Sequence[ToolDefinition] = field(default_factory=tuple)
    max_tokens: int = DEFAULT_MAX_TOKENS


class StreamRound:
    """Handle for one in-flight round: await ``result()``, or ``cancel()`` it."""

    def __init__(self, task: asyncio.Task[RoundResult]) -> None:
        self._task = task
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def cancel(self) -> None:
        if self._task.done():
            return
        self._aborted = True
        self._task.cancel()

    async def result(self) -> RoundResult:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._aborted:
                raise StreamAborted("stream aborted") from None
            raise


class ProviderAdapter(ABC):
    family: str = ""

    def __init__(self, provider_id: str, *, max_tokens: int = DEFAULT_MAX_TOKENS) -> None:
        self.id = provider_id
        self.max_tokens = max_tokens
        self._credentials: tuple[str, str | None] | None = None
        self.client: Any = None

    @property
    def configured(self) -> bool:
        return self._credentials is not None

    async def configure(self, api_key: str, base_url: str | None = None) -> None:
        """(Re)build the vendor client; the previous client is closed first."""
        credentials = (api_key, base_url or None)
        if credentials == self._credentials:
            return
        await self.aclose()
        self._build_client(api_key, base_url or None)
        self._credentials = credentials

    async def aclose(self) -> None:
        client, self.client = self.client, None
        self._credentials = None
        close = getattr(client, "close", None)
        if close is not None:
            await close()

    @abstractmethod
    def _build_client(self, api_key: str, base_url: str | None) -> None: ...

    @abstractmethod
    async def validate_key(self, api_key: str, base_url: str | None = None, model: str | None = None) -> bool: ...

    def send_message_stream(
        self,
        *,
        messages: Sequence[ConversationEntry],
        system_prompt: str,
        model: str,
        tools: Sequence[ToolDefinition],
        on_text: TextCallback,
    ) -> StreamRound:
        request = ChatRequest(
            model=model,
            system_prompt=system_prompt,
            messages=list(messages),
            tools=tools,
            max_tokens=self.max_tokens,
        )
        task = asyncio.get_running_loop().create_task(self._run_round(request, on_text))
        return StreamRound(task)

    async def _run_round(self, request: ChatRequest, on_text: TextCallback) -> RoundResult:
        if not self.configured:
            raise ProviderNotConfiguredError(f"{self.id} client not configured")
        try:
            return await self._stream_round(request, on_text)
        except (ProviderMismatchError, StreamAborted):
            raise
        except Exception as exc:
            raise classify_provider_exception(exc) from exc

    @abstractmethod
    async def _stream_round(self, request: ChatRequest, on_text: TextCallback) -> RoundResult: ...

    @abstractmethod
    def build_tool_result_messages(
        self,
        raw_assistant_message: RawAssistantMessage,
        results: Sequence[ToolResult],
    ) -> list[NativeMessage]: ...

    @abstractmethod
    def list_default_models(self) -> list[ModelOption]: ...

    def _wire_messages(self, messages: Sequence[ConversationEntry]) -> list[dict[str, Any]]:
        result: list[dict[str, Any]] = []
        for entry in messages:
            if isinstance(entry, NativeMessage):
                if entry.family != self.family:
                    raise ProviderMismatchError(
                        f"{entry.family} message cannot be sent through the {self.family} adapter"
                    )
                result.append(dict(entry.payload))
            elif isinstance(entry, Message):
                result.append({"role": entry.role, "content": entry.content})
            else:
                raise ProviderMismatchError(f"unsupported conversation entry: {type(entry).__name__}")
        return result

    def _check_family(self, raw_assistant_message: RawAssistantMessage) -> None:
        if getattr(raw_assistant_message, "family", None) != self.family:
            raise ProviderMismatchError(
                f"{type(raw_assistant_message).__name__} cannot be replayed through the {self.family} adapter"
            )


async def call_maybe_async(fn: Callable, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result
