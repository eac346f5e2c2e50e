"""OpenAI Chat Completions provider (also used for OpenAI-compatible endpoints)."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from openai import AsyncOpenAI, DefaultAsyncHttpxClient

from nudge.agent.messages import (
    OPENAI_FAMILY,
    NativeMessage,
    OpenAIAssistantTurn,
    RawAssistantMessage,
    RoundResult,
    ToolCall,
    ToolResult,
)
from nudge.agent.providers.base import (
    DEFAULT_MAX_TOKENS,
    ChatRequest,
    ModelOption,
    ProviderAdapter,
    TextCallback,
    ToolDefinition,
    call_maybe_async,
)
from nudge.observability.redaction import redact

logger = logging.getLogger(__name__)

CUSTOM_PROVIDER_ID = "custom"
DEFAULT_MODEL = "gpt-4o"

DEFAULT_MODELS = [
    ModelOption("gpt-5.2", "gpt-5.2"),
    ModelOption("gpt-5-mini", "gpt-5-mini"),
    ModelOption("gpt-4o", "GPT-4o"),
    ModelOption("gpt-4o-mini", "GPT-4o Mini"),
    ModelOption("gpt-4.1", "gpt-4.1"),
    ModelOption("gpt-4.1-mini", "gpt-4.1-mini"),
    ModelOption("o3-mini", "o3-mini"),
]
CUSTOM_MODELS = [ModelOption("gpt-4o", "GPT-4o (default)")]


@dataclass(slots=True)
class _PartialToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAssembler:
    """Accumulates streamed tool-call fragments keyed by their positional index.

    ``name`` and ``arguments`` fragments are concatenated as they arrive and
    the last non-empty ``id`` wins. Arguments are only parsed by ``finish()``,
    once the stream is over; unparseable arguments become an empty dict.
    """

    def __init__(self) -> None:
        self._calls: dict[int, _PartialToolCall] = {}

    def add(self, index: int, call_id: str | None, name: str | None, arguments: str | None) -> None:
        partial = self._calls.setdefault(index, _PartialToolCall())
        if call_id:
            partial.id = call_id
        if name:
            partial.name += name
        if arguments:
            partial.arguments += arguments

    def finish(self) -> tuple[list[ToolCall], list[dict[str, Any]]]:
        tool_calls: list[ToolCall] = []
        wire_calls: list[dict[str, Any]] = []
        for index, partial in self._calls.items():
            call_id = partial.id or f"tool_call_{index}"
            tool_calls.append(ToolCall(id=call_id, name=partial.name, arguments=_parse_arguments(partial.arguments)))
            wire_calls.append({
                "id": call_id,
                "type": "function",
                "function": {"name": partial.name, "arguments": partial.arguments},
            })
        return tool_calls, wire_calls


class OpenAIProvider(ProviderAdapter):
    family = OPENAI_FAMILY

    def __init__(
        self,
        provider_id: str = "openai",
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        custom_tls_verify: bool = False,
    ) -> None:
        super().__init__(provider_id, max_tokens=max_tokens)
        self.custom_tls_verify = custom_tls_verify
        self.client: AsyncOpenAI | None = None

    def _new_client(self, api_key: str, base_url: str | None) -> AsyncOpenAI:
        kwargs: dict[str, Any] = {"api_key": api_key}
        if base_url:
            kwargs["base_url"] = base_url
        # Custom https endpoints skip certificate verification unless configured.
        if (
            self.id == CUSTOM_PROVIDER_ID
            and not self.custom_tls_verify
            and base_url
            and base_url.lower().startswith("https://")
        ):
            kwargs["http_client"] = DefaultAsyncHttpxClient(verify=False)
        return AsyncOpenAI(**kwargs)

    def _build_client(self, api_key: str, base_url: str | None) -> None:
        self.client = self._new_client(api_key, base_url)

    async def validate_key(self, api_key: str, base_url: str | None = None, model: str | None = None) -> bool:
        test_model = model or (DEFAULT_MODEL if self.id == CUSTOM_PROVIDER_ID else "gpt-4o-mini")
        try:
            async with self._new_client(api_key, base_url or None) as client:
                await client.chat.completions.create(
                    model=test_model,
                    messages=[{"role": "user", "content": "Hi"}],
                    **{self._token_limit_param(): 10},
                )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "validate_key failed",
                extra={
                    "provider": self.id,
                    "model": test_model,
                    "details": redact({
                        "api_key": api_key,
                        "base_url": base_url or "(default)",
                        "error": str(exc),
                        "error_type": exc.__class__.__name__,
                        "status": getattr(exc, "status_code", None),
                    }),
                },
            )
            return False
        return True

    async def _stream_round(self, request: ChatRequest, on_text: TextCallback) -> RoundResult:
        payload: dict[str, Any] = {
            "model": request.model or DEFAULT_MODEL,
            "messages": _build_messages(request.system_prompt, self._wire_messages(request.messages)),
            "stream": True,
            self._token_limit_param(): request.max_tokens,
        }
        if request.tools:
            payload["tools"] = _build_tools(request.tools)

        text_parts: list[str] = []
        assembler = ToolCallAssembler()
        stream = await self.client.chat.completions.create(**payload)
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta is None:
                    continue
                if delta.content:
                    text_parts.append(delta.content)
                    await call_maybe_async(on_text, delta.content)
                for fragment in delta.tool_calls or []:
                    function = fragment.function
                    assembler.add(
                        fragment.index,
                        fragment.id,
                        function.name if function else None,
                        function.arguments if function else None,
                    )
        finally:
            await stream.close()

        text_content = "".join(text_parts)
        tool_calls, wire_calls = assembler.finish()
        raw_message: dict[str, Any] = {"role": "assistant", "content": text_content or None}
        if wire_calls:
            raw_message["tool_calls"] = wire_calls

        return RoundResult(
            text_content=text_content,
            tool_calls=tool_calls,
            raw_assistant_message=OpenAIAssistantTurn(message=raw_message),
        )

    def build_tool_result_messages(
        self,
        raw_assistant_message: RawAssistantMessage,
        results: Sequence[ToolResult],
    ) -> list[NativeMessage]:
        self._check_family(raw_assistant_message)
        messages = [NativeMessage(self.family, dict(raw_assistant_message.message))]
        for index, result in enumerate(results):
            messages.append(NativeMessage(self.family, {
                "role": "tool",
                "tool_call_id": result.tool_call_id or f"tool_call_{index}",
                "content": result.content,
            }))
        return messages

    def list_default_models(self) -> list[ModelOption]:
        if self.id == CUSTOM_PROVIDER_ID:
            return list(CUSTOM_MODELS)
        return list(DEFAULT_MODELS)

    def _token_limit_param(self) -> str:
        # OpenAI proper takes max_completion_tokens; compatible servers take max_tokens.
        if self.id == CUSTOM_PROVIDER_ID:
            return "max_tokens"
        return "max_completion_tokens"


def _parse_arguments(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw) if raw else {}
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _build_messages(system_prompt: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Prepend the system prompt to already wire-shaped chat messages."""
    result: list[dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})
    result.extend(messages)
    return result


def _build_tools(tools: Sequence[ToolDefinition]) -> list[dict]:
    """Convert ToolDefinitions to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]
