"""Anthropic Messages API provider with streaming and native tool_use support."""
from __future__ import annotations

import logging
from typing import Any, Sequence

from anthropic import AsyncAnthropic

from nudge.agent.messages import (
    ANTHROPIC_FAMILY,
    AnthropicAssistantTurn,
    NativeMessage,
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

DEFAULT_MODEL = "claude-sonnet-4-5"

DEFAULT_MODELS = [
    ModelOption("claude-sonnet-4-5", "Claude Sonnet 4.5"),
    ModelOption("claude-opus-4-1", "Claude Opus 4.1"),
    ModelOption("claude-haiku-4-5", "Claude Haiku 4.5"),
    ModelOption("claude-sonnet-4-0", "Claude Sonnet 4"),
]


class AnthropicProvider(ProviderAdapter):
    family = ANTHROPIC_FAMILY

    def __init__(self, provider_id: str = "anthropic", *, max_tokens: int = DEFAULT_MAX_TOKENS) -> None:
        super().__init__(provider_id, max_tokens=max_tokens)
        self.client: AsyncAnthropic | None = None

    def _build_client(self, api_key: str, base_url: str | None) -> None:
        self.client = AsyncAnthropic(api_key=api_key, base_url=base_url)

    async def validate_key(self, api_key: str, base_url: str | None = None, model: str | None = None) -> bool:
        test_model = model or DEFAULT_MODEL
        try:
            async with AsyncAnthropic(api_key=api_key, base_url=base_url or None) as client:
                await client.messages.create(
                    model=test_model,
                    max_tokens=10,
                    messages=[{"role": "user", "content": "Hi"}],
                )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "validate_key failed",
                extra={
                    "provider": self.id,
                    "model": test_model,
                    "details": redact({
                        "api_key": api_key,
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
            "max_tokens": request.max_tokens,
            "messages": self._wire_messages(request.messages),
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.tools:
            payload["tools"] = _build_tools(request.tools)

        text_parts: list[str] = []
        async with self.client.messages.stream(**payload) as stream:
            async for text in stream.text_stream:
                text_parts.append(text)
                await call_maybe_async(on_text, text)
            final_message = await stream.get_final_message()

        tool_calls: list[ToolCall] = []
        for block in final_message.content:
            if block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=dict(block.input) if isinstance(block.input, dict) else {},
                ))

        return RoundResult(
            text_content="".join(text_parts),
            tool_calls=tool_calls,
            raw_assistant_message=AnthropicAssistantTurn(
                content=[_dump_block(block) for block in final_message.content],
            ),
        )

    def build_tool_result_messages(
        self,
        raw_assistant_message: RawAssistantMessage,
        results: Sequence[ToolResult],
    ) -> list[NativeMessage]:
        self._check_family(raw_assistant_message)
        return [
            NativeMessage(self.family, {"role": "assistant", "content": list(raw_assistant_message.content)}),
            NativeMessage(self.family, {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.tool_call_id,
                        "content": result.content,
                    }
                    for result in results
                ],
            }),
        ]

    def list_default_models(self) -> list[ModelOption]:
        return list(DEFAULT_MODELS)


def _dump_block(block: Any) -> dict[str, Any]:
    if isinstance(block, dict):
        return dict(block)
    return block.model_dump(mode="json", exclude_none=True)


def _build_tools(tools: Sequence[ToolDefinition]) -> list[dict]:
    """Convert ToolDefinitions to Anthropic tools format."""
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.parameters,
        }
        for t in tools
    ]
