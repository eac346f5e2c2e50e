"""
loop.py: Agentic session loop

One send runs rounds until the model stops asking for tools:
stream a round, execute its tool calls in order, feed the results back
through the same adapter, repeat. At most one send is active per session;
starting another cancels the previous one.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from nudge.agent.messages import ConversationEntry, Message
from nudge.agent.provider_router import ProviderRegistry
from nudge.agent.providers.base import StreamRound, ToolDefinition, call_maybe_async
from nudge.agent.providers.errors import (
    ProviderNotConfiguredError,
    StreamAborted,
    UnknownProviderError,
    classify_provider_exception,
    user_facing_message,
)
from nudge.agent.tool_catalog import VAULT_TOOLS
from nudge.agent.tool_registry import VaultToolExecutor
from nudge.observability.logging import get_runtime_logger
from nudge.observability.metrics import get_runtime_metrics
from nudge.trace import get_current_trace_id

logger = get_runtime_logger()
debug_logger = logging.getLogger(__name__)
metrics = get_runtime_metrics()

DEFAULT_MAX_ROUNDS = 25

CredentialResolver = Callable[[str], Awaitable[tuple[str | None, str | None]]]
ExecutorFactory = Callable[[], Awaitable[VaultToolExecutor] | VaultToolExecutor]


@dataclass(slots=True)
class LoopError:
    kind: str  # "auth" | "rate_limit" | "offline" | "unknown"
    message: str
    user_message: str


@dataclass(slots=True)
class LoopCallbacks:
    on_text: Callable[[str], Awaitable[None] | None] | None = None
    on_tool_use: Callable[[list[str]], Awaitable[None] | None] | None = None
    on_done: Callable[[str], Awaitable[None] | None] | None = None
    on_error: Callable[[LoopError], Awaitable[None] | None] | None = None


@dataclass(slots=True)
class LoopOutcome:
    status: str  # "completed" | "max_rounds" | "aborted" | "failed"
    text: str = ""
    rounds: int = 0
    conversation: list[ConversationEntry] = field(default_factory=list)
    error: LoopError | None = None


class CancelToken:
    """Single-flight abort handle for one send; cancels whichever round is attached."""

    def __init__(self) -> None:
        self._cancelled = False
        self._round: StreamRound | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self, stream_round: StreamRound) -> None:
        self._round = stream_round
        if self._cancelled:
            stream_round.cancel()

    def detach(self) -> None:
        self._round = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._round is not None:
            self._round.cancel()


class AgentSession:
    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        resolve_credentials: CredentialResolver,
        executor_factory: ExecutorFactory,
        tools: Sequence[ToolDefinition] = VAULT_TOOLS,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        self.registry = registry
        self._resolve_credentials = resolve_credentials
        self._executor_factory = executor_factory
        self.tools = tuple(tools)
        self.max_rounds = max_rounds
        self._token: CancelToken | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def busy(self) -> bool:
        return self._token is not None

    async def send_message(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        provider_id: str,
        model: str,
        callbacks: LoopCallbacks | None = None,
    ) -> LoopOutcome:
        """Run rounds until the model stops requesting tools.

        ``messages`` is never modified; tool round-trips are appended to a
        working copy returned on the outcome. Cancellation ends the run with
        status ``"aborted"`` and no callback; any other failure fires
        ``on_error`` exactly once.
        """
        token = self._begin()
        return await self._run(token, messages, system_prompt, provider_id, model, callbacks or LoopCallbacks())

    def start_message(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        provider_id: str,
        model: str,
        callbacks: LoopCallbacks | None = None,
    ) -> Callable[[], None]:
        """Schedule a send in the background and return its cancel handle."""
        token = self._begin()
        task = asyncio.get_running_loop().create_task(
            self._run(token, messages, system_prompt, provider_id, model, callbacks or LoopCallbacks())
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return token.cancel

    def cancel_stream(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None

    async def validate_key(
        self,
        provider_id: str,
        api_key: str,
        base_url: str | None = None,
        model: str | None = None,
    ) -> bool:
        try:
            provider = self.registry.get_provider(provider_id)
        except UnknownProviderError:
            logger.warning("validate_key unknown provider", extra={"provider": provider_id})
            return False
        return await provider.validate_key(api_key, base_url, model)

    def _begin(self) -> CancelToken:
        self.cancel_stream()
        token = CancelToken()
        self._token = token
        return token

    async def _run(
        self,
        token: CancelToken,
        messages: Sequence[Message],
        system_prompt: str,
        provider_id: str,
        model: str,
        cb: LoopCallbacks,
    ) -> LoopOutcome:
        metrics.runs_total += 1
        trace_id = get_current_trace_id()
        started = time.monotonic()
        conversation: list[ConversationEntry] = list(messages)
        text_parts: list[str] = []
        rounds = 0

        async def on_text(chunk: str) -> None:
            if not token.cancelled and cb.on_text:
                await call_maybe_async(cb.on_text, chunk)

        try:
            provider = self.registry.get_provider(provider_id)
            api_key, base_url = await self._resolve_credentials(provider_id)
            if not api_key:
                raise ProviderNotConfiguredError(f"API key not configured for {provider_id}")
            await provider.configure(api_key, base_url)
            executor = await call_maybe_async(self._executor_factory)

            status = "completed"
            while True:
                if token.cancelled:
                    raise StreamAborted("cancelled between rounds")
                if rounds >= self.max_rounds:
                    status = "max_rounds"
                    logger.warning(
                        "agent_loop hit max_rounds",
                        extra={"trace_id": trace_id, "provider": provider_id, "round": rounds},
                    )
                    break

                rounds += 1
                metrics.rounds_total += 1
                debug_logger.debug("agent_loop round=%d entries=%d", rounds, len(conversation))
                stream_round = provider.send_message_stream(
                    messages=conversation,
                    system_prompt=system_prompt,
                    model=model,
                    tools=self.tools,
                    on_text=on_text,
                )
                token.attach(stream_round)
                try:
                    result = await stream_round.result()
                finally:
                    token.detach()
                if token.cancelled:
                    raise StreamAborted("cancelled after round")

                text_parts.append(result.text_content)
                if not result.tool_calls:
                    break

                names = [tc.name for tc in result.tool_calls]
                logger.info(
                    "tool_calls",
                    extra={
                        "trace_id": trace_id,
                        "provider": provider_id,
                        "round": rounds,
                        "tool_count": len(names),
                    },
                )
                if cb.on_tool_use and not token.cancelled:
                    await call_maybe_async(cb.on_tool_use, names)

                # Dispatched tools always run to completion, even if cancelled meanwhile.
                tool_results = await executor.execute_all(result.tool_calls)
                conversation.extend(provider.build_tool_result_messages(result.raw_assistant_message, tool_results))
        except StreamAborted:
            metrics.runs_aborted_total += 1
            logger.info(
                "agent_loop aborted",
                extra={"trace_id": trace_id, "provider": provider_id, "round": rounds, "outcome": "aborted"},
            )
            return LoopOutcome(status="aborted", text="".join(text_parts), rounds=rounds, conversation=conversation)
        except Exception as exc:  # noqa: BLE001
            metrics.runs_failed_total += 1
            classified = classify_provider_exception(exc)
            error = LoopError(
                kind=classified.kind,
                message=classified.message,
                user_message=user_facing_message(classified),
            )
            logger.warning(
                "agent_loop failed",
                extra={
                    "trace_id": trace_id,
                    "provider": provider_id,
                    "round": rounds,
                    "error_kind": error.kind,
                    "outcome": "failed",
                },
            )
            if cb.on_error:
                await call_maybe_async(cb.on_error, error)
            return LoopOutcome(
                status="failed",
                text="".join(text_parts),
                rounds=rounds,
                conversation=conversation,
                error=error,
            )
        finally:
            if self._token is token:
                self._token = None

        text = "".join(text_parts)
        logger.info(
            "agent_loop done",
            extra={
                "trace_id": trace_id,
                "provider": provider_id,
                "model": model,
                "round": rounds,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "outcome": status,
            },
        )
        if cb.on_done:
            await call_maybe_async(cb.on_done, text)
        return LoopOutcome(status=status, text=text, rounds=rounds, conversation=conversation)
