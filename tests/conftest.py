from __future__ import annotations

import asyncio
import importlib
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Awaitable, Callable

import pytest
from fastapi.testclient import TestClient

from nudge.agent.messages import AnthropicAssistantTurn, RoundResult, ToolCall
from nudge.agent.providers.anthropic_provider import AnthropicProvider
from nudge.agent.providers.base import ChatRequest, TextCallback, call_maybe_async

TASKS_MD = """# Tasks

Quick things to do.

## Today
- [ ] buy milk
- [x] call the dentist
- [ ] water plants
- [X] send invoice

## Recurring Daily
- [x] stretch
- [ ] journal

## Recurring Weekly
- [ ] review the week

## Later
- [ ] learn to juggle
"""


class ScriptedProvider(AnthropicProvider):
    """Anthropic-family adapter whose rounds come from a script instead of the network.

    Each step is ``(text, [ToolCall, ...])``, an exception to raise, or an async
    callable ``(request, on_text) -> RoundResult``.
    """

    def __init__(self, steps: list[Any]) -> None:
        super().__init__()
        self.steps = list(steps)
        self.requests: list[ChatRequest] = []

    def _build_client(self, api_key: str, base_url: str | None) -> None:
        self.client = None

    async def _stream_round(self, request: ChatRequest, on_text: TextCallback) -> RoundResult:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return await step(request, on_text)
        text, calls = step
        if text:
            await call_maybe_async(on_text, text)
        content: list[dict[str, Any]] = []
        if text:
            content.append({"type": "text", "text": text})
        for call in calls:
            content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments})
        return RoundResult(text_content=text, tool_calls=list(calls), raw_assistant_message=AnthropicAssistantTurn(content=content))


def blocking_step(started: asyncio.Event, chunk: str = "Let me ") -> Callable[..., Awaitable[RoundResult]]:
    async def step(request: ChatRequest, on_text: TextCallback) -> RoundResult:
        await call_maybe_async(on_text, chunk)
        started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    return step


class FakeSdkClient(SimpleNamespace):
    """Stand-in for an SDK client: attribute bag that records ``close``."""

    closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        self.closed = True


def tool_call(call_id: str, name: str, **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def tasks_vault(vault: Path) -> Path:
    (vault / "tasks.md").write_text(TASKS_MD, encoding="utf-8")
    return vault


@pytest.fixture
def isolated_client(tmp_path: Path, vault: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("NUDGE_DB_PATH", str(tmp_path / "runtime-test.db"))
    monkeypatch.setenv("NUDGE_VAULT_PATH", str(vault))
    monkeypatch.delenv("NUDGE_SECRET_KEY", raising=False)
    monkeypatch.delenv("NUDGE_CORS_ORIGINS", raising=False)
    for provider in ("ANTHROPIC", "OPENAI", "CUSTOM"):
        monkeypatch.delenv(f"NUDGE_SECRET_{provider}", raising=False)
    import nudge.main as main_module

    module = importlib.reload(main_module)
    with TestClient(module.app) as client:
        client.main_module = module
        yield client
