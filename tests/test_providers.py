"""Adapter tests against in-process fakes of the vendor SDK clients."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import anthropic
import httpx
import pytest
from anthropic.types import TextBlock, ToolUseBlock

from conftest import FakeSdkClient
from nudge.agent.messages import (
    AnthropicAssistantTurn,
    Message,
    NativeMessage,
    OpenAIAssistantTurn,
    ToolResult,
)
from nudge.agent.providers import anthropic_provider, openai_provider
from nudge.agent.providers.anthropic_provider import AnthropicProvider
from nudge.agent.providers.errors import (
    ProviderAuthError,
    ProviderMismatchError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderTransportError,
    StreamAborted,
    classify_provider_exception,
)
from nudge.agent.providers.openai_provider import OpenAIProvider, ToolCallAssembler
from nudge.agent.tool_catalog import VAULT_TOOLS


# ─── Anthropic fakes ──────────────────────────────────────────────────────────

class FakeAnthropicStream:
    def __init__(self, texts: list[str], content: list, gate: asyncio.Event | None = None) -> None:
        self._texts = texts
        self._content = content
        self._gate = gate

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def text_stream(self):
        async def iterate():
            for text in self._texts:
                yield text
                if self._gate is not None:
                    await self._gate.wait()

        return iterate()

    async def get_final_message(self):
        return SimpleNamespace(content=self._content)


class FakeAnthropicMessages:
    def __init__(self, stream: FakeAnthropicStream) -> None:
        self._stream = stream
        self.payloads: list[dict] = []

    def stream(self, **payload):
        self.payloads.append(payload)
        return self._stream


async def _anthropic(stream: FakeAnthropicStream) -> tuple[AnthropicProvider, FakeAnthropicMessages]:
    provider = AnthropicProvider()
    await provider.configure("sk-ant-test")
    messages = FakeAnthropicMessages(stream)
    provider.client = SimpleNamespace(messages=messages)
    return provider, messages


# ─── OpenAI fakes ─────────────────────────────────────────────────────────────

def _chunk(content: str | None = None, tool_calls: list | None = None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def _fragment(index: int, call_id: str | None = None, name: str | None = None, arguments: str | None = None):
    return SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeOpenAIStream:
    def __init__(self, chunks: list) -> None:
        self._chunks = chunks
        self.closed = False

    def __aiter__(self):
        async def iterate():
            for chunk in self._chunks:
                yield chunk

        return iterate()

    async def close(self) -> None:
        self.closed = True


async def _openai(stream: FakeOpenAIStream, provider_id: str = "openai") -> tuple[OpenAIProvider, AsyncMock]:
    provider = OpenAIProvider(provider_id)
    await provider.configure("sk-test")
    create = AsyncMock(return_value=stream)
    provider.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return provider, create


# ─── Anthropic adapter ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_anthropic_round_streams_text_and_extracts_tool_calls():
    content = [
        TextBlock(type="text", text="Let me check."),
        ToolUseBlock(type="tool_use", id="toolu_1", name="read_file", input={"path": "tasks.md"}),
    ]
    provider, messages = await _anthropic(FakeAnthropicStream(["Let me ", "check."], content))
    chunks: list[str] = []

    stream_round = provider.send_message_stream(
        messages=[Message(role="user", content="what's on today?")],
        system_prompt="You are Nudge.",
        model="claude-sonnet-4-5",
        tools=VAULT_TOOLS,
        on_text=chunks.append,
    )
    result = await stream_round.result()

    assert chunks == ["Let me ", "check."]
    assert result.text_content == "Let me check."
    assert [(c.id, c.name, c.arguments) for c in result.tool_calls] == [("toolu_1", "read_file", {"path": "tasks.md"})]
    assert isinstance(result.raw_assistant_message, AnthropicAssistantTurn)
    assert result.raw_assistant_message.content[1]["type"] == "tool_use"
    assert result.raw_assistant_message.content[1]["id"] == "toolu_1"

    payload = messages.payloads[0]
    assert payload["system"] == "You are Nudge."
    assert payload["max_tokens"] == 4096
    assert payload["messages"] == [{"role": "user", "content": "what's on today?"}]
    assert payload["tools"][0] == {
        "name": "read_file",
        "description": VAULT_TOOLS[0].description,
        "input_schema": VAULT_TOOLS[0].parameters,
    }


def test_anthropic_tool_result_messages_shape():
    provider = AnthropicProvider()
    raw = AnthropicAssistantTurn(content=[
        {"type": "tool_use", "id": "toolu_1", "name": "read_file", "input": {"path": "a.md"}},
        {"type": "tool_use", "id": "toolu_2", "name": "read_file", "input": {"path": "b.md"}},
    ])
    follow_up = provider.build_tool_result_messages(
        raw,
        [ToolResult("toolu_1", "alpha"), ToolResult("toolu_2", "Error: File not found: b.md")],
    )

    assert [m.payload["role"] for m in follow_up] == ["assistant", "user"]
    assert follow_up[0].payload["content"] == raw.content
    assert follow_up[1].payload["content"] == [
        {"type": "tool_result", "tool_use_id": "toolu_1", "content": "alpha"},
        {"type": "tool_result", "tool_use_id": "toolu_2", "content": "Error: File not found: b.md"},
    ]
    assert all(m.family == "anthropic" for m in follow_up)


def test_adapters_refuse_foreign_raw_messages():
    with pytest.raises(ProviderMismatchError):
        AnthropicProvider().build_tool_result_messages(OpenAIAssistantTurn(message={"role": "assistant"}), [])
    with pytest.raises(ProviderMismatchError):
        OpenAIProvider().build_tool_result_messages(AnthropicAssistantTurn(content=[]), [])


@pytest.mark.asyncio
async def test_adapter_refuses_foreign_native_messages_in_history():
    provider, _ = await _openai(FakeOpenAIStream([]))
    stream_round = provider.send_message_stream(
        messages=[NativeMessage("anthropic", {"role": "user", "content": []})],
        system_prompt="",
        model="gpt-4o",
        tools=(),
        on_text=lambda text: None,
    )
    with pytest.raises(ProviderMismatchError):
        await stream_round.result()


@pytest.mark.asyncio
async def test_unconfigured_adapter_fails_round():
    stream_round = AnthropicProvider().send_message_stream(
        messages=[Message("user", "hi")], system_prompt="", model="", tools=(), on_text=lambda text: None,
    )
    with pytest.raises(ProviderNotConfiguredError):
        await stream_round.result()


@pytest.mark.asyncio
async def test_cancel_mid_stream_raises_stream_aborted():
    gate = asyncio.Event()
    provider, _ = await _anthropic(FakeAnthropicStream(["partial", "never"], [], gate=gate))
    first_chunk = asyncio.Event()

    stream_round = provider.send_message_stream(
        messages=[Message("user", "hi")],
        system_prompt="",
        model="",
        tools=(),
        on_text=lambda text: first_chunk.set(),
    )
    await asyncio.wait_for(first_chunk.wait(), timeout=1)
    stream_round.cancel()

    with pytest.raises(StreamAborted):
        await stream_round.result()
    assert stream_round.aborted


@pytest.mark.asyncio
async def test_cancel_after_completion_is_a_no_op():
    provider, _ = await _anthropic(FakeAnthropicStream(["done"], [TextBlock(type="text", text="done")]))
    stream_round = provider.send_message_stream(
        messages=[Message("user", "hi")], system_prompt="", model="", tools=(), on_text=lambda text: None,
    )
    result = await stream_round.result()
    stream_round.cancel()
    assert result.text_content == "done"
    assert not stream_round.aborted


@pytest.mark.asyncio
async def test_anthropic_validate_key(monkeypatch: pytest.MonkeyPatch):
    create = AsyncMock()
    monkeypatch.setattr(
        anthropic_provider,
        "AsyncAnthropic",
        lambda **kwargs: FakeSdkClient(messages=SimpleNamespace(create=create)),
    )
    assert await AnthropicProvider().validate_key("sk-ant-good") is True
    kwargs = create.await_args.kwargs
    assert kwargs["max_tokens"] == 10
    assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    create.side_effect = RuntimeError("401 invalid x-api-key")
    assert await AnthropicProvider().validate_key("sk-ant-bad") is False


# ─── OpenAI adapter ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_openai_round_assembles_fragmented_tool_calls():
    stream = FakeOpenAIStream([
        _chunk(content="On it"),
        _chunk(tool_calls=[_fragment(0, "call_a", "edit_", '{"path": "tas')]),
        _chunk(tool_calls=[_fragment(0, None, "file", 'ks.md", "old_text": "- [ ] buy milk", ')]),
        _chunk(tool_calls=[_fragment(1, None, "list_files", '{"directory": "ideas"}')]),
        _chunk(tool_calls=[_fragment(0, None, None, '"new_text": "- [x] buy milk"}')]),
        SimpleNamespace(choices=[]),
    ])
    provider, create = await _openai(stream)
    chunks: list[str] = []

    result = await provider.send_message_stream(
        messages=[Message("user", "mark buy milk done")],
        system_prompt="You are Nudge.",
        model="gpt-4o",
        tools=VAULT_TOOLS,
        on_text=chunks.append,
    ).result()

    assert chunks == ["On it"]
    assert [(c.id, c.name) for c in result.tool_calls] == [("call_a", "edit_file"), ("tool_call_1", "list_files")]
    assert result.tool_calls[0].arguments == {
        "path": "tasks.md",
        "old_text": "- [ ] buy milk",
        "new_text": "- [x] buy milk",
    }
    assert result.tool_calls[1].arguments == {"directory": "ideas"}
    assert stream.closed

    message = result.raw_assistant_message.message
    assert message["role"] == "assistant"
    assert message["content"] == "On it"
    assert [c["id"] for c in message["tool_calls"]] == ["call_a", "tool_call_1"]

    payload = create.await_args.kwargs
    assert payload["stream"] is True
    assert payload["max_completion_tokens"] == 4096
    assert payload["messages"][0] == {"role": "system", "content": "You are Nudge."}
    assert payload["tools"][0]["function"]["name"] == "read_file"


@pytest.mark.asyncio
async def test_openai_bad_argument_json_becomes_empty_dict():
    stream = FakeOpenAIStream([
        _chunk(tool_calls=[_fragment(0, "call_x", "read_file", '{"path": ')]),
    ])
    provider, _ = await _openai(stream)
    result = await provider.send_message_stream(
        messages=[Message("user", "hi")], system_prompt="", model="gpt-4o", tools=VAULT_TOOLS, on_text=lambda t: None,
    ).result()
    assert result.tool_calls[0].arguments == {}
    assert result.raw_assistant_message.message["content"] is None


def test_tool_call_assembler_non_object_arguments():
    assembler = ToolCallAssembler()
    assembler.add(0, "c0", "list_files", "[1, 2]")
    tool_calls, wire = assembler.finish()
    assert tool_calls[0].arguments == {}
    assert wire[0]["function"]["arguments"] == "[1, 2]"


def test_openai_tool_result_messages_shape():
    raw = OpenAIAssistantTurn(message={
        "role": "assistant",
        "content": None,
        "tool_calls": [{"id": "call_a", "type": "function", "function": {"name": "read_file", "arguments": "{}"}}],
    })
    follow_up = OpenAIProvider().build_tool_result_messages(raw, [ToolResult("call_a", "hello")])
    assert [m.payload for m in follow_up] == [
        raw.message,
        {"role": "tool", "tool_call_id": "call_a", "content": "hello"},
    ]


@pytest.mark.asyncio
async def test_custom_provider_uses_max_tokens():
    provider, create = await _openai(FakeOpenAIStream([_chunk(content="ok")]), provider_id="custom")
    await provider.send_message_stream(
        messages=[Message("user", "hi")], system_prompt="", model="llama3", tools=(), on_text=lambda t: None,
    ).result()
    payload = create.await_args.kwargs
    assert payload["max_tokens"] == 4096
    assert "max_completion_tokens" not in payload
    assert "tools" not in payload


@pytest.mark.asyncio
async def test_custom_https_endpoint_skips_tls_verification(monkeypatch: pytest.MonkeyPatch):
    created: list[dict] = []
    monkeypatch.setattr(openai_provider, "AsyncOpenAI", lambda **kwargs: created.append(kwargs) or FakeSdkClient())
    monkeypatch.setattr(openai_provider, "DefaultAsyncHttpxClient", lambda **kwargs: ("insecure", kwargs))

    await OpenAIProvider("custom").configure("key", "https://llm.local/v1")
    await OpenAIProvider("custom", custom_tls_verify=True).configure("key", "https://llm.local/v1")
    await OpenAIProvider("openai").configure("key")

    assert created[0]["http_client"] == ("insecure", {"verify": False})
    assert "http_client" not in created[1]
    assert created[2] == {"api_key": "key"}


@pytest.mark.asyncio
async def test_configure_is_idempotent_and_closes_replaced_client(monkeypatch: pytest.MonkeyPatch):
    clients: list[FakeSdkClient] = []
    monkeypatch.setattr(openai_provider, "AsyncOpenAI", lambda **kwargs: clients.append(FakeSdkClient(**kwargs)) or clients[-1])
    provider = OpenAIProvider("openai")
    await provider.configure("key")
    await provider.configure("key")
    await provider.configure("other")

    assert [c.api_key for c in clients] == ["key", "other"]
    assert clients[0].closed is True
    assert clients[1].closed is False

    await provider.aclose()
    assert clients[1].closed is True
    assert not provider.configured


@pytest.mark.asyncio
async def test_validate_key_closes_its_client(monkeypatch: pytest.MonkeyPatch):
    clients: list[FakeSdkClient] = []

    def make_client(**kwargs):
        clients.append(FakeSdkClient(messages=SimpleNamespace(create=AsyncMock())))
        return clients[-1]

    monkeypatch.setattr(anthropic_provider, "AsyncAnthropic", make_client)
    provider = AnthropicProvider()
    assert await provider.validate_key("sk-ant-good") is True
    assert await provider.validate_key("sk-ant-other") is True

    assert [c.closed for c in clients] == [True, True]
    assert provider.client is None


@pytest.mark.asyncio
async def test_openai_validate_key_models(monkeypatch: pytest.MonkeyPatch):
    create = AsyncMock()
    monkeypatch.setattr(
        openai_provider,
        "AsyncOpenAI",
        lambda **kwargs: FakeSdkClient(chat=SimpleNamespace(completions=SimpleNamespace(create=create))),
    )
    assert await OpenAIProvider("openai").validate_key("sk-good") is True
    assert create.await_args.kwargs["model"] == "gpt-4o-mini"
    assert create.await_args.kwargs["max_completion_tokens"] == 10

    assert await OpenAIProvider("custom").validate_key("sk-good", "http://localhost:11434/v1") is True
    assert create.await_args.kwargs["model"] == "gpt-4o"
    assert create.await_args.kwargs["max_tokens"] == 10

    create.side_effect = httpx.ConnectError("refused")
    assert await OpenAIProvider("openai").validate_key("sk-bad") is False


# ─── Error classification ─────────────────────────────────────────────────────

def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return cls("boom", response=response, body=None)


def test_classify_vendor_exceptions():
    assert isinstance(classify_provider_exception(_status_error(anthropic.AuthenticationError, 401)), ProviderAuthError)
    assert isinstance(classify_provider_exception(_status_error(anthropic.RateLimitError, 429)), ProviderRateLimitError)
    assert isinstance(classify_provider_exception(httpx.ConnectError("down")), ProviderTransportError)

    limited = classify_provider_exception(_status_error(anthropic.RateLimitError, 429))
    assert limited.kind == "rate_limit"
    assert limited.status_code == 429

    other = classify_provider_exception(ValueError("weird"))
    assert other.kind == "unknown"
    assert other.message == "weird"
