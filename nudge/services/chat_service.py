from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any

from nudge.agent.loop import AgentSession, LoopCallbacks, LoopError
from nudge.agent.messages import Message
from nudge.agent.provider_router import ProviderRegistry, default_model_for
from nudge.agent.system_prompts import build_system_prompt
from nudge.agent.tool_registry import VaultToolExecutor, build_vault_executor
from nudge.db.repositories import Repository
from nudge.errors import NudgeApiError
from nudge.observability.logging import get_runtime_logger
from nudge.services.credential_store import CredentialStore
from nudge.services.settings_store import SettingsStore
from nudge.sse.event_bus import EventBus
from nudge.trace import get_current_trace_id

logger = get_runtime_logger()


class ChatService:
    """Drives the agent session for persisted chat sessions and fans events out over SSE."""

    def __init__(
        self,
        *,
        repo: Repository,
        bus: EventBus,
        settings_store: SettingsStore,
        credentials: CredentialStore,
        registry: ProviderRegistry,
        max_rounds: int,
    ) -> None:
        self.repo = repo
        self.bus = bus
        self.settings_store = settings_store
        self.credentials = credentials
        self.registry = registry
        self.agent = AgentSession(
            registry=registry,
            resolve_credentials=self._resolve_credentials,
            executor_factory=self._build_executor,
            max_rounds=max_rounds,
        )
        self._active_session_id: str | None = None

    async def _resolve_credentials(self, provider_id: str) -> tuple[str | None, str | None]:
        api_key = await self.credentials.get_secret(provider_id)
        base_url = await self.settings_store.base_url_for(provider_id)
        return api_key, base_url

    async def _build_executor(self) -> VaultToolExecutor:
        return build_vault_executor(await self.settings_store.vault_path())

    async def send(
        self,
        session_id: str,
        content: str,
        *,
        provider_id: str | None = None,
        model: str | None = None,
    ) -> dict[str, Any]:
        content = content.strip()
        if not content:
            raise NudgeApiError(
                code="E_SCHEMA_INVALID",
                message="Message content is empty.",
                retryable=False,
                status_code=400,
                cause="empty_message",
            )
        session = await self.repo.get_session(session_id)
        if session is None:
            raise NudgeApiError(
                code="E_NOT_FOUND",
                message="Session not found.",
                retryable=False,
                status_code=404,
                cause="session_lookup",
            )

        provider_id = provider_id or await self.settings_store.active_provider()
        self.registry.get_provider(provider_id)
        model = model or await self.settings_store.model_for(provider_id) or default_model_for(provider_id)
        vault_path = await self.settings_store.vault_path()
        system_prompt = await asyncio.to_thread(build_system_prompt, vault_path)

        user_message = await self.repo.add_message(session_id, "user", content)
        history = [Message(role=m["role"], content=m["content"]) for m in session["messages"]]
        history.append(Message(role="user", content=content))

        await self._cancel_active()
        self._active_session_id = session_id
        self.agent.start_message(history, system_prompt, provider_id, model, self._callbacks(session_id))
        logger.info(
            "chat_started",
            extra={
                "trace_id": get_current_trace_id(),
                "session_id": session_id,
                "provider": provider_id,
                "model": model,
            },
        )
        return user_message

    async def cancel(self) -> bool:
        return await self._cancel_active()

    async def _cancel_active(self) -> bool:
        session_id = self._active_session_id
        if session_id is None:
            return False
        self._active_session_id = None
        self.agent.cancel_stream()
        await self.emit(session_id, "cancelled", {})
        logger.info("chat_cancelled", extra={"session_id": session_id, "outcome": "aborted"})
        return True

    def _callbacks(self, session_id: str) -> LoopCallbacks:
        async def on_text(text: str) -> None:
            await self.emit(session_id, "text", {"text": text})

        async def on_tool_use(names: list[str]) -> None:
            await self.emit(session_id, "tool_use", {"tools": names})

        async def on_done(text: str) -> None:
            message = None
            if text:
                message = await self.repo.add_message(session_id, "assistant", text)
            self._finish(session_id)
            await self.emit(session_id, "done", {"text": text, "message": message})

        async def on_error(error: LoopError) -> None:
            self._finish(session_id)
            await self.emit(
                session_id,
                "error",
                {"kind": error.kind, "message": error.user_message, "detail": error.message},
            )

        return LoopCallbacks(on_text=on_text, on_tool_use=on_tool_use, on_done=on_done, on_error=on_error)

    def _finish(self, session_id: str) -> None:
        if self._active_session_id == session_id:
            self._active_session_id = None

    async def emit(self, session_id: str, event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        event = {
            "type": event_type,
            "session_id": session_id,
            "trace_id": get_current_trace_id(),
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "payload": payload,
        }
        await self.bus.publish(session_id, event)
        return event


async def stream_as_sse(event: dict[str, Any]) -> dict[str, str]:
    return {
        "event": event["type"],
        "data": json.dumps(event, ensure_ascii=False),
    }
