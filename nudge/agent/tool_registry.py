"""Vault tool executor: catalog binding, argument checks, and sequential dispatch."""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from nudge.agent.messages import ToolCall, ToolResult
from nudge.agent.providers.base import ToolDefinition
from nudge.agent.tool_catalog import VAULT_TOOLS
from nudge.observability.logging import get_runtime_logger
from nudge.observability.metrics import get_runtime_metrics
from nudge.security.path_guard import OutOfVaultError

logger = get_runtime_logger()
metrics = get_runtime_metrics()

ERROR_PREFIX = "Error:"


@dataclass(slots=True)
class ToolDef:
    definition: ToolDefinition
    handler: Callable[..., str]

    @property
    def name(self) -> str:
        return self.definition.name


class VaultToolExecutor:
    def __init__(self, vault_path: str) -> None:
        self.vault_path = vault_path
        self._tools: dict[str, ToolDef] = {}

    def register(self, tool: ToolDef) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def definitions(self) -> list[ToolDefinition]:
        return [td.definition for td in self._tools.values()]

    async def execute(self, name: str, args: dict[str, Any]) -> str:
        """Run one tool; every failure comes back as an ``Error: ...`` string."""
        td = self._tools.get(name)
        if td is None:
            return f"{ERROR_PREFIX} Unknown tool: {name}"

        properties = td.definition.parameters.get("properties", {})
        required = td.definition.parameters.get("required", [])
        kwargs = {key: _as_text(value) for key, value in (args or {}).items() if key in properties}
        missing = [key for key in required if key not in kwargs]
        if missing:
            return f"{ERROR_PREFIX} Invalid arguments for {name}: missing {', '.join(missing)}"

        started = time.monotonic()
        try:
            output = await asyncio.to_thread(td.handler, **kwargs)
        except OutOfVaultError as exc:
            output = f"{ERROR_PREFIX} {exc}"
        except Exception as exc:  # noqa: BLE001
            output = f"{ERROR_PREFIX} {exc}"
            logger.warning(
                "tool_failed",
                extra={"tool_name": name, "error_kind": exc.__class__.__name__},
            )

        metrics.increment_tool_call(name)
        logger.info(
            "tool_result",
            extra={
                "tool_name": name,
                "duration_ms": int((time.monotonic() - started) * 1000),
                "outcome": "error" if output.startswith(ERROR_PREFIX) else "ok",
            },
        )
        return output

    async def execute_all(self, tool_calls: Sequence[ToolCall]) -> list[ToolResult]:
        """Execute calls one after another, in the order the model issued them."""
        results: list[ToolResult] = []
        for tc in tool_calls:
            output = await self.execute(tc.name, tc.arguments)
            results.append(ToolResult(tool_call_id=tc.id, content=output))
        return results


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False)


def build_vault_executor(vault_path: str) -> VaultToolExecutor:
    """Bind every catalog tool to its implementation for one vault root."""
    from nudge.tools.task_archive import archive_tasks
    from nudge.tools.vault_tools import create_file, edit_file, list_files, move_file, read_file, write_file

    handlers: dict[str, Callable[..., str]] = {
        "read_file": lambda path: read_file(vault_path, path),
        "write_file": lambda path, content: write_file(vault_path, path, content),
        "edit_file": lambda path, old_text, new_text: edit_file(vault_path, path, old_text, new_text),
        "list_files": lambda directory="": list_files(vault_path, directory),
        "create_file": lambda path, content: create_file(vault_path, path, content),
        "move_file": lambda source, destination: move_file(vault_path, source, destination),
        "archive_tasks": lambda date: archive_tasks(vault_path, date),
    }

    executor = VaultToolExecutor(vault_path)
    for definition in VAULT_TOOLS:
        executor.register(ToolDef(definition=definition, handler=handlers[definition.name]))
    return executor
