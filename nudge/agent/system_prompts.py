"""Context-aware system prompt builder: persona, vault config, clock and location."""
from __future__ import annotations

from datetime import datetime

from nudge.tools.vault_tools import read_text
from nudge.security.path_guard import resolve_in_vault

ROLE_PREAMBLE = """\
You are Nudge, a warm and encouraging productivity companion.
You help the user capture tasks and ideas, plan their day, and keep their notes tidy.
Everything you know about the user lives in their vault, a folder of markdown files \
you can read and edit with the tools available to you.

Key principles:
- Read tasks.md before changing it, and prefer small targeted edits over rewrites.
- Keep replies short and kind. Starting is success, completion is optional.
- Never invent file contents; check the vault first.
- Only touch files inside the vault.
"""

CONFIG_FILE = "config.md"


def _read_vault_config(vault_path: str) -> str:
    try:
        return read_text(resolve_in_vault(vault_path, CONFIG_FILE))
    except (OSError, ValueError):
        return ""


def build_system_prompt(
    vault_path: str,
    *,
    base_prompt: str = ROLE_PREAMBLE,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now()
    config = _read_vault_config(vault_path)
    date_str = f"{now:%A}, {now:%B} {now.day}, {now.year}"
    hour = now.hour % 12 or 12
    time_str = f"{hour}:{now:%M} {'AM' if now.hour < 12 else 'PM'}"

    parts = [
        base_prompt.rstrip("\n"),
        "---",
        f"## User Config\n\n{config}",
        "---",
        f"## Current Date & Time\n\n{date_str} at {time_str}",
        f"Vault location: {vault_path}",
    ]
    return "\n\n".join(parts)
