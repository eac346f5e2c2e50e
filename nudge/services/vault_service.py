from __future__ import annotations

from pathlib import Path
from typing import Any

from nudge.observability.logging import get_runtime_logger
from nudge.security.path_guard import OutOfVaultError, normalize_root, relative_to_vault, resolve_in_vault
from nudge.tools.vault_tools import atomic_write_text, read_text

logger = get_runtime_logger()

DEFAULT_TASKS = (
    "# Tasks\n\nQuick things to do.\n\n## Today\n\n## Recurring Daily\n\n## Recurring Weekly\n\n## Later\n"
)
DEFAULT_CONFIG = (
    "# Config\n\n## About Me\n\n## Mantra\n\n"
    '**"Starting is success, completion is optional."**\n\n'
    "## Energy Patterns\n\n- Morning: \n- Afternoon: \n- Evening: \n\n"
    "## Preferences\n\n## Current Focus Areas\n"
)
DEFAULT_DIRECTORIES = ("ideas", "daily")
DEFAULT_FILES = {"tasks.md": DEFAULT_TASKS, "config.md": DEFAULT_CONFIG}


class VaultService:
    """Manual vault access for the UI; every path goes through the sandbox."""

    def __init__(self, vault_path: str | Path) -> None:
        self.root = normalize_root(vault_path)

    def initialize(self) -> list[str]:
        """Create the default layout, leaving existing files untouched."""
        created: list[str] = []
        self.root.mkdir(parents=True, exist_ok=True)
        for directory in DEFAULT_DIRECTORIES:
            (self.root / directory).mkdir(exist_ok=True)
        for name, content in DEFAULT_FILES.items():
            target = self.root / name
            if target.exists():
                continue
            atomic_write_text(target, content)
            created.append(name)
        logger.info("vault_initialized", extra={"path": str(self.root), "details": {"created": created}})
        return created

    def list_entries(self, directory: str = "") -> list[dict[str, Any]]:
        target = resolve_in_vault(self.root, directory)
        if not target.is_dir():
            return []
        entries = []
        for entry in sorted(target.iterdir(), key=lambda item: (not item.is_dir(), item.name.lower())):
            if entry.name.startswith("."):
                continue
            entries.append({
                "name": entry.name,
                "path": relative_to_vault(self.root, entry),
                "is_directory": entry.is_dir(),
            })
        return entries

    def read(self, path: str) -> str:
        target = resolve_in_vault(self.root, path)
        if not target.is_file():
            raise FileNotFoundError(path)
        return read_text(target)

    def write(self, path: str, content: str) -> None:
        target = resolve_in_vault(self.root, path)
        atomic_write_text(target, content)

    def exists(self, path: str) -> bool:
        try:
            return resolve_in_vault(self.root, path).exists()
        except OutOfVaultError:
            return False
