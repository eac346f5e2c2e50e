from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

from nudge.security.path_guard import resolve_in_vault

EMPTY_DIRECTORY = "(empty directory)"
MISSING_DIRECTORY = "[]"
DIRECTORY_MARKER = "[dir] "
FILE_MARKER = "[file] "


def read_text(target: Path) -> str:
    with open(target, "r", encoding="utf-8", newline="") as handle:
        return handle.read()


def atomic_write_text(target: Path, content: str) -> None:
    """Replace ``target`` in one step so readers never observe a partial file."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_file(vault_path: str, path: str) -> str:
    target = resolve_in_vault(vault_path, path)
    if not target.is_file():
        return f"Error: File not found: {path}"
    return read_text(target)


def write_file(vault_path: str, path: str, content: str) -> str:
    target = resolve_in_vault(vault_path, path)
    atomic_write_text(target, content)
    return f"File written: {path}"


def edit_file(vault_path: str, path: str, old_text: str, new_text: str) -> str:
    target = resolve_in_vault(vault_path, path)
    if not target.is_file():
        return f"Error: File not found: {path}"
    content = read_text(target)
    if not old_text or old_text not in content:
        return f"Error: Text not found in {path}"
    atomic_write_text(target, content.replace(old_text, new_text, 1))
    return f"File edited: {path}"


def list_files(vault_path: str, directory: str = "") -> str:
    target = resolve_in_vault(vault_path, directory)
    if not target.exists():
        return MISSING_DIRECTORY
    if not target.is_dir():
        return f"Error: Not a directory: {directory}"

    lines = [
        f"{DIRECTORY_MARKER if entry.is_dir() else FILE_MARKER}{entry.name}"
        for entry in sorted(target.iterdir(), key=lambda item: item.name)
        if not entry.name.startswith(".")
    ]
    return "\n".join(lines) or EMPTY_DIRECTORY


def create_file(vault_path: str, path: str, content: str) -> str:
    target = resolve_in_vault(vault_path, path)
    if target.exists():
        return f"Error: File already exists: {path}"
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(target, "x", encoding="utf-8", newline="") as handle:
            handle.write(content)
    except FileExistsError:
        return f"Error: File already exists: {path}"
    return f"File created: {path}"


def move_file(vault_path: str, source: str, destination: str) -> str:
    source_target = resolve_in_vault(vault_path, source)
    destination_target = resolve_in_vault(vault_path, destination)
    if not source_target.is_file():
        return f"Error: File not found: {source}"
    if destination_target.exists():
        return f"Error: File already exists: {destination}"
    destination_target.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source_target), str(destination_target))
    return f"File moved: {source} -> {destination}"
