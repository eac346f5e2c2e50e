from __future__ import annotations

import os
from pathlib import Path


class OutOfVaultError(ValueError):
    def __init__(self, raw_path: str) -> None:
        super().__init__(f"Path is outside the vault: {raw_path}")
        self.raw_path = raw_path


def normalize_root(vault_root: str | Path) -> Path:
    return Path(os.path.normpath(os.path.abspath(os.fspath(vault_root))))


def resolve_in_vault(vault_root: str | Path, raw_path: str) -> Path:
    """Lexically resolve ``raw_path`` under ``vault_root``.

    Symlinks are not followed; the check is purely on normalized path
    components, so ``..`` segments and absolute paths that leave the root
    are rejected before anything touches the filesystem. An empty path or
    ``"."`` resolves to the root itself.
    """
    root = normalize_root(vault_root)
    candidate = Path(os.path.normpath(os.path.join(root, raw_path or ".")))
    if not candidate.is_relative_to(root):
        raise OutOfVaultError(raw_path)
    return candidate


def relative_to_vault(vault_root: str | Path, target: Path) -> str:
    return target.relative_to(normalize_root(vault_root)).as_posix()
