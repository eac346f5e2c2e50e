from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CORS_ORIGINS = ["http://localhost:1420", "tauri://localhost", "http://tauri.localhost"]


@dataclass(slots=True)
class Settings:
    db_path: Path
    runtime_host: str
    runtime_port: int
    default_vault_path: Path
    secret_key: str
    max_rounds: int
    max_tokens: int
    custom_tls_verify: bool
    dev_mode: bool
    cors_origins: list[str]


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def load_settings() -> Settings:
    db_path = Path(os.getenv("NUDGE_DB_PATH", ".nudge/runtime.db"))
    db_path.parent.mkdir(parents=True, exist_ok=True)
    default_vault_path = Path(
        os.getenv("NUDGE_VAULT_PATH", str(Path.home() / "Nudge"))
    ).expanduser()

    return Settings(
        db_path=db_path,
        runtime_host=os.getenv("NUDGE_HOST", "127.0.0.1"),
        runtime_port=_parse_int(os.getenv("NUDGE_PORT"), 8050),
        default_vault_path=default_vault_path,
        secret_key=os.getenv("NUDGE_SECRET_KEY", "").strip(),
        max_rounds=_parse_int(os.getenv("NUDGE_MAX_ROUNDS"), 25),
        max_tokens=_parse_int(os.getenv("NUDGE_MAX_TOKENS"), 4096),
        custom_tls_verify=_parse_bool(os.getenv("NUDGE_CUSTOM_TLS_VERIFY"), False),
        dev_mode=_parse_bool(os.getenv("NUDGE_DEV"), False),
        cors_origins=_parse_list(os.getenv("NUDGE_CORS_ORIGINS"), DEFAULT_CORS_ORIGINS),
    )
