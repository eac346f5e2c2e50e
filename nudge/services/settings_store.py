from __future__ import annotations

from pathlib import Path
from typing import Any

from nudge.db.repositories import Repository

ACTIVE_PROVIDER = "activeProvider"
VAULT_PATH = "vaultPath"

DEFAULT_PROVIDER = "anthropic"
API_KEY_PREFIX = "apiKey-"


def model_key(provider_id: str) -> str:
    return f"model-{provider_id}"


def base_url_key(provider_id: str) -> str:
    return f"baseUrl-{provider_id}"


def api_key_key(provider_id: str) -> str:
    return f"{API_KEY_PREFIX}{provider_id}"


def is_secret_key(key: str) -> bool:
    return key.startswith(API_KEY_PREFIX)


class SettingsStore:
    def __init__(self, repo: Repository, default_vault_path: Path) -> None:
        self.repo = repo
        self.default_vault_path = default_vault_path

    async def get(self, key: str) -> Any:
        return await self.repo.get_setting(key)

    async def set(self, key: str, value: Any) -> None:
        await self.repo.set_setting(key, value)

    async def active_provider(self) -> str:
        return await self.get(ACTIVE_PROVIDER) or DEFAULT_PROVIDER

    async def model_for(self, provider_id: str) -> str | None:
        return await self.get(model_key(provider_id)) or None

    async def base_url_for(self, provider_id: str) -> str | None:
        return await self.get(base_url_key(provider_id)) or None

    async def vault_path(self) -> str:
        stored = await self.get(VAULT_PATH)
        return str(stored or self.default_vault_path)
