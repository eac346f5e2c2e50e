"""
credential_store.py: provider API key storage

Two tiers, chosen once at startup by ``select_credential_store``:
``EncryptedCredentialStore`` keeps Fernet ciphertext in ``provider_secrets``
when ``NUDGE_SECRET_KEY`` is configured; otherwise ``PlaintextCredentialStore``
keeps the key in the settings table. Either way ``NUDGE_SECRET_<PROVIDER>``
in the environment takes precedence over the stored value.
"""
from __future__ import annotations

import os
from abc import ABC, abstractmethod

from cryptography.fernet import Fernet, InvalidToken

from nudge.db.repositories import Repository
from nudge.observability.logging import get_runtime_logger
from nudge.services.settings_store import api_key_key

logger = get_runtime_logger()


def env_secret_name(provider_id: str) -> str:
    return f"NUDGE_SECRET_{provider_id.upper().replace('-', '_')}"


def get_fernet(encryption_key: str) -> Fernet:
    if not encryption_key:
        raise ValueError("Secret encryption key is not configured")
    return Fernet(encryption_key.encode("ascii"))


class CredentialStore(ABC):
    tier = ""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    async def get_secret(self, provider_id: str) -> str | None:
        override = os.getenv(env_secret_name(provider_id), "").strip()
        if override:
            return override
        return await self._load(provider_id)

    async def set_secret(self, provider_id: str, value: str) -> None:
        await self._store(provider_id, value.strip())
        logger.info("credential_stored", extra={"provider": provider_id, "details": {"tier": self.tier}})

    @abstractmethod
    async def _load(self, provider_id: str) -> str | None: ...

    @abstractmethod
    async def _store(self, provider_id: str, value: str) -> None: ...


class EncryptedCredentialStore(CredentialStore):
    tier = "encrypted"

    def __init__(self, repo: Repository, encryption_key: str) -> None:
        super().__init__(repo)
        self._fernet = get_fernet(encryption_key)

    async def _load(self, provider_id: str) -> str | None:
        ciphertext = await self.repo.get_provider_secret(provider_id)
        if not ciphertext:
            return None
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.warning("credential_undecryptable", extra={"provider": provider_id})
            return None

    async def _store(self, provider_id: str, value: str) -> None:
        ciphertext = self._fernet.encrypt(value.encode("utf-8")).decode("ascii")
        await self.repo.set_provider_secret(provider_id, ciphertext)


class PlaintextCredentialStore(CredentialStore):
    tier = "plaintext"

    async def _load(self, provider_id: str) -> str | None:
        value = await self.repo.get_setting(api_key_key(provider_id))
        return str(value) if value else None

    async def _store(self, provider_id: str, value: str) -> None:
        await self.repo.set_setting(api_key_key(provider_id), value)


def select_credential_store(repo: Repository, encryption_key: str) -> CredentialStore:
    if encryption_key:
        return EncryptedCredentialStore(repo, encryption_key)
    logger.warning(
        "credential_store_plaintext",
        extra={"details": {"hint": "set NUDGE_SECRET_KEY to encrypt stored API keys"}},
    )
    return PlaintextCredentialStore(repo)
