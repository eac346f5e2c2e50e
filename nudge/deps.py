from __future__ import annotations

from nudge.agent.provider_router import ProviderRegistry
from nudge.db.repositories import Repository
from nudge.services.chat_service import ChatService
from nudge.services.credential_store import CredentialStore
from nudge.services.settings_store import SettingsStore

_repo: Repository | None = None
_settings_store: SettingsStore | None = None
_credentials: CredentialStore | None = None
_registry: ProviderRegistry | None = None
_chat_service: ChatService | None = None


def set_dependencies(
    repo: Repository,
    settings_store: SettingsStore,
    credentials: CredentialStore,
    registry: ProviderRegistry,
    chat_service: ChatService,
) -> None:
    global _repo, _settings_store, _credentials, _registry, _chat_service
    _repo = repo
    _settings_store = settings_store
    _credentials = credentials
    _registry = registry
    _chat_service = chat_service


def get_repo() -> Repository:
    if _repo is None:
        raise RuntimeError("Repository not initialized")
    return _repo


def get_settings_store() -> SettingsStore:
    if _settings_store is None:
        raise RuntimeError("SettingsStore not initialized")
    return _settings_store


def get_credentials() -> CredentialStore:
    if _credentials is None:
        raise RuntimeError("CredentialStore not initialized")
    return _credentials


def get_registry() -> ProviderRegistry:
    if _registry is None:
        raise RuntimeError("ProviderRegistry not initialized")
    return _registry


def get_chat_service() -> ChatService:
    if _chat_service is None:
        raise RuntimeError("ChatService not initialized")
    return _chat_service
