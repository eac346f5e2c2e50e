from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from nudge.deps import get_settings_store
from nudge.errors import optional_text, required_text
from nudge.services.settings_store import VAULT_PATH
from nudge.services.vault_service import VaultService

router = APIRouter(prefix="/v1", tags=["vault"])


async def get_vault(settings_store=Depends(get_settings_store)) -> VaultService:
    return VaultService(await settings_store.vault_path())


@router.get("/vault/files")
async def list_files(directory: str = "", vault: VaultService = Depends(get_vault)):
    return {"entries": await asyncio.to_thread(vault.list_entries, directory)}


@router.get("/vault/file")
async def read_file(path: str, vault: VaultService = Depends(get_vault)):
    return {"path": path, "content": await asyncio.to_thread(vault.read, path)}


@router.put("/vault/file")
async def write_file(payload: dict, vault: VaultService = Depends(get_vault)):
    path = required_text(payload, "path")
    content = payload.get("content")
    if not isinstance(content, str):
        content = ""
    await asyncio.to_thread(vault.write, path, content)
    return {"ok": True, "path": path}


@router.get("/vault/exists")
async def exists(path: str, vault: VaultService = Depends(get_vault)):
    return {"path": path, "exists": await asyncio.to_thread(vault.exists, path)}


@router.post("/vault/initialize")
async def initialize(payload: dict, settings_store=Depends(get_settings_store)):
    vault_path = optional_text(payload, "vault_path") or await settings_store.vault_path()
    vault = VaultService(vault_path)
    created = await asyncio.to_thread(vault.initialize)
    await settings_store.set(VAULT_PATH, str(vault.root))
    return {"vault_path": str(vault.root), "created": created}
