from __future__ import annotations

from fastapi import APIRouter, Depends

from nudge.deps import get_settings_store
from nudge.errors import NudgeApiError
from nudge.services.settings_store import VAULT_PATH, is_secret_key

router = APIRouter(prefix="/v1", tags=["settings"])


def _reject_secret(key: str) -> None:
    # Provider keys are written through /v1/providers/{id}/api-key and never read back.
    if is_secret_key(key):
        raise NudgeApiError(
            code="E_NOT_FOUND",
            message="setting not found",
            retryable=False,
            status_code=404,
            cause="secret_setting",
        )


@router.get("/settings/{key}")
async def get_setting(key: str, settings_store=Depends(get_settings_store)):
    _reject_secret(key)
    return {"key": key, "value": await settings_store.get(key)}


@router.put("/settings/{key}")
async def set_setting(key: str, payload: dict, settings_store=Depends(get_settings_store)):
    _reject_secret(key)
    if key == VAULT_PATH:
        raise NudgeApiError(
            code="E_SCHEMA_INVALID",
            message="vaultPath is set through /v1/vault/initialize",
            retryable=False,
            status_code=400,
            cause="vault_path_readonly",
        )
    if "value" not in payload:
        raise NudgeApiError(
            code="E_SCHEMA_INVALID",
            message="value is required",
            retryable=False,
            status_code=400,
            cause="value_missing",
        )
    await settings_store.set(key, payload["value"])
    return {"key": key, "value": payload["value"]}
