from __future__ import annotations

from fastapi import APIRouter, Depends

from nudge.agent.provider_router import SUPPORTED_PROVIDERS
from nudge.agent.providers.errors import UnknownProviderError
from nudge.deps import get_chat_service, get_credentials, get_registry, get_settings_store
from nudge.errors import optional_text, required_text
from nudge.services.settings_store import base_url_key

router = APIRouter(prefix="/v1", tags=["providers"])


def _require_known(provider_id: str) -> None:
    if provider_id not in SUPPORTED_PROVIDERS:
        raise UnknownProviderError(f"Unknown provider: {provider_id}")


@router.post("/providers/{provider_id}/validate")
async def validate_key(provider_id: str, payload: dict, chat_service=Depends(get_chat_service)):
    _require_known(provider_id)
    valid = await chat_service.agent.validate_key(
        provider_id,
        required_text(payload, "api_key"),
        optional_text(payload, "base_url"),
        optional_text(payload, "model"),
    )
    return {"valid": valid}


@router.get("/providers/{provider_id}/models")
async def list_models(provider_id: str, registry=Depends(get_registry)):
    _require_known(provider_id)
    models = registry.get_provider(provider_id).list_default_models()
    return {"models": [{"value": m.value, "label": m.label} for m in models]}


@router.put("/providers/{provider_id}/api-key")
async def set_api_key(
    provider_id: str,
    payload: dict,
    credentials=Depends(get_credentials),
    registry=Depends(get_registry),
):
    _require_known(provider_id)
    await credentials.set_secret(provider_id, required_text(payload, "api_key"))
    await registry.reset_provider(provider_id)
    return {"ok": True, "tier": credentials.tier}


@router.put("/providers/{provider_id}/base-url")
async def set_base_url(
    provider_id: str,
    payload: dict,
    settings_store=Depends(get_settings_store),
    registry=Depends(get_registry),
):
    _require_known(provider_id)
    await settings_store.set(base_url_key(provider_id), optional_text(payload, "base_url") or "")
    await registry.reset_provider(provider_id)
    return {"ok": True}
