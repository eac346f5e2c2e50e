from __future__ import annotations

from fastapi import APIRouter, Depends

from nudge.deps import get_chat_service
from nudge.observability.metrics import get_runtime_metrics

router = APIRouter(tags=["ops"])

RUNTIME_VERSION = "0.1.0"


@router.get("/health")
async def health():
    return {"ok": True, "version": RUNTIME_VERSION, "runtime_status": "ok"}


@router.get("/v1/diagnostics/metrics")
async def metrics(chat_service=Depends(get_chat_service)):
    snapshot = get_runtime_metrics().snapshot()
    snapshot["busy"] = chat_service.agent.busy
    return snapshot
