from __future__ import annotations

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from nudge.deps import get_chat_service, get_repo
from nudge.errors import NudgeApiError, optional_text, required_text
from nudge.services.chat_service import stream_as_sse

router = APIRouter(prefix="/v1", tags=["sessions"])


def _session_not_found() -> NudgeApiError:
    return NudgeApiError(
        code="E_NOT_FOUND",
        message="session not found",
        retryable=False,
        status_code=404,
        cause="session_not_found",
    )


@router.post("/sessions")
async def create_session(payload: dict, repo=Depends(get_repo)):
    session = await repo.create_session(optional_text(payload, "title"))
    return {"session": session}


@router.get("/sessions")
async def list_sessions(repo=Depends(get_repo)):
    return {"sessions": await repo.list_sessions()}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, repo=Depends(get_repo)):
    session = await repo.get_session(session_id)
    if session is None:
        raise _session_not_found()
    return {"session": session}


@router.post("/sessions/{session_id}/messages", status_code=202)
async def send_message(session_id: str, payload: dict, chat_service=Depends(get_chat_service)):
    message = await chat_service.send(
        session_id,
        required_text(payload, "content"),
        provider_id=optional_text(payload, "provider"),
        model=optional_text(payload, "model"),
    )
    return {"message": message}


@router.get("/sessions/{session_id}/events")
async def stream_events(session_id: str, repo=Depends(get_repo), chat_service=Depends(get_chat_service)):
    if await repo.get_session(session_id) is None:
        raise _session_not_found()

    async def event_generator():
        async for event in chat_service.bus.subscribe(session_id):
            yield await stream_as_sse(event)

    return EventSourceResponse(event_generator())


@router.post("/chat/cancel")
async def cancel_chat(chat_service=Depends(get_chat_service)):
    return {"cancelled": await chat_service.cancel()}
