from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

TRACE_HEADER = "X-Trace-Id"
MAX_TRACE_ID_LENGTH = 128

_trace_id_var: ContextVar[str | None] = ContextVar("nudge_trace_id", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def normalize_trace_id(candidate: str | None) -> str:
    value = (candidate or "").strip()[:MAX_TRACE_ID_LENGTH]
    return value or new_trace_id()


def bind_trace_id(trace_id: str) -> Token:
    return _trace_id_var.set(trace_id)


def reset_trace_id(token: Token) -> None:
    _trace_id_var.reset(token)


def get_current_trace_id() -> str:
    """Trace id bound to the current context; tasks inherit it from their creator."""
    value = _trace_id_var.get()
    if value:
        return value
    return new_trace_id()
