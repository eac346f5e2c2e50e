from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

from nudge.agent.providers.errors import (
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTransportError,
    UnknownProviderError,
)
from nudge.security.path_guard import OutOfVaultError

DEFAULT_INTERNAL_MESSAGE = "Internal server error"


@dataclass(slots=True)
class NudgeApiError(Exception):
    code: str
    message: str
    retryable: bool
    status_code: int
    details: dict[str, Any] | None = None
    cause: str | None = None


def build_nudge_error(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "trace_id": trace_id,
        "retryable": retryable,
        "ts": datetime.now(tz=timezone.utc).isoformat(),
    }
    if details:
        payload["details"] = details
    if cause:
        payload["cause"] = cause
    return payload


def error_response(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    return {
        "error": build_nudge_error(
            code=code,
            message=message,
            trace_id=trace_id,
            retryable=retryable,
            details=details,
            cause=cause,
        )
    }


def error_from_exception(exc: Exception, trace_id: str) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, NudgeApiError):
        return (
            exc.status_code,
            error_response(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                retryable=exc.retryable,
                details=exc.details,
                cause=exc.cause,
            ),
        )

    if isinstance(exc, RequestValidationError):
        return (
            422,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Request validation failed.",
                trace_id=trace_id,
                retryable=False,
                details={"errors": exc.errors()},
                cause="request_validation_error",
            ),
        )

    if isinstance(exc, HTTPException):
        retryable = exc.status_code >= 500
        code = "E_INTERNAL" if retryable else "E_SCHEMA_INVALID"
        if exc.status_code == 404:
            code = "E_NOT_FOUND"
        return (
            exc.status_code,
            error_response(
                code=code,
                message=str(exc.detail),
                trace_id=trace_id,
                retryable=retryable,
                cause="http_exception",
            ),
        )

    if isinstance(exc, OutOfVaultError):
        return (
            400,
            error_response(
                code="E_PATH_ESCAPE",
                message="Path escapes vault boundary.",
                trace_id=trace_id,
                retryable=False,
                cause="path_guard",
            ),
        )

    if isinstance(exc, FileNotFoundError):
        return (
            404,
            error_response(
                code="E_NOT_FOUND",
                message="File not found.",
                trace_id=trace_id,
                retryable=False,
                cause="file_not_found",
            ),
        )

    if isinstance(exc, UnknownProviderError):
        return (
            400,
            error_response(
                code="E_PROVIDER_UNKNOWN",
                message=str(exc),
                trace_id=trace_id,
                retryable=False,
                cause="unknown_provider",
            ),
        )

    if isinstance(exc, ProviderAuthError):
        return (
            401,
            error_response(
                code="E_PROVIDER_AUTH",
                message="Provider credentials are not configured or were rejected.",
                trace_id=trace_id,
                retryable=False,
                cause="provider_auth",
            ),
        )

    if isinstance(exc, ProviderRateLimitError):
        return (
            429,
            error_response(
                code="E_PROVIDER_RATE_LIMIT",
                message="Provider rate limited request.",
                trace_id=trace_id,
                retryable=True,
                cause="provider_rate_limit",
            ),
        )

    if isinstance(exc, ProviderTransportError):
        return (
            503,
            error_response(
                code="E_NETWORK",
                message="Provider could not be reached.",
                trace_id=trace_id,
                retryable=True,
                cause="provider_transport",
            ),
        )

    if isinstance(exc, asyncio.TimeoutError):
        return (
            504,
            error_response(
                code="E_TIMEOUT",
                message="Operation timed out.",
                trace_id=trace_id,
                retryable=True,
                cause="timeout",
            ),
        )

    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return (
            400,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Invalid request or payload shape.",
                trace_id=trace_id,
                retryable=False,
                cause=exc.__class__.__name__,
            ),
        )

    return (
        500,
        error_response(
            code="E_INTERNAL",
            message=DEFAULT_INTERNAL_MESSAGE,
            trace_id=trace_id,
            retryable=False,
            cause=exc.__class__.__name__,
        ),
    )


def required_text(payload: dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise NudgeApiError(
            code="E_SCHEMA_INVALID",
            message=f"{field} is required",
            retryable=False,
            status_code=400,
            cause=f"{field}_missing",
        )
    return value.strip()


def optional_text(payload: dict[str, Any], field: str) -> str | None:
    value = payload.get(field)
    if value is None:
        return None
    return str(value).strip() or None
