"""Provider failure taxonomy and vendor exception classification."""
from __future__ import annotations

import anthropic
import httpx
import openai


class ProviderError(RuntimeError):
    kind = "unknown"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    kind = "auth"


class ProviderNotConfiguredError(ProviderAuthError):
    pass


class ProviderTransportError(ProviderError):
    kind = "offline"


class ProviderRateLimitError(ProviderTransportError):
    kind = "rate_limit"


class ProviderResponseError(ProviderError):
    kind = "unknown"


class ProviderMismatchError(TypeError):
    """A vendor-native message was handed to an adapter of another family."""


class UnknownProviderError(ValueError):
    pass


class StreamAborted(Exception):
    """The round was cancelled through its handle; not an error to surface."""


_AUTH_ERRORS = (
    anthropic.AuthenticationError,
    anthropic.PermissionDeniedError,
    openai.AuthenticationError,
    openai.PermissionDeniedError,
)
_RATE_LIMIT_ERRORS = (anthropic.RateLimitError, openai.RateLimitError)
_CONNECTION_ERRORS = (anthropic.APIConnectionError, openai.APIConnectionError, httpx.TransportError)
_STATUS_ERRORS = (anthropic.APIStatusError, openai.APIStatusError)


def classify_provider_exception(exc: BaseException) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc

    status_code = getattr(exc, "status_code", None)
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, _AUTH_ERRORS):
        return ProviderAuthError(message, status_code=status_code)
    if isinstance(exc, _RATE_LIMIT_ERRORS):
        return ProviderRateLimitError(message, status_code=status_code)
    if isinstance(exc, _CONNECTION_ERRORS):
        return ProviderTransportError(message)
    if isinstance(exc, _STATUS_ERRORS):
        if status_code in {401, 403}:
            return ProviderAuthError(message, status_code=status_code)
        if status_code == 429:
            return ProviderRateLimitError(message, status_code=status_code)
        return ProviderResponseError(message, status_code=status_code)
    return ProviderResponseError(message)


def user_facing_message(error: ProviderError) -> str:
    if error.kind == "auth":
        return "Hmm, there's an issue with your API key. Check your settings to make sure it's correct."
    if error.kind == "rate_limit":
        return "Nudge is taking a breather. Try again in a moment."
    if error.kind == "offline":
        return "Looks like you're offline. Your vault files are still here, check back when you're connected."
    return f"Something went wrong: {error.message}"
