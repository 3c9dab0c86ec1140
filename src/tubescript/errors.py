"""Typed errors raised by the transcript pipeline.

Acquisition errors are never retried. LLM errors are classified so the
orchestrator can tell recoverable load problems (timeouts, rate limits)
from misconfiguration (auth, unknown model, everything else).
"""

from typing import Any


class TubeScriptError(Exception):
    """Base class for every error raised by tubescript."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in (details or {}).items() if v is not None}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# Acquisition phase


class AcquisitionError(TubeScriptError):
    """Raised while resolving, fetching or parsing captions."""


class InvalidInputError(AcquisitionError):
    """Raised when no video identifier can be recognised in the input."""


class NetworkError(AcquisitionError):
    """Raised on a failed or non-2xx request to the video platform."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message, {"status_code": status_code, "url": url})
        self.status_code = status_code
        self.url = url


class ParseError(AcquisitionError):
    """Raised when the watch page or caption document has an unrecognised structure."""


class NoCaptionsError(AcquisitionError):
    """Raised when the video exposes no caption tracks."""


class NoTranscriptContentError(AcquisitionError):
    """Raised when a caption document yields no text at all."""


# LLM phase


class LLMError(TubeScriptError):
    """Raised when an LLM provider call fails."""

    def __init__(self, message: str, provider: str | None = None, **details: Any) -> None:
        super().__init__(message, details)
        self.provider = provider


class AuthError(LLMError):
    """Raised on 401/403: the API key was rejected."""


class NotFoundError(LLMError):
    """Raised on 404: unknown model or endpoint."""


class RateLimitError(LLMError):
    """Raised on 429. ``retry_after`` holds the raw header hint, if any."""

    def __init__(self, message: str, provider: str | None = None, retry_after: str | None = None) -> None:
        super().__init__(message, provider, retry_after=retry_after)
        self.retry_after = retry_after


class ProviderError(LLMError):
    """Raised on any other non-2xx reply, an empty reply, or a transport failure."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, provider, status_code=status_code)
        self.status_code = status_code
        self.body = body


class LLMTimeoutError(LLMError):
    """Raised when a provider did not answer within the configured timeout."""


class UserCancelledError(LLMError):
    """Raised when the user chose to abort. Callers should stay silent."""

    def __init__(self, message: str = "Transcript creation cancelled by user", provider: str | None = None) -> None:
        super().__init__(message, provider)
