"""Stage error hierarchy.

Custom exceptions for draft generation with provider context.
Used by the coordinator to decide what lands in draft state and by the
API layer to build error envelopes.
"""

from __future__ import annotations

import re


class StageError(Exception):
    """Base exception for stage operations."""

    code = "STAGE_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(StageError):
    """Rejected input: empty prompt, missing draft, invalid model id.

    Raised synchronously, before any provider is contacted.
    """

    code = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """A draft status change outside the allowed edges."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move draft from '{current}' to '{target}'")


class ProviderError(StageError):
    """Provider-side failure during submit or poll.

    Recovered into draft state by the coordinator.
    """

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.status_code:
            parts.append(f"status={self.status_code}")
        return " ".join(parts)


class ModelUnavailableError(ProviderError):
    """The requested model is not served by the provider.

    Non-retryable with the same model. The coordinator switches to the
    default model for subsequent calls.
    """

    code = "MODEL_UNAVAILABLE"

    def __init__(self, message: str, model_id: str | None = None, provider: str | None = None):
        super().__init__(message, provider=provider)
        self.model_id = model_id


class AuthenticationError(ProviderError):
    """401/403 - Invalid or missing API key."""

    code = "PROVIDER_AUTH"


class RateLimitError(ProviderError):
    """429 - Quota or rate limit exceeded."""

    code = "PROVIDER_RATE_LIMIT"


class ProviderTimeoutError(ProviderError):
    """Request exceeded the provider timeout."""

    code = "PROVIDER_TIMEOUT"


class DownloadResolutionError(StageError):
    """Every download tier failed and there is no url to fall back to.

    Terminal. Never retried automatically.
    """

    code = "DOWNLOAD_UNRESOLVED"


class AbortedError(StageError):
    """The user cancelled the operation. Carries no error message for display."""

    code = "ABORTED"

    def __init__(self, message: str = "operation aborted"):
        super().__init__(message)


_MODEL_UNAVAILABLE_PATTERN = re.compile(
    r"model.*(unavailable|not available|not found|not supported|does not exist)"
    r"|(unknown|unsupported|invalid) model"
    r"|model_not_(found|available)",
    re.IGNORECASE,
)


def is_model_unavailable(error: Exception | str | None) -> bool:
    """Check whether an error (or provider error text) means the model is unavailable."""
    if error is None:
        return False
    if isinstance(error, ModelUnavailableError):
        return True
    return bool(_MODEL_UNAVAILABLE_PATTERN.search(str(error)))
