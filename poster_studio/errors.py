"""Closed error taxonomy for the generation pipeline.

Every failure raised by the orchestrator carries an :class:`ErrorKind`, which
fixes its category, whether a local retry makes sense, and the HTTP status
the API layer answers with.  Provider failure text is mapped onto the same
enumeration by :func:`classify_provider_failure`.
"""
from __future__ import annotations

import enum
from typing import Any


class ErrorCategory(str, enum.Enum):
    ADMISSION = "admission"
    VALIDATION = "validation"
    TRANSIENT = "transient"
    FATAL = "fatal"


class ErrorKind(enum.Enum):
    AUTHENTICATION_REQUIRED = ("AUTHENTICATION_REQUIRED", ErrorCategory.ADMISSION, False, 401)
    INSUFFICIENT_CREDITS = ("INSUFFICIENT_CREDITS", ErrorCategory.ADMISSION, False, 402)
    INVALID_ASSET_FORMAT = ("INVALID_ASSET_FORMAT", ErrorCategory.VALIDATION, False, 400)
    ASSET_TOO_LARGE = ("ASSET_TOO_LARGE", ErrorCategory.VALIDATION, False, 400)
    ASSET_FETCH_FAILED = ("ASSET_FETCH_FAILED", ErrorCategory.VALIDATION, False, 400)
    UNRESOLVED_RELATIVE_PATH = ("UNRESOLVED_RELATIVE_PATH", ErrorCategory.VALIDATION, False, 400)
    INVALID_PARAMETERS = ("INVALID_PARAMETERS", ErrorCategory.VALIDATION, False, 400)
    NO_TEMPLATE_AVAILABLE = ("NO_TEMPLATE_AVAILABLE", ErrorCategory.VALIDATION, False, 500)
    RATE_LIMITED = ("RATE_LIMITED", ErrorCategory.TRANSIENT, True, 500)
    PROVIDER_TRANSIENT_FAILURE = ("PROVIDER_TRANSIENT_FAILURE", ErrorCategory.TRANSIENT, True, 500)
    PROVIDER_UNAVAILABLE = ("PROVIDER_UNAVAILABLE", ErrorCategory.TRANSIENT, True, 500)
    STORAGE_UNAVAILABLE = ("STORAGE_UNAVAILABLE", ErrorCategory.TRANSIENT, True, 500)
    INVALID_CREDENTIALS = ("INVALID_CREDENTIALS", ErrorCategory.FATAL, False, 500)
    PROVIDER_BALANCE_EXHAUSTED = ("PROVIDER_BALANCE_EXHAUSTED", ErrorCategory.FATAL, False, 500)
    PROVIDER_TASK_FAILED = ("PROVIDER_TASK_FAILED", ErrorCategory.FATAL, False, 500)
    POLLING_EXHAUSTED = ("POLLING_EXHAUSTED", ErrorCategory.FATAL, False, 500)
    POLLING_TIMED_OUT = ("POLLING_TIMED_OUT", ErrorCategory.FATAL, False, 500)

    def __init__(
        self, code: str, category: ErrorCategory, retryable: bool, http_status: int
    ) -> None:
        self.code = code
        self.category = category
        self.retryable = retryable
        self.http_status = http_status


class GenerationError(RuntimeError):
    """Base exception for every failure surfaced by the generation pipeline."""

    kind: ErrorKind = ErrorKind.PROVIDER_TASK_FAILED

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.detail = detail or {}

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    @property
    def http_status(self) -> int:
        return self.kind.http_status


class AuthenticationRequired(GenerationError):
    kind = ErrorKind.AUTHENTICATION_REQUIRED


class InsufficientCredits(GenerationError):
    kind = ErrorKind.INSUFFICIENT_CREDITS


class InvalidAssetFormat(GenerationError):
    kind = ErrorKind.INVALID_ASSET_FORMAT


class AssetTooLarge(GenerationError):
    kind = ErrorKind.ASSET_TOO_LARGE


class AssetFetchFailed(GenerationError):
    kind = ErrorKind.ASSET_FETCH_FAILED


class UnresolvedRelativePath(GenerationError):
    kind = ErrorKind.UNRESOLVED_RELATIVE_PATH


class InvalidParameters(GenerationError):
    kind = ErrorKind.INVALID_PARAMETERS


class NoTemplateAvailable(GenerationError):
    kind = ErrorKind.NO_TEMPLATE_AVAILABLE


class RateLimited(GenerationError):
    kind = ErrorKind.RATE_LIMITED


class ProviderUnavailable(GenerationError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class StorageUnavailable(GenerationError):
    kind = ErrorKind.STORAGE_UNAVAILABLE


class InvalidCredentials(GenerationError):
    kind = ErrorKind.INVALID_CREDENTIALS


class ProviderBalanceExhausted(GenerationError):
    kind = ErrorKind.PROVIDER_BALANCE_EXHAUSTED


class ProviderTaskFailed(GenerationError):
    kind = ErrorKind.PROVIDER_TASK_FAILED


class PollingExhausted(GenerationError):
    kind = ErrorKind.POLLING_EXHAUSTED


class PollingTimedOut(GenerationError):
    kind = ErrorKind.POLLING_TIMED_OUT


# Provider fail codes mirror HTTP semantics.
_TRANSIENT_FAIL_CODES = {"408", "429", "500", "502", "503", "504"}
RETRYABLE_FAILURE_MARKERS = ("timeout", "rate limit", "busy")


def classify_provider_failure(fail_code: Any, fail_msg: str | None) -> ErrorKind:
    """Map a provider-reported task failure onto an :class:`ErrorKind`.

    A known transient code or a retryable marker in the message makes the
    failure transient; a fatal code never overrides a retryable message.
    """

    code = str(fail_code).strip() if fail_code not in (None, "") else ""
    if code in _TRANSIENT_FAIL_CODES:
        return ErrorKind.PROVIDER_TRANSIENT_FAILURE

    text = (fail_msg or "").lower()
    if any(marker in text for marker in RETRYABLE_FAILURE_MARKERS):
        return ErrorKind.PROVIDER_TRANSIENT_FAILURE
    return ErrorKind.PROVIDER_TASK_FAILED


__all__ = [
    "AssetFetchFailed",
    "AssetTooLarge",
    "AuthenticationRequired",
    "ErrorCategory",
    "ErrorKind",
    "GenerationError",
    "InsufficientCredits",
    "InvalidAssetFormat",
    "InvalidCredentials",
    "InvalidParameters",
    "NoTemplateAvailable",
    "PollingExhausted",
    "PollingTimedOut",
    "ProviderBalanceExhausted",
    "ProviderTaskFailed",
    "ProviderUnavailable",
    "RateLimited",
    "RETRYABLE_FAILURE_MARKERS",
    "StorageUnavailable",
    "UnresolvedRelativePath",
    "classify_provider_failure",
]
