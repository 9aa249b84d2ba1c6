"""
Puzzle Forge - Errors
Exception hierarchy and the single backend error taxonomy.
"""

from typing import Any, Dict, List, Optional
from enum import Enum


class ErrorKind(Enum):
    """Classified backend failure kinds."""
    MODEL_NOT_FOUND = "model_not_found"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    GATEWAY = "gateway"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    OTHER = "other"


# Kinds that should move the fallback chain on to the next model
RETRYABLE_KINDS = frozenset({
    ErrorKind.MODEL_NOT_FOUND,
    ErrorKind.QUOTA_EXCEEDED,
    ErrorKind.RATE_LIMITED,
    ErrorKind.GATEWAY,
    ErrorKind.PROVIDER_UNAVAILABLE,
})

# Kinds that backoff on the same operation can never fix
NEVER_RETRY_KINDS = frozenset({
    ErrorKind.QUOTA_EXCEEDED,
    ErrorKind.INVALID_REQUEST,
    ErrorKind.AUTHENTICATION,
})


class PuzzleForgeError(Exception):
    """Base exception for the pipeline."""
    pass


class ConfigError(PuzzleForgeError):
    """Raised when configuration is missing or malformed."""
    pass


class BackendError(PuzzleForgeError):
    """A classified failure from the generative backend."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        model: Optional[str] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.model = model

    @property
    def retryable(self) -> bool:
        """Whether the fallback chain may try the next model."""
        return self.kind in RETRYABLE_KINDS

    @property
    def backoff_allowed(self) -> bool:
        """Whether repeating the same call after a delay can succeed."""
        return self.kind not in NEVER_RETRY_KINDS

    @property
    def aborts_run(self) -> bool:
        """Whether the whole generation run must stop, not just the current attempt."""
        return not self.retryable and self.kind is not ErrorKind.TIMEOUT

    def __repr__(self) -> str:
        return f"BackendError(kind={self.kind.value}, status={self.status_code}, model={self.model})"


class CandidateValidationError(PuzzleForgeError):
    """Raised when a generated candidate is missing required fields."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []


class GenerationFailure(PuzzleForgeError):
    """Raised when the attempt budget is exhausted without a usable candidate."""

    def __init__(
        self,
        message: str,
        best_score: Optional[int] = None,
        best_report: Optional[Any] = None,
        reasons: Optional[List[str]] = None,
        attempts: int = 0
    ):
        super().__init__(message)
        self.best_score = best_score
        self.best_report = best_report
        self.reasons = reasons or []
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "best_score": self.best_score,
            "best_report": self.best_report.to_dict() if self.best_report is not None else None,
            "reasons": list(self.reasons),
            "attempts": self.attempts
        }


_NOT_FOUND_MARKERS = ("not found", "not supported", "does not exist")
_QUOTA_MARKERS = ("quota", "resource_exhausted", "insufficient_quota")
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "too many requests")
_GATEWAY_MARKERS = ("gateway", "connection refused", "connection reset", "connection error")
_UNAVAILABLE_MARKERS = ("503", "unavailable", "overloaded")
_AUTH_MARKERS = ("unauthorized", "forbidden", "api key", "authentication")
_TIMEOUT_MARKERS = ("timed out", "timeout")


def _kind_from_status(status_code: int) -> Optional[ErrorKind]:
    if status_code == 404:
        return ErrorKind.MODEL_NOT_FOUND
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (502, 504):
        return ErrorKind.GATEWAY
    if status_code == 503:
        return ErrorKind.PROVIDER_UNAVAILABLE
    if status_code in (401, 403):
        return ErrorKind.AUTHENTICATION
    if status_code in (400, 422):
        return ErrorKind.INVALID_REQUEST
    if 500 <= status_code < 600:
        return ErrorKind.OTHER
    return None


def _kind_from_message(message: str) -> ErrorKind:
    text = message.lower()
    # Quota wins over rate limit: a 429 carrying RESOURCE_EXHAUSTED is a quota problem
    if any(marker in text for marker in _QUOTA_MARKERS):
        return ErrorKind.QUOTA_EXCEEDED
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in text for marker in _NOT_FOUND_MARKERS):
        return ErrorKind.MODEL_NOT_FOUND
    if any(marker in text for marker in _GATEWAY_MARKERS):
        return ErrorKind.GATEWAY
    if any(marker in text for marker in _UNAVAILABLE_MARKERS):
        return ErrorKind.PROVIDER_UNAVAILABLE
    if any(marker in text for marker in _AUTH_MARKERS):
        return ErrorKind.AUTHENTICATION
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return ErrorKind.TIMEOUT
    return ErrorKind.OTHER


def classify_error(error: BaseException, model: Optional[str] = None) -> BackendError:
    """
    Classify any exception into a BackendError.

    Already-classified errors pass through unchanged. Otherwise the status
    code (if the exception carries one) decides first and the message text
    second.

    Args:
        error: Exception raised by a backend call.
        model: Model that was being called, for diagnostics.

    Returns:
        BackendError with a kind from ErrorKind.
    """
    if isinstance(error, BackendError):
        if error.model is None:
            error.model = model
        return error

    message = str(error) or error.__class__.__name__
    status_code = getattr(error, "status_code", None)
    if status_code is None:
        response = getattr(error, "response", None)
        status_code = getattr(response, "status_code", None)

    kind = None
    if isinstance(status_code, int):
        kind = _kind_from_status(status_code)
        if kind in (ErrorKind.RATE_LIMITED, ErrorKind.INVALID_REQUEST, ErrorKind.OTHER, None):
            # 429 may really be quota exhaustion, 400 may name an unsupported model
            message_kind = _kind_from_message(message)
            if message_kind is not ErrorKind.OTHER:
                kind = message_kind
    if kind is None:
        kind = _kind_from_message(message)

    return BackendError(kind, message, status_code=status_code, model=model)
