"""
Failure taxonomy surfaced to consumers.

Only TerminalFailure and AttemptsExhausted ever reach a consumer; a
TransientFailure raised before retries run out just drives another attempt.
"""
from typing import Optional


class ResourceCacheError(Exception):
    """Base class for errors raised by the resource cache."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class TransientFailure(ResourceCacheError):
    """Retryable failure (timeout, transport error)."""


class TerminalFailure(ResourceCacheError):
    """
    Non-retryable failure (validation, permission).

    Loaders may raise it directly; other errors classified as terminal are
    wrapped and kept in ``cause``.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, key=key)
        self.cause = cause


class AttemptsExhausted(ResourceCacheError):
    """Every allowed attempt failed with a transient error."""

    def __init__(self, key: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"Load for {key} failed after {attempts} attempts: {last_error}",
            key=key,
        )
        self.attempts = attempts
        self.last_error = last_error


class LoaderNotConfigured(ResourceCacheError):
    """A load was requested for a key without any loader to call."""
