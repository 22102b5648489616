"""
Bounded retry with exponential backoff around a single loader call.

Attempt n+1 waits ``base_delay * 2**(n-1)`` seconds after attempt n fails,
capped at ``max_delay``. Only failures classified as transient are retried;
consumers only ever see the final outcome.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .core import FailureKind
from .errors import AttemptsExhausted, TerminalFailure, TransientFailure

logger = logging.getLogger("cache.retry")

Loader = Callable[[str], Any]
Classifier = Callable[[BaseException], FailureKind]


def default_classifier(error: BaseException) -> FailureKind:
    """Treat every failure as transient unless it is an explicit TerminalFailure."""
    if isinstance(error, TerminalFailure):
        return FailureKind.TERMINAL
    return FailureKind.TRANSIENT


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits for one operation."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: Optional[float] = None
    attempt_timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be > 0")

    def delay_before_retry(self, retry_number: int) -> float:
        """Delay before the n-th retry (1-indexed)."""
        delay = self.base_delay * (2 ** (retry_number - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


class RetryController:
    """
    Runs a loader until it succeeds, fails terminally, or runs out of attempts.

    Usage:
        controller = RetryController(RetryPolicy(max_attempts=3, base_delay=0.1))
        value = await controller.run("user:42", load_user)
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        classifier: Optional[Classifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._classifier = classifier or default_classifier
        self._sleep = sleep

    def classify(self, error: BaseException) -> FailureKind:
        """Classify a failed attempt; timeouts and TransientFailure are always retryable."""
        if isinstance(error, TerminalFailure):
            return FailureKind.TERMINAL
        if isinstance(error, (TransientFailure, asyncio.TimeoutError)):
            return FailureKind.TRANSIENT
        return self._classifier(error)

    def _is_transient(self, error: BaseException) -> bool:
        # Cancellation is never a failed attempt; it must reach the caller
        if isinstance(error, asyncio.CancelledError):
            return False
        return self.classify(error) is FailureKind.TRANSIENT

    def _wait_strategy(self):
        if self.policy.max_delay is None:
            return wait_exponential(multiplier=self.policy.base_delay, exp_base=2)
        return wait_exponential(
            multiplier=self.policy.base_delay,
            exp_base=2,
            max=self.policy.max_delay,
        )

    async def _attempt(self, key: str, loader: Loader) -> Any:
        result = loader(key)
        if inspect.isawaitable(result):
            if self.policy.attempt_timeout is not None:
                result = await asyncio.wait_for(result, timeout=self.policy.attempt_timeout)
            else:
                result = await result
        return result

    async def run(
        self,
        key: str,
        loader: Loader,
        on_attempt: Optional[Callable[[int], None]] = None,
    ) -> Any:
        """
        Call loader(key) with retries.

        Args:
            key: Resource key passed to the loader
            loader: Sync or async callable returning the value
            on_attempt: Called with the attempt number before each attempt

        Returns:
            The loader's value

        Raises:
            TerminalFailure: A non-retryable failure occurred
            AttemptsExhausted: Every attempt failed with a transient error
        """

        def before(retry_state: RetryCallState) -> None:
            logger.debug(f"Attempt {retry_state.attempt_number} for {key}")
            if on_attempt is not None:
                on_attempt(retry_state.attempt_number)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self._wait_strategy(),
            retry=retry_if_exception(self._is_transient),
            before=before,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
        )

        result = None
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt(key, loader)
        except RetryError as exc:
            last_attempt = exc.last_attempt
            last_error = last_attempt.exception()
            logger.warning(
                f"Giving up on {key} after {last_attempt.attempt_number} attempts: {last_error}"
            )
            raise AttemptsExhausted(key, last_attempt.attempt_number, last_error) from last_error
        except TerminalFailure as exc:
            if exc.key is None:
                exc.key = key
            logger.warning(f"Terminal failure for {key}: {exc}")
            raise
        except Exception as exc:
            logger.warning(f"Terminal failure for {key}: {exc}")
            raise TerminalFailure(str(exc), key=key, cause=exc) from exc

        return result
