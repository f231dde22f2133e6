"""Error classification and bounded retry policy for chunk transmission."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from common.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
)
from common.logging_config import get_logger
from uploader.exceptions import (
    RetryExhaustedError,
    SessionError,
    TransientNetworkError,
    UploadCancelledError,
    ValidationError,
)

logger = get_logger(__name__)

T = TypeVar('T')


class ErrorKind(str, Enum):
    """Failure classes that decide retry eligibility."""
    VALIDATION = "validation"
    SESSION = "session"
    TRANSIENT = "transient"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


def classify(exc: BaseException) -> ErrorKind:
    """
    Classify an exception raised during an upload.

    Args:
        exc: Exception to classify

    Returns:
        ErrorKind for the exception
    """
    if isinstance(exc, (UploadCancelledError, asyncio.CancelledError)):
        return ErrorKind.CANCELLED
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, SessionError):
        return ErrorKind.SESSION
    if isinstance(exc, TransientNetworkError):
        return ErrorKind.TRANSIENT
    return ErrorKind.UNKNOWN


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry policy with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retry)
        backoff_multiplier: Base of the exponential backoff
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound on any single delay, in seconds
    """
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    base_delay: float = DEFAULT_RETRY_BASE_DELAY_SECONDS
    max_delay: float = DEFAULT_RETRY_MAX_DELAY_SECONDS

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number attempt+1 (attempt is zero-based)."""
        return min(self.base_delay * (self.backoff_multiplier ** attempt), self.max_delay)

    def should_retry(self, kind: ErrorKind, attempt: int) -> bool:
        return kind == ErrorKind.TRANSIENT and attempt < self.max_retries


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Run an async operation, retrying only transient failures.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy to apply
        description: Human-readable name used in logs and errors
        sleep: Awaitable sleep function (injectable for tests)
        on_retry: Optional hook called with (attempt, exception) before sleeping

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhaustedError: If transient failures outlast the retry budget
        Exception: Any non-transient failure, unchanged
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            kind = classify(e)
            if not policy.should_retry(kind, attempt):
                if kind == ErrorKind.TRANSIENT:
                    logger.error(
                        f"{description} failed after {attempt + 1} attempt(s): {e}"
                    )
                    raise RetryExhaustedError(
                        f"{description} failed after {attempt + 1} attempts: {e}",
                        attempts=attempt + 1,
                    ) from e
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                f"Transient failure (attempt {attempt + 1}/{policy.max_retries + 1}): "
                f"{description} error={e}, retrying in {delay}s"
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await sleep(delay)
            attempt += 1
