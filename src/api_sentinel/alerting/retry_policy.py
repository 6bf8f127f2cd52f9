"""Retry policy shared by every alert channel."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Tuple, TypeVar

import httpx

from ..utils.error_handling import ChannelDeliveryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS: Tuple[float, ...] = (1.0, 2.0, 4.0)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with a fixed backoff schedule.

    Attributes:
        max_attempts: Total number of attempts, including the first one
        backoff: Delay before each retry; the last entry is reused when the
            schedule is shorter than the number of retries
        sleep: Awaitable used to wait between attempts (replaced in tests)
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff: Tuple[float, ...] = DEFAULT_BACKOFF_SECONDS
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if not self.backoff:
            raise ValueError("backoff schedule must not be empty")

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "RetryPolicy":
        retry = config.get("retry", {})
        return cls(
            max_attempts=int(retry.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            backoff=tuple(float(s) for s in retry.get("backoff_seconds", DEFAULT_BACKOFF_SECONDS)),
            **kwargs
        )

    @staticmethod
    def is_retriable(error: BaseException) -> bool:
        """Transient delivery failures and transport errors are retriable."""
        if isinstance(error, ChannelDeliveryError):
            return error.retriable
        return isinstance(error, httpx.TransportError)

    def delay_for(self, retry_index: int) -> float:
        return self.backoff[min(retry_index, len(self.backoff) - 1)]

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """Run ``operation`` until it succeeds or a non-retriable error occurs.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Label used in log messages

        Returns:
            The result of the first successful attempt

        Raises:
            The last error when attempts are exhausted, or the first
            non-retriable error immediately
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not self.is_retriable(e):
                    logger.debug(f"{description} failed with non-retriable error: {e}")
                    raise
                if attempt == self.max_attempts:
                    logger.warning(f"{description} failed after {attempt} attempts: {e}")
                    raise
                delay = self.delay_for(attempt - 1)
                logger.info(f"{description} attempt {attempt}/{self.max_attempts} failed ({e}), "
                            f"retrying in {delay}s")
                await self.sleep(delay)
        raise AssertionError("unreachable")
