"""Per-source monitoring timers."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)

FREQUENCY_SECONDS = {
    "hourly": 60 * 60,
    "daily": 24 * 60 * 60,
    "weekly": 7 * 24 * 60 * 60,
}
DEFAULT_FREQUENCY = "daily"


def interval_for(frequency: Union[str, int, float, None]) -> float:
    """Translate a monitoring frequency into seconds.

    Args:
        frequency: ``hourly``, ``daily``, ``weekly`` or a positive number of seconds

    Raises:
        ValueError: If the frequency is not recognised
    """
    if frequency is None:
        frequency = DEFAULT_FREQUENCY
    if isinstance(frequency, str):
        if frequency in FREQUENCY_SECONDS:
            return float(FREQUENCY_SECONDS[frequency])
        try:
            frequency = float(frequency)
        except ValueError:
            raise ValueError(f"Unknown monitoring frequency: {frequency!r}") from None
    if isinstance(frequency, bool) or frequency <= 0:
        raise ValueError(f"Monitoring interval must be positive, got {frequency!r}")
    return float(frequency)


class MonitorRegistry:
    """Owns one repeating timer per source.

    Scheduling a source that already has a timer cancels the old timer
    and installs the new one before returning, so at most one timer per
    source is ever active. Must be used from within a running event loop.
    """

    def __init__(self):
        self._timers: Dict[str, asyncio.Task] = {}

    def schedule(self, source_id: str, frequency: Union[str, int, float, None],
                 callback: Callable[[], Awaitable[object]]) -> float:
        """Run ``callback`` every ``frequency`` for ``source_id``.

        Returns:
            The interval in seconds
        """
        interval = interval_for(frequency)
        self.cancel(source_id)
        task = asyncio.get_running_loop().create_task(
            self._run(source_id, interval, callback), name=f"monitor:{source_id}"
        )
        self._timers[source_id] = task
        logger.info(f"Scheduled monitoring for source {source_id} every {interval:g}s")
        return interval

    def cancel(self, source_id: str) -> bool:
        task = self._timers.pop(source_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info(f"Stopped monitoring for source {source_id}")
        return True

    def cancel_all(self) -> int:
        source_ids = list(self._timers)
        for source_id in source_ids:
            self.cancel(source_id)
        return len(source_ids)

    def active_sources(self) -> List[str]:
        return sorted(source_id for source_id, task in self._timers.items() if not task.done())

    async def _run(self, source_id: str, interval: float, callback: Callable[[], Awaitable[object]]):
        while True:
            await asyncio.sleep(interval)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Monitoring callback failed for source {source_id}")
