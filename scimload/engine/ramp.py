from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

LOGGER = logging.getLogger("scimload.engine.ramp")


class RampUpScheduler:
    """Staggers worker launches evenly across a ramp-up window."""

    def __init__(
        self,
        window_s: float,
        worker_count: int,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._window_s = max(window_s, 0.0)
        self._worker_count = worker_count
        self._sleep = sleep

    @property
    def delay_s(self) -> float:
        if self._worker_count <= 0 or self._window_s <= 0:
            return 0.0
        return self._window_s / self._worker_count

    def offset_for(self, launch_index: int) -> float:
        return launch_index * self.delay_s

    def launch(self, starters: Iterable[Callable[[], None]]) -> int:
        """Call each starter in turn, sleeping ``delay_s`` between calls."""
        delay = self.delay_s
        launched = 0
        for starter in starters:
            if launched and delay > 0:
                self._sleep(delay)
            starter()
            launched += 1
        if delay > 0:
            LOGGER.debug("launched %d worker(s) with %.3fs ramp-up spacing", launched, delay)
        return launched


__all__ = ["RampUpScheduler"]
