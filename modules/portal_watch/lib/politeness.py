from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from .config import DelayWindow

log = logging.getLogger(__name__)


class Politeness:
    """
    Randomized courtesy delays between page fetches and between sources.

    Not a retry/backoff mechanism: it only spaces out requests. `rng` and
    `sleep` are injectable so tests can run without real waiting.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._rng = rng or random.Random()
        self._sleep = sleep

    def delay_ms(self, window: DelayWindow) -> int:
        """Pick a delay uniformly from the inclusive window."""
        lo = max(0, int(window.min_ms))
        hi = max(lo, int(window.max_ms))
        return self._rng.randint(lo, hi)

    def pause(self, window: DelayWindow) -> int:
        """Sleep for a randomized delay within `window`; returns the chosen milliseconds."""
        ms = self.delay_ms(window)
        if ms > 0:
            log.debug("Politeness pause %d ms", ms)
            self._sleep(ms / 1000.0)
        return ms


def no_delay() -> Politeness:
    """A Politeness that never sleeps (dry runs, tests)."""
    return Politeness(sleep=lambda _s: None)
