"""Cancellable grace-period timer polled by the front-end loop."""

import time
from typing import Callable, Optional


class GraceTimer:
    """Emits one tick per interval while active.

    The timer never runs on its own: the front-end waits for input for at
    most timeout() seconds, then asks due() whether a tick elapsed.
    """

    def __init__(self, interval: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self.clock = clock
        self._next: Optional[float] = None

    @property
    def active(self) -> bool:
        return self._next is not None

    def start(self) -> None:
        self._next = self.clock() + self.interval

    def cancel(self) -> None:
        self._next = None

    def timeout(self) -> Optional[float]:
        """Seconds until the next tick, None when inactive."""
        if self._next is None:
            return None
        return max(self._next - self.clock(), 0.0)

    def due(self) -> bool:
        """True once per elapsed interval."""
        if self._next is None or self.clock() < self._next:
            return False
        self._next += self.interval
        return True
