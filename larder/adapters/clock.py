"""Wall-clock adapter implementing the Clock port."""

import time


class SystemClock:
    """Clock reading the system time (seconds since the epoch)."""

    def now(self) -> float:
        return time.time()
