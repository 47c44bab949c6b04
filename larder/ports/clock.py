"""Clock port interface.

Lets freshness decisions be made against an injected notion of time.
"""

from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> float:
        """Return the current time in seconds."""
        ...
