"""
Reconnect Backoff - Exponential delay, unbounded attempts.

The delay doubles after every failed attempt up to a ceiling and
drops back to the floor on every successful connect:

    floor, 2*floor, 4*floor, ... ceiling, ceiling, ...
"""

from dataclasses import dataclass, field

__all__ = ["Backoff", "next_delay"]


def next_delay(current: float, ceiling: float) -> float:
    """Delay to use after ``current``: doubled, capped at ``ceiling``."""
    return min(current * 2, ceiling)


@dataclass
class Backoff:
    """Reconnect delay state.

    Example:
        backoff = Backoff(floor=1.0, ceiling=30.0)

        delay = backoff.advance()   # schedule retry after `delay`
        ...
        backoff.reset()             # connected
    """

    floor: float = 1.0
    ceiling: float = 30.0

    delay: float = field(default=0.0)
    attempts: int = field(default=0)

    def __post_init__(self) -> None:
        if not self.delay:
            self.delay = self.floor

    def advance(self) -> float:
        """Consume the current delay and grow it for the next failure.

        Returns:
            The delay to wait before the upcoming attempt
        """
        current = self.delay
        self.delay = next_delay(current, self.ceiling)
        self.attempts += 1
        return current

    def reset(self) -> None:
        """Return to the floor delay (successful connect or manual retry)."""
        self.delay = self.floor
        self.attempts = 0
