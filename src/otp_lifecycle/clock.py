"""Wall-clock source used for every lifecycle window comparison."""

from datetime import UTC, datetime


class Clock:
    """Returns the current time as a timezone-aware UTC datetime.

    The lifecycle core never calls ``datetime.now`` directly; tests swap in
    a clock they can move forward.
    """

    def now(self) -> datetime:
        return datetime.now(UTC)
