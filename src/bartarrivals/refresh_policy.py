"""Rate limiting and periodic refresh decisions for API calls."""

from typing import Optional

from .config import RefreshSettings


def may_call(now: float, last_call_at: Optional[float], min_interval: float) -> bool:
    """True if no call was made yet or at least ``min_interval`` has passed."""
    if last_call_at is None:
        return True
    return now - last_call_at >= min_interval


def is_due(now: float, last_call_at: Optional[float], refresh_interval: float) -> bool:
    """True if a periodic refresh is due. Same shape as may_call, longer interval."""
    if last_call_at is None:
        return True
    return now - last_call_at >= refresh_interval


class RefreshPolicy:
    """
    Answers whether a fetch may go out right now.

    ``last_call_at`` is stamped whenever a request is issued and drives the
    short rate-limit floor. The periodic cadence is measured from the last
    accepted response, which the arrivals store records. Forced fetches skip
    both checks but still stamp ``last_call_at``.
    """

    def __init__(self, settings: RefreshSettings):
        self.settings = settings
        self.last_call_at: Optional[float] = None

    def may_call(self, now: float) -> bool:
        return may_call(now, self.last_call_at, self.settings.min_api_interval)

    def is_due(self, now: float, last_success_at: Optional[float]) -> bool:
        return is_due(now, last_success_at, self.settings.auto_refresh_interval)

    def should_fetch(self, now: float, last_success_at: Optional[float], force: bool = False) -> bool:
        if force:
            return True
        return self.may_call(now) and self.is_due(now, last_success_at)

    def record_call(self, now: float) -> None:
        self.last_call_at = now

    def reset(self) -> None:
        self.last_call_at = None
