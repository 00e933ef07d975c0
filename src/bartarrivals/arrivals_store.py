"""Holds the delivered arrivals list and suppresses no-op updates."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Arrival, ArrivalGroup, Delivery, FetchCycleState

logger = logging.getLogger(__name__)


def sort_arrivals(arrivals: Iterable[Arrival]) -> List[Arrival]:
    """Sort ascending by minutes. Ties keep API order (sorted() is stable)."""
    return sorted(arrivals, key=lambda a: a.minutes)


def fingerprint(arrivals: Iterable[Arrival]) -> str:
    return "|".join(f"{a.destination}-{a.minutes}-{a.line}" for a in arrivals)


class ArrivalsStore:
    """Last-delivered arrivals for the resolved station plus its fetch bookkeeping."""

    def __init__(self):
        self._arrivals: List[Arrival] = []
        self.cycle = FetchCycleState()

    @property
    def arrivals(self) -> List[Arrival]:
        return self._arrivals

    @property
    def last_successful_call_at(self) -> Optional[float]:
        return self.cycle.last_successful_call_at

    def apply(
        self,
        arrivals: Iterable[Arrival],
        station_code: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Delivery:
        """
        Merge a successful fetch result.

        Args:
            arrivals: Arrivals as parsed, in API order.
            station_code: Station the result belongs to. A different station
                than the one stored always counts as a change.
            now: Time of the successful call, recorded for refresh pacing.

        Returns:
            Delivery with the sorted list and whether it differs from what
            was delivered before. An unchanged delivery carries the list
            object already held by the store.
        """
        sorted_arrivals = sort_arrivals(arrivals)
        new_fingerprint = fingerprint(sorted_arrivals)

        same_station = station_code is None or station_code == self.cycle.station_code
        if now is not None:
            self.cycle.last_successful_call_at = now
        if station_code is not None:
            self.cycle.station_code = station_code

        if same_station and new_fingerprint == self.cycle.fingerprint:
            logger.debug("No changes in arrivals data")
            return Delivery(arrivals=self._arrivals, changed=False)

        self._arrivals = sorted_arrivals
        self.cycle.fingerprint = new_fingerprint
        logger.debug(f"Updated arrivals - {len(sorted_arrivals)} arrivals with changes")
        return Delivery(arrivals=self._arrivals, changed=True)

    def reset(self) -> None:
        self._arrivals = []
        self.cycle = FetchCycleState()


def group_arrivals(arrivals: Iterable[Arrival]) -> List[ArrivalGroup]:
    """
    Group arrivals by (destination, line) for display.

    Groups are ordered by their soonest arrival; groups tied on that keep
    first-seen order. Arrivals inside a group are sorted ascending.
    """
    groups: Dict[Tuple[str, str], ArrivalGroup] = {}
    for arrival in arrivals:
        key = (arrival.destination, arrival.line)
        if key not in groups:
            groups[key] = ArrivalGroup(destination=arrival.destination, line=arrival.line)
        groups[key].arrivals.append(arrival)

    for group in groups.values():
        group.arrivals = sort_arrivals(group.arrivals)

    return sorted(groups.values(), key=lambda g: g.soonest)


def format_times(arrivals: Iterable[Arrival]) -> str:
    """Render a group's times, e.g. "Now, 5, 12 mins"."""
    times = [a.display_minutes for a in sort_arrivals(arrivals)]
    return ", ".join(times) + " mins"
