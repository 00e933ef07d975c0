"""Observable session state consumed by a display layer."""

import threading
from typing import Callable, List, Optional

from .models import Arrival, Station, Status

Subscriber = Callable[["SessionState"], None]

_UNSET = object()


class SessionState:
    """
    The fields a display renders: station, arrivals and status, plus a
    separate ``is_loading`` flag for a request indicator.

    ``station`` is None while resolving. ``status`` only changes when a
    fetch completes (or the session resets), so a poll that brings nothing
    new never flips it. Subscribers are called with this object after every
    update that changed at least one field.
    """

    def __init__(self):
        self.station: Optional[Station] = None
        self.arrivals: List[Arrival] = []
        self.status: Status = Status.loading()
        self.is_loading = False
        self._subscribers: List[Subscriber] = []
        self._subscribers_lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def update(self, station=_UNSET, arrivals=_UNSET, status=_UNSET, is_loading=_UNSET) -> bool:
        changed = False
        if station is not _UNSET and station != self.station:
            self.station = station
            changed = True
        # Identity, not equality: the store hands back the same list when nothing changed
        if arrivals is not _UNSET and arrivals is not self.arrivals:
            self.arrivals = arrivals
            changed = True
        if status is not _UNSET and status != self.status:
            self.status = status
            changed = True
        if is_loading is not _UNSET and is_loading != self.is_loading:
            self.is_loading = is_loading
            changed = True

        if changed:
            self._notify()
        return changed

    def _notify(self) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(self)
