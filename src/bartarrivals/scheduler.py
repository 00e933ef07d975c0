"""Drives station resolution and arrivals fetching for one app session."""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple, Union

from .arrivals_store import ArrivalsStore
from .bart_client import BARTClient
from .config import PHONE_SETTINGS, RefreshSettings
from .errors import FetchError, NetworkError, ParseError, StationMismatchError
from .models import (
    Arrival,
    Delivery,
    LocationAuthorization,
    LocationSample,
    ResolutionResult,
    Station,
    Status,
)
from .persistence import StationMemory
from .refresh_policy import RefreshPolicy
from .state import SessionState
from .station_directory import StationDirectory
from .station_resolver import StationResolver
from .timers import CancellationToken, OneShotTimer, PeriodicTimer

logger = logging.getLogger(__name__)

EMPTY_FEED_MESSAGE = "No upcoming departures"
NETWORK_ERROR_MESSAGE = "Network error"
PARSE_ERROR_MESSAGE = "Error parsing data"
UNEXPECTED_ERROR_MESSAGE = "Error loading arrivals"
LOCATION_DENIED_MESSAGE = "Location access denied"


def _log_failed_update(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Arrivals update failed: {error}", exc_info=error)


class RefreshScheduler:
    """
    Composes the resolver, refresh policy, client and store into one update cycle.

    All state changes happen under a single re-entrant lock. Network calls run
    on ``executor``; when one completes it takes the lock again and is applied
    only if its station is still the resolved one, no reset happened in
    between and no newer request for that station has already completed.
    Failures that escape a completion are logged from the future. Methods
    that may start a fetch return its ``Future`` (resolving to a
    ``Delivery`` or None) or None when no fetch was started.
    """

    def __init__(
        self,
        directory: StationDirectory,
        client: BARTClient,
        settings: RefreshSettings = PHONE_SETTINGS,
        memory: Optional[StationMemory] = None,
        state: Optional[SessionState] = None,
        clock: Callable[[], float] = time.time,
        executor: Optional[Executor] = None,
    ):
        self.directory = directory
        self.client = client
        self.settings = settings
        self.memory = memory
        self.state = state or SessionState()
        self.clock = clock

        self.resolver = StationResolver(directory, settings)
        self.policy = RefreshPolicy(settings)
        self.store = ArrivalsStore()

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="bart-fetch")

        self._lock = threading.RLock()
        self._token: Optional[CancellationToken] = None
        self._periodic: Optional[PeriodicTimer] = None
        self._expiry_timer: Optional[OneShotTimer] = None

        self._running = False
        self._suspended = False
        self._background_since: Optional[float] = None
        self._last_sample: Optional[LocationSample] = None
        self._authorization = LocationAuthorization.NOT_DETERMINED
        self._epoch = 0
        self._in_flight: Counter = Counter()  # (epoch, station code) -> outstanding fetches
        self._fetch_seq = 0
        self._completed_seq: Dict[str, int] = {}  # station code -> seq of the newest completed fetch

    # ------------------------------------------------------------------ lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    def start(self) -> Optional[Future]:
        """
        Start the periodic tick and restore the last known station.

        Returns:
            Future of the forced fetch for a restored station, or None.
        """
        with self._lock:
            if self._running:
                return None
            self._running = True
            self._suspended = False
            self._start_timers()

            station = self._restore_last_station()
            if station is None:
                return None
            logger.info(f"Fast startup - restoring last known station: {station.display_name}")
            self.state.update(station=station)
            return self._request_fetch(station, self.clock(), force=True)

    def stop(self) -> None:
        """Cancel all timers. State and any in-flight fetch are left alone."""
        with self._lock:
            self._running = False
            self._cancel_timers()
        logger.info("Stopped auto refresh")

    def close(self) -> None:
        self.stop()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def enter_background(self) -> None:
        """Suspend ticks and new fetches until the next foreground transition."""
        with self._lock:
            self._background_since = self.clock()
            self._suspended = True
            self._cancel_timers()
        logger.info("Entered background")

    def enter_foreground(self) -> Optional[Future]:
        """
        Resume after a background period.

        Re-resolves from the last known sample and forces a fetch, unless a
        fetch for the resolved station is still in flight. After a
        background stint of ``background_reset_threshold`` or longer the
        resolved station and arrivals are discarded first.
        """
        with self._lock:
            now = self.clock()
            was_backgrounded = self._background_since is not None
            if was_backgrounded and now - self._background_since >= self.settings.background_reset_threshold:
                logger.info("Inactive past reset threshold, starting fresh")
                self._reset_session()
            self._background_since = None
            self._suspended = False
            if self._running:
                self._start_timers()

            sample = self._usable_sample()
            if sample is not None:
                result = self.resolver.on_location_sample(sample, now)
            else:
                result = ResolutionResult(station=self.resolver.current_station)

            station = result.station
            if station is None:
                return None
            if result.changed:
                self._publish_station(station)

            force = result.force_fetch or was_backgrounded
            if force and not result.changed and self._has_in_flight(station):
                logger.debug(f"Fetch for {station.code} already in flight, not repeating")
                return None
            return self._request_fetch(station, now, force=force)

    # ------------------------------------------------------------------ triggers

    def on_location_sample(self, sample: LocationSample) -> Optional[Future]:
        """Handle a fix from the location provider."""
        with self._lock:
            self._last_sample = sample
            if self._suspended or self._authorization is LocationAuthorization.DENIED:
                return None
            now = self.clock()
            result = self.resolver.on_location_sample(sample, now)
            return self._handle_resolution(result, now)

    def select_station(self, station: Union[Station, str]) -> Optional[Future]:
        """Manually pick a station; always fetches immediately."""
        with self._lock:
            if isinstance(station, str):
                station = self.directory.get_station(station)
            now = self.clock()
            self.resolver.select_manually(station, now)
            self._publish_station(station)
            self._arm_expiry_timer(self.settings.manual_selection_window)
            return self._request_fetch(station, now, force=True)

    def refresh(self) -> Optional[Future]:
        """User-requested refresh: skips the periodic interval, honours the rate-limit floor."""
        with self._lock:
            station = self.resolver.current_station
            if station is None:
                return None
            now = self.clock()
            if not self.policy.may_call(now):
                logger.debug("Manual refresh ignored, too soon after last call")
                return None
            return self._request_fetch(station, now, force=True)

    def tick(self) -> Optional[Future]:
        """Periodic tick: re-check the last sample, then refresh if due."""
        with self._lock:
            if self._suspended:
                return None
            now = self.clock()
            self.resolver.expire_manual_if_needed(now)

            sample = self._usable_sample()
            if sample is not None:
                result = self.resolver.on_location_sample(sample, now)
                return self._handle_resolution(result, now)

            station = self.resolver.current_station
            if station is None:
                return None
            return self._request_fetch(station, now, force=False)

    def set_authorization(self, authorization: LocationAuthorization) -> Optional[Future]:
        """Record the location permission state reported by the platform."""
        with self._lock:
            previous = self._authorization
            self._authorization = authorization
            if authorization is LocationAuthorization.DENIED:
                if self.resolver.current_station is None:
                    self.state.update(status=Status.error(LOCATION_DENIED_MESSAGE))
                return None
            if (
                authorization is LocationAuthorization.AUTHORIZED
                and previous is not LocationAuthorization.AUTHORIZED
                and self._last_sample is not None
                and not self._suspended
            ):
                now = self.clock()
                result = self.resolver.on_location_sample(self._last_sample, now)
                return self._handle_resolution(result, now)
            return None

    # ------------------------------------------------------------------ fetching

    def _handle_resolution(self, result: ResolutionResult, now: float) -> Optional[Future]:
        station = result.station
        if station is None:
            return None
        if result.changed:
            self._publish_station(station)
        return self._request_fetch(station, now, force=result.force_fetch)

    def _request_fetch(self, station: Station, now: float, force: bool) -> Optional[Future]:
        if self._suspended:
            return None
        if not force:
            if self._has_in_flight(station):
                return None
            last_success = (
                self.store.last_successful_call_at
                if self.store.cycle.station_code == station.code
                else None
            )
            if not self.policy.should_fetch(now, last_success):
                return None

        self.policy.record_call(now)
        self._fetch_seq += 1
        key = (self._epoch, station.code)
        self._in_flight[key] += 1
        self.state.update(is_loading=True)

        logger.info(f"Fetching arrivals for {station.display_name} (code: {station.code})")
        future = self._executor.submit(self._run_fetch, station, key, self._fetch_seq)
        future.add_done_callback(_log_failed_update)
        return future

    def _run_fetch(self, station: Station, key: Tuple[int, str], seq: int) -> Optional[Delivery]:
        arrivals: Optional[List[Arrival]] = None
        error: Optional[FetchError] = None
        try:
            arrivals = self.client.fetch(station)
        except FetchError as e:
            error = e
        except Exception as e:
            logger.error(f"Unexpected error fetching {station.code}: {e}", exc_info=True)
            error = FetchError(str(e))

        with self._lock:
            self._in_flight[key] -= 1
            if self._in_flight[key] <= 0:
                del self._in_flight[key]
            delivery, changes = self._complete(station, key[0], seq, arrivals, error)
            self.state.update(is_loading=self._is_loading(), **changes)
            return delivery

    def _complete(
        self,
        station: Station,
        epoch: int,
        seq: int,
        arrivals: Optional[List[Arrival]],
        error: Optional[FetchError],
    ) -> Tuple[Optional[Delivery], Dict[str, object]]:
        """Decide what a finished fetch changes; returns the delivery and the state fields to set."""
        current = self.resolver.current_station
        if epoch != self._epoch or current is None or current.code != station.code:
            logger.debug(f"Dropping response for {station.code}; no longer the current station")
            return None, {}
        if seq < self._completed_seq.get(station.code, 0):
            logger.debug(f"Dropping response for {station.code}; a newer request already completed")
            return None, {}
        self._completed_seq[station.code] = seq

        if isinstance(error, StationMismatchError):
            logger.error(f"CRITICAL: Station code mismatch! {error}")
            return None, {}

        if error is not None:
            if isinstance(error, NetworkError):
                message = NETWORK_ERROR_MESSAGE
            elif isinstance(error, ParseError):
                message = PARSE_ERROR_MESSAGE
            else:
                message = UNEXPECTED_ERROR_MESSAGE
            logger.warning(f"Fetch for {station.code} failed: {error}")
            return None, {"status": Status.error(message)}

        delivery = self.store.apply(arrivals, station_code=station.code, now=self.clock())
        status = Status.ready(EMPTY_FEED_MESSAGE) if not delivery.arrivals else Status.ready()
        if delivery.arrivals:
            logger.info(f"API OK for {station.display_name} - {len(delivery.arrivals)} arrivals")
        else:
            logger.info(f"API OK for {station.display_name} - no upcoming departures")
        return delivery, {"arrivals": delivery.arrivals, "status": status}

    def _usable_sample(self) -> Optional[LocationSample]:
        if self._authorization is LocationAuthorization.DENIED:
            return None
        return self._last_sample

    def _has_in_flight(self, station: Station) -> bool:
        return self._in_flight.get((self._epoch, station.code), 0) > 0

    def _is_loading(self) -> bool:
        return any(epoch == self._epoch for epoch, _ in self._in_flight)

    # ------------------------------------------------------------------ helpers

    def _publish_station(self, station: Station) -> None:
        self.state.update(station=station)
        if self.memory is None:
            return
        try:
            self.memory.set_last_station_code(station.code)
        except OSError as e:
            logger.warning(f"Could not save last station {station.code}: {e}")

    def _restore_last_station(self) -> Optional[Station]:
        if self.memory is None:
            return None
        station = self.directory.find_station(self.memory.get_last_station_code())
        if station is None or not self.resolver.restore(station):
            return None
        return station

    def _reset_session(self) -> None:
        self._epoch += 1
        self.resolver.reset()
        self.store.reset()
        self.policy.reset()
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None
        self.state.update(station=None, arrivals=self.store.arrivals, status=Status.loading(), is_loading=False)

    def _start_timers(self) -> None:
        self._cancel_timers()
        token = CancellationToken()
        self._token = token
        self._periodic = PeriodicTimer(
            self.settings.location_check_interval,
            lambda: self._guarded(token, self.tick),
            name="bart-refresh-tick",
        )
        self._periodic.start()

        selection = self.resolver.selection
        if selection is not None and selection.manual_expiry is not None:
            remaining = selection.manual_expiry - self.clock()
            if remaining > 0:
                self._arm_expiry_timer(remaining)

    def _arm_expiry_timer(self, delay: float) -> None:
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None
        token = self._token
        if token is None:
            return
        self._expiry_timer = OneShotTimer(
            delay,
            lambda: self._guarded(token, self._on_manual_expiry),
            name="bart-manual-expiry",
        )
        self._expiry_timer.start()

    def _on_manual_expiry(self) -> None:
        self.resolver.expire_manual_if_needed(self.clock())

    def _cancel_timers(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        if self._periodic is not None:
            self._periodic.cancel()
            self._periodic = None
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None

    def _guarded(self, token: CancellationToken, callback: Callable[[], object]) -> None:
        with self._lock:
            if token.cancelled:
                return
            callback()
