"""Resolves the station to show from location fixes and manual picks."""

import logging
from typing import Optional

from .config import RefreshSettings
from .geo import distance_meters, nearest_station
from .models import (
    LocationSample,
    ResolutionResult,
    ResolvedSelection,
    SelectionSource,
    Station,
)
from .station_directory import StationDirectory

logger = logging.getLogger(__name__)


class StationResolver:
    """
    Holds the currently resolved station and decides when it changes.

    A manual pick wins over location for ``manual_selection_window`` seconds.
    Expiry is checked lazily: once the window has passed, the next location
    sample clears the manual state and resolves by distance again.
    """

    def __init__(self, directory: StationDirectory, settings: RefreshSettings):
        self.directory = directory
        self.settings = settings
        self._selection: Optional[ResolvedSelection] = None
        self._anchor: Optional[LocationSample] = None  # Sample behind the last distance search

    @property
    def selection(self) -> Optional[ResolvedSelection]:
        return self._selection

    @property
    def current_station(self) -> Optional[Station]:
        return self._selection.station if self._selection else None

    def is_manual_active(self, now: float) -> bool:
        return self._selection is not None and self._selection.is_manual_active(now)

    def on_location_sample(self, sample: LocationSample, now: float) -> ResolutionResult:
        """
        Resolve a location fix to a station.

        Args:
            sample: Latest fix from the location provider.
            now: Current time in seconds.

        Returns:
            ResolutionResult. ``force_fetch`` is set only when the nearest
            station differs from the one currently resolved.
        """
        if self.is_manual_active(now):
            return ResolutionResult(station=self._selection.station, manual=True)

        self.expire_manual_if_needed(now)

        current = self.current_station
        if current is not None and self._within_hysteresis(sample):
            return ResolutionResult(station=current)

        found = nearest_station(sample.latitude, sample.longitude, self.directory)
        if found is None:
            logger.warning("No stations loaded; cannot resolve location")
            return ResolutionResult(station=current)

        station, distance = found
        logger.debug(f"Closest station is {station.display_name} ({int(distance)}m away)")

        self._anchor = sample
        changed = current is None or current.code != station.code
        self._selection = ResolvedSelection(station=station, source=SelectionSource.LOCATION)

        if changed:
            previous = current.display_name if current else "none"
            logger.info(f"Station changed from {previous} to {station.display_name}")
        return ResolutionResult(station=station, changed=changed, force_fetch=changed)

    def select_manually(self, station: Station, now: float) -> ResolutionResult:
        """Override location with ``station`` until the selection window elapses."""
        current = self.current_station
        expiry = now + self.settings.manual_selection_window
        self._selection = ResolvedSelection(
            station=station,
            source=SelectionSource.MANUAL,
            manual_expiry=expiry,
        )
        logger.info(
            f"Manual selection set to {station.display_name} "
            f"({int(self.settings.manual_selection_window)}s)"
        )
        changed = current is None or current.code != station.code
        return ResolutionResult(station=station, changed=changed, force_fetch=True, manual=True)

    def expire_manual_if_needed(self, now: float) -> bool:
        """
        Drop an elapsed manual selection.

        The station stays resolved (so the next distance search can tell
        whether it changed), but it is now treated as location-derived.

        Returns:
            True if a manual selection was cleared and location resolution
            is due again.
        """
        selection = self._selection
        if selection is None or selection.source is not SelectionSource.MANUAL:
            return False
        if selection.manual_expiry is not None and now < selection.manual_expiry:
            return False

        self._selection = ResolvedSelection(station=selection.station, source=SelectionSource.LOCATION)
        self._anchor = None
        logger.info("Manual selection expired, reverting to location-based")
        return True

    def restore(self, station: Station) -> bool:
        """Adopt a previously persisted station if nothing is resolved yet."""
        if self._selection is not None:
            return False
        self._selection = ResolvedSelection(station=station, source=SelectionSource.LOCATION)
        return True

    def reset(self) -> None:
        self._selection = None
        self._anchor = None

    def _within_hysteresis(self, sample: LocationSample) -> bool:
        threshold = self.settings.location_change_hysteresis
        if threshold <= 0 or self._anchor is None:
            return False
        moved = distance_meters(
            self._anchor.latitude, self._anchor.longitude, sample.latitude, sample.longitude
        )
        if moved <= threshold:
            logger.debug(f"Location moved {int(moved)}m, keeping current station")
            return True
        return False
