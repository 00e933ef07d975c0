"""BARTArrivals - Location-aware BART real-time arrivals client."""

__version__ = "0.1.0"

from .models import Arrival, Line, LocationAuthorization, LocationSample, Station, Status, StatusKind
from .errors import FetchError, NetworkError, ParseError, StationMismatchError
from .config import PHONE_SETTINGS, WATCH_SETTINGS, RefreshSettings
from .station_directory import StationDirectory, load_default_directory
from .bart_client import BARTClient
from .station_resolver import StationResolver
from .arrivals_store import ArrivalsStore, format_times, group_arrivals
from .scheduler import RefreshScheduler
from .state import SessionState
from .session import ArrivalsSession

__all__ = [
    "ArrivalsSession",
    "RefreshScheduler",
    "StationResolver",
    "ArrivalsStore",
    "BARTClient",
    "StationDirectory",
    "load_default_directory",
    "SessionState",
    "RefreshSettings",
    "PHONE_SETTINGS",
    "WATCH_SETTINGS",
    "Station",
    "Line",
    "Arrival",
    "LocationSample",
    "LocationAuthorization",
    "Status",
    "StatusKind",
    "FetchError",
    "NetworkError",
    "ParseError",
    "StationMismatchError",
    "group_arrivals",
    "format_times",
]
