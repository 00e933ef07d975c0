"""Data models for BART arrivals tracking."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True, eq=False)
class Station:
    """Represents a BART station. Two stations are equal when their codes match."""
    code: str  # API abbreviation, e.g. "EMBR"
    api_name: str  # Name as returned by the API (for verification)
    display_name: str
    latitude: float
    longitude: float

    def __eq__(self, other):
        if not isinstance(other, Station):
            return NotImplemented
        return self.code == other.code

    def __hash__(self):
        return hash(self.code)


@dataclass(frozen=True)
class Line:
    """Display metadata for a line, keyed by the API color token."""
    abbreviation: str  # e.g. "RED"
    display_name: str
    color: str  # Hex color, e.g. "#ED1C24"
    description: str = ""


@dataclass(frozen=True)
class Arrival:
    """Represents one upcoming departure from the resolved station."""
    destination: str
    minutes: int  # 0 means the train is leaving now
    line: str  # Upper-cased color token, e.g. "YELLOW"
    direction: str = ""
    cars: int = 0
    platform: str = ""
    delayed: bool = False
    delay_minutes: int = 0

    @property
    def display_minutes(self) -> str:
        return "Now" if self.minutes == 0 else str(self.minutes)


@dataclass(frozen=True)
class LocationSample:
    """A single fix from the location provider."""
    latitude: float
    longitude: float
    timestamp: Optional[float] = None
    accuracy: Optional[float] = None  # Meters


class SelectionSource(Enum):
    MANUAL = "manual"
    LOCATION = "location"


@dataclass(frozen=True)
class ResolvedSelection:
    """The resolver's current belief about which station the user is at."""
    station: Station
    source: SelectionSource
    manual_expiry: Optional[float] = None

    def is_manual_active(self, now: float) -> bool:
        return (
            self.source is SelectionSource.MANUAL
            and self.manual_expiry is not None
            and now < self.manual_expiry
        )


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of feeding a location sample (or a manual pick) to the resolver.

    ``force_fetch`` is True when the station changed and arrivals must be
    fetched immediately; otherwise a fetch is allowed only if the refresh
    policy permits it.
    """
    station: Optional[Station]
    changed: bool = False
    force_fetch: bool = False
    manual: bool = False


@dataclass
class FetchCycleState:
    """Per-station bookkeeping used for throttling and change suppression."""
    station_code: Optional[str] = None
    last_successful_call_at: Optional[float] = None
    fingerprint: str = ""


@dataclass(frozen=True)
class Delivery:
    """Result of applying a fetch to the arrivals store."""
    arrivals: List[Arrival]
    changed: bool


class StatusKind(Enum):
    LOADING = "loading"
    ERROR = "error"
    READY = "ready"


@dataclass(frozen=True)
class Status:
    """User-visible status of the arrivals display."""
    kind: StatusKind
    message: Optional[str] = None

    @classmethod
    def loading(cls) -> "Status":
        return cls(StatusKind.LOADING)

    @classmethod
    def ready(cls, message: Optional[str] = None) -> "Status":
        return cls(StatusKind.READY, message)

    @classmethod
    def error(cls, message: str) -> "Status":
        return cls(StatusKind.ERROR, message)


class LocationAuthorization(Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"


@dataclass
class ArrivalGroup:
    """Arrivals sharing a destination and line, as shown on one display row."""
    destination: str
    line: str
    arrivals: List[Arrival] = field(default_factory=list)

    @property
    def soonest(self) -> int:
        return min(a.minutes for a in self.arrivals)
