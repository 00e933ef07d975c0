"""Static BART station and line reference data."""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .models import Line, Station

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_STATIONS_PATH = DATA_DIR / "stations.json"
DEFAULT_LINES_PATH = DATA_DIR / "lines.json"

FALLBACK_LINE_COLOR = "#8E8E93"  # Grey, for tokens missing from lines.json


class StationDirectory:
    """Loaded-once lookup of stations (by code) and lines (by color token).

    Station order is the order of the source file and is used as the
    tie-break when two stations are equally close to a location.
    """

    def __init__(self, stations: Iterable[Station], lines: Iterable[Line] = ()):
        self._stations: List[Station] = []
        self._by_code: Dict[str, Station] = {}
        for station in stations:
            if station.code in self._by_code:
                raise ValueError(f"Duplicate station code {station.code}")
            self._stations.append(station)
            self._by_code[station.code] = station

        self._lines: Dict[str, Line] = {}
        for line in lines:
            self._lines[line.abbreviation.upper()] = line

    @classmethod
    def from_files(
        cls,
        stations_path: Union[str, Path] = DEFAULT_STATIONS_PATH,
        lines_path: Union[str, Path] = DEFAULT_LINES_PATH,
    ) -> "StationDirectory":
        """Load stations.json and lines.json from disk."""
        with open(stations_path, "r", encoding="utf-8") as f:
            stations = cls._parse_stations(json.load(f))
        with open(lines_path, "r", encoding="utf-8") as f:
            lines = cls._parse_lines(json.load(f))
        logger.info(f"Loaded {len(stations)} stations and {len(lines)} lines")
        return cls(stations, lines)

    @staticmethod
    def _parse_stations(document: dict) -> List[Station]:
        stations = []
        for row in document["stations"]:
            stations.append(
                Station(
                    code=row["code"],
                    api_name=row.get("apiName", row["displayName"]),
                    display_name=row["displayName"],
                    latitude=float(row["latitude"]),
                    longitude=float(row["longitude"]),
                )
            )
        return stations

    @staticmethod
    def _parse_lines(document: dict) -> List[Line]:
        lines = []
        for row in document["lines"]:
            lines.append(
                Line(
                    abbreviation=row["abbreviation"],
                    display_name=row.get("displayName") or row["abbreviation"],
                    color=row["lineColor"],
                    description=row.get("description", ""),
                )
            )
        return lines

    @property
    def stations(self) -> List[Station]:
        return list(self._stations)

    def __len__(self) -> int:
        return len(self._stations)

    def __iter__(self):
        return iter(self._stations)

    def __contains__(self, code: str) -> bool:
        return code in self._by_code

    def get_station(self, code: str) -> Station:
        """Get station by code."""
        if code not in self._by_code:
            raise ValueError(f"Station {code} not found")
        return self._by_code[code]

    def find_station(self, code: Optional[str]) -> Optional[Station]:
        if code is None:
            return None
        return self._by_code.get(code)

    def find_by_name(self, name: str) -> List[Station]:
        """Find stations by display or API name (partial, case-insensitive)."""
        name_lower = name.lower()
        return [
            s for s in self._stations
            if name_lower in s.display_name.lower() or name_lower in s.api_name.lower()
        ]

    def sorted_by_name(self) -> List[Station]:
        """Stations in alphabetical order, as shown in the station picker."""
        return sorted(self._stations, key=lambda s: s.display_name.lower())

    def find_line(self, token: str) -> Optional[Line]:
        return self._lines.get(token.upper())

    def line_display_name(self, token: str) -> str:
        line = self.find_line(token)
        return line.display_name if line else token

    def line_color(self, token: str) -> str:
        line = self.find_line(token)
        return line.color if line else FALLBACK_LINE_COLOR


_default_directory: Optional[StationDirectory] = None


def load_default_directory() -> StationDirectory:
    """Load the bundled station and line tables (cached after first call)."""
    global _default_directory
    if _default_directory is None:
        _default_directory = StationDirectory.from_files()
    return _default_directory
