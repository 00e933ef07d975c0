"""BART real-time departures (ETD) fetcher and parser."""

import logging
from typing import Any, List, Optional

import requests

from . import __version__
from .config import BART_ETD_URL, get_api_key
from .errors import NetworkError, ParseError, StationMismatchError
from .models import Arrival, Station

logger = logging.getLogger(__name__)

# Values the API puts in "minutes" for a train at the platform
IMMINENT_TOKENS = {"leaving", "arriving"}


def build_session(user_agent: Optional[str] = None) -> requests.Session:
    """Create a requests session with a User-Agent and JSON Accept header."""
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent or f"BARTArrivals/{__version__}",
            "Accept": "application/json",
        }
    )
    return session


class BARTClient:
    """Fetches and parses departures for one station at a time."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        base_url: str = BART_ETD_URL,
        timeout: float = 10.0,
    ):
        self.api_key = api_key or get_api_key()
        self.session = session or build_session()
        self.base_url = base_url
        self.timeout = timeout

    def fetch(self, station: Station) -> List[Arrival]:
        """
        Get real-time departures for a station.

        Args:
            station: Station to query; its code is sent as ``orig``.

        Returns:
            List of Arrival objects in API order. Empty when the station has
            no upcoming departures.

        Raises:
            NetworkError: The request failed or returned an HTTP error.
            ParseError: The body was not a valid ETD document.
            StationMismatchError: The API answered for a different station.
        """
        params = {"cmd": "etd", "orig": station.code, "key": self.api_key, "json": "y"}

        logger.debug(f"Fetching arrivals for {station.display_name} ({station.code})")
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Request for {station.code} failed: {e}")
            raise NetworkError(f"Network error: {e}") from e

        try:
            document = response.json()
        except ValueError as e:
            logger.warning(f"Response for {station.code} is not JSON: {e}")
            raise ParseError("Error parsing data") from e

        arrivals = parse_etd_response(document, station.code)
        logger.debug(f"API OK for {station.code} - {len(arrivals)} arrivals")
        return arrivals

    def close(self) -> None:
        self.session.close()


def parse_etd_response(document: Any, requested_code: str) -> List[Arrival]:
    """
    Flatten an ETD document into one Arrival per destination estimate.

    Numeric fields that do not parse fall back to 0 for that estimate only,
    so a single odd value does not void the whole response.

    Args:
        document: Decoded JSON body.
        requested_code: Station code the request was made for.

    Returns:
        List of Arrival objects in API order.
    """
    try:
        station_list = document["root"]["station"]
    except (KeyError, TypeError) as e:
        raise ParseError("Error parsing data: missing root.station") from e
    if not isinstance(station_list, list):
        raise ParseError("Error parsing data: root.station is not a list")

    if not station_list:
        return []

    station_data = station_list[0]
    if not isinstance(station_data, dict) or "abbr" not in station_data:
        raise ParseError("Error parsing data: station entry has no abbr")

    returned_code = station_data["abbr"]
    if returned_code != requested_code:
        raise StationMismatchError(requested_code, returned_code, station_data.get("name"))

    etds = station_data.get("etd")
    if etds is None:
        return []
    if not isinstance(etds, list):
        raise ParseError("Error parsing data: etd is not a list")

    arrivals: List[Arrival] = []
    for etd in etds:
        if not isinstance(etd, dict):
            raise ParseError("Error parsing data: malformed etd entry")
        destination = str(etd.get("destination", ""))
        estimates = etd.get("estimate") or []
        if not isinstance(estimates, list):
            raise ParseError("Error parsing data: estimate is not a list")

        for estimate in estimates:
            if not isinstance(estimate, dict):
                raise ParseError("Error parsing data: malformed estimate")
            arrivals.append(_parse_estimate(destination, estimate))

    return arrivals


def _parse_estimate(destination: str, estimate: dict) -> Arrival:
    delay_seconds = _int_or_zero(estimate.get("delay"))
    return Arrival(
        destination=destination,
        minutes=_parse_minutes(estimate.get("minutes")),
        line=str(estimate.get("color", "")).upper(),
        direction=str(estimate.get("direction", "")),
        cars=_int_or_zero(estimate.get("length")),
        platform=str(estimate.get("platform", "")),
        delayed=delay_seconds > 0,
        delay_minutes=max(0, delay_seconds) // 60,
    )


def _parse_minutes(value: Any) -> int:
    if isinstance(value, str) and value.strip().lower() in IMMINENT_TOKENS:
        return 0
    return max(0, _int_or_zero(value))


def _int_or_zero(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0
