"""Shared fixtures for the test suite."""

import sys
from concurrent.futures import Executor, Future
from pathlib import Path

# Add src to path so we can import bartarrivals
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bartarrivals.models import Arrival, Line, Station
from bartarrivals.station_directory import StationDirectory


class ImmediateExecutor(Executor):
    """Runs submitted work synchronously on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Queues submitted work until run_all() is called, to model in-flight fetches."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_next(self, index=0):
        future, fn, args, kwargs = self.pending.pop(index)
        future.set_result(fn(*args, **kwargs))
        return future

    def run_all(self):
        while self.pending:
            self.run_next()


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_station(code, latitude, longitude, name=None):
    return Station(
        code=code,
        api_name=name or code,
        display_name=name or code,
        latitude=latitude,
        longitude=longitude,
    )


def make_directory(*stations):
    lines = [
        Line(abbreviation="RED", display_name="Red", color="#ED1C24"),
        Line(abbreviation="YELLOW", display_name="Yellow", color="#FFE800"),
    ]
    return StationDirectory(stations, lines)


def make_arrival(destination, minutes, line="RED"):
    return Arrival(destination=destination, minutes=minutes, line=line)


def etd_payload(abbr="EMBR", name="Embarcadero", etd=None, include_etd=True):
    station = {"name": name, "abbr": abbr}
    if include_etd:
        station["etd"] = etd if etd is not None else [
            {
                "destination": "Daly City",
                "abbreviation": "DALY",
                "limited": "0",
                "estimate": [
                    {
                        "minutes": "Leaving",
                        "platform": "1",
                        "direction": "South",
                        "length": "10",
                        "color": "GREEN",
                        "hexcolor": "#339933",
                        "bikeflag": "1",
                        "delay": "0",
                    },
                    {
                        "minutes": "14",
                        "platform": "1",
                        "direction": "South",
                        "length": "8",
                        "color": "green",
                        "hexcolor": "#339933",
                        "bikeflag": "1",
                        "delay": "125",
                    },
                ],
            },
            {
                "destination": "Richmond",
                "abbreviation": "RICH",
                "limited": "0",
                "estimate": [
                    {
                        "minutes": "6",
                        "platform": "2",
                        "direction": "North",
                        "length": "9",
                        "color": "RED",
                        "hexcolor": "#ff0000",
                        "bikeflag": "1",
                        "delay": "0",
                    },
                ],
            },
        ]
    return {"root": {"date": "10/18/2026", "time": "08:00:00 AM PDT", "station": [station]}}
