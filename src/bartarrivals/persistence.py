"""Last-known-station storage used for fast startup."""

import json
import logging
from pathlib import Path
from typing import Optional, Protocol, Union

logger = logging.getLogger(__name__)


class StationMemory(Protocol):
    def get_last_station_code(self) -> Optional[str]:
        ...

    def set_last_station_code(self, code: str) -> None:
        ...


class InMemoryStationMemory:
    """Keeps the last station for the lifetime of the process only."""

    def __init__(self, code: Optional[str] = None):
        self._code = code

    def get_last_station_code(self) -> Optional[str]:
        return self._code

    def set_last_station_code(self, code: str) -> None:
        self._code = code


class JsonFileStationMemory:
    """Stores the last station code in a small JSON file."""

    KEY = "lastKnownStation"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def get_last_station_code(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        code = data.get(self.KEY)
        return code if isinstance(code, str) else None

    def set_last_station_code(self, code: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump({self.KEY: code}, f)
