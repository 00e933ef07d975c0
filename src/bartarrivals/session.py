"""Composition root: one explicitly constructed session per app lifecycle."""

import logging
from typing import List, Optional

from .arrivals_store import format_times, group_arrivals
from .bart_client import BARTClient
from .config import PHONE_SETTINGS, RefreshSettings
from .models import ArrivalGroup
from .persistence import InMemoryStationMemory, StationMemory
from .scheduler import RefreshScheduler
from .state import SessionState
from .station_directory import StationDirectory, load_default_directory

logger = logging.getLogger(__name__)


class ArrivalsSession:
    """
    Owns the directory, client, scheduler and observable state for one front end.

    Pass the session (or its ``state``) to whatever renders arrivals; there is
    no module-level instance.
    """

    def __init__(
        self,
        settings: RefreshSettings = PHONE_SETTINGS,
        directory: Optional[StationDirectory] = None,
        client: Optional[BARTClient] = None,
        memory: Optional[StationMemory] = None,
        **scheduler_kwargs,
    ):
        self.settings = settings
        self.directory = directory or load_default_directory()
        self.client = client or BARTClient(timeout=settings.request_timeout)
        self.memory = memory if memory is not None else InMemoryStationMemory()
        self.scheduler = RefreshScheduler(
            self.directory,
            self.client,
            settings=settings,
            memory=self.memory,
            **scheduler_kwargs,
        )

    @property
    def state(self) -> SessionState:
        return self.scheduler.state

    def start(self):
        return self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def close(self) -> None:
        """Release resources."""
        self.scheduler.close()
        self.client.close()
        logger.info("Closed arrivals session")

    def grouped_arrivals(self) -> List[ArrivalGroup]:
        return group_arrivals(self.state.arrivals)

    def describe_groups(self) -> List[str]:
        """One text row per destination/line group, e.g. "Daly City (Green): Now, 7 mins"."""
        rows = []
        for group in self.grouped_arrivals():
            line_name = self.directory.line_display_name(group.line)
            rows.append(f"{group.destination} ({line_name}): {format_times(group.arrivals)}")
        return rows

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
