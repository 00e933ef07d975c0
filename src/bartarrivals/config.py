"""Tuning and endpoint configuration."""

import os
from dataclasses import dataclass

BART_ETD_URL = "https://api.bart.gov/api/etd.aspx"

# BART's published public key; set BART_API_KEY to use your own
PUBLIC_API_KEY = "MW9S-E7SL-26DU-VV8V"


@dataclass(frozen=True)
class RefreshSettings:
    """Timing thresholds for one front end. All durations are in seconds."""
    manual_selection_window: float = 600.0
    min_api_interval: float = 15.0  # Hard floor between non-forced calls
    auto_refresh_interval: float = 60.0  # Steady-state polling cadence
    location_check_interval: float = 30.0  # Periodic tick
    location_change_hysteresis: float = 0.0  # Meters; 0 disables
    background_reset_threshold: float = 600.0
    request_timeout: float = 10.0

    def __post_init__(self):
        for name in ("manual_selection_window", "min_api_interval", "auto_refresh_interval",
                     "location_check_interval", "background_reset_threshold", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.location_change_hysteresis < 0:
            raise ValueError("location_change_hysteresis must not be negative")


PHONE_SETTINGS = RefreshSettings()

# The watch only re-resolves after moving more than 100 m
WATCH_SETTINGS = RefreshSettings(location_change_hysteresis=100.0)


def get_api_key() -> str:
    return os.environ.get("BART_API_KEY") or PUBLIC_API_KEY
