"""Shared test helpers for Spot Scheduler tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# Timezone for testing (CET)
TZ = timezone(timedelta(hours=1), name="CET")


def hour_start(hour: int, day_offset: int = 0, minute: int = 0) -> datetime:
    """Return the start of an hour on the test day (2026-02-06, CET)."""
    base = datetime(2026, 2, 6, tzinfo=TZ) + timedelta(days=day_offset)
    return base.replace(hour=hour, minute=minute)


def make_nordpool_slot(hour: int, price: float, day_offset: int = 0, quarter: int = 0) -> dict:
    """Create a Nordpool-style 15-minute price slot for testing.

    Args:
        hour: Hour of the day (0-23).
        price: Price value.
        day_offset: 0 for today, 1 for tomorrow.
        quarter: Quarter of the hour (0-3, representing :00, :15, :30, :45).

    Returns:
        Dict matching Nordpool raw_today/raw_tomorrow format.
    """
    start = hour_start(hour, day_offset, quarter * 15)
    end = start + timedelta(minutes=15)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "value": price,
    }


def make_nordpool_hour(hour: int, price: float, day_offset: int = 0) -> list[dict]:
    """Create 4 Nordpool-style 15-minute slots for a full hour."""
    return [make_nordpool_slot(hour, price, day_offset, q) for q in range(4)]


def make_pin(device_id: str = "switch.boiler", name: str = "Boiler", **overrides) -> dict:
    """Create a pin record as stored in the config entry options."""
    pin = {
        "name": name,
        "device_id": device_id,
        "min_on_hours": 1,
        "max_on_hours": 1,
        "low_limit": None,
        "high_limit": None,
        "min_consecutive_on_hours": None,
    }
    pin.update(overrides)
    return pin


def make_config_entry(entry_id="test_entry_id"):
    """Create a mock ConfigEntry for testing."""
    entry = MagicMock()
    entry.entry_id = entry_id
    entry.data = {"name": "Test"}
    return entry

# Prices simulate a typical Nordic winter day in c/kWh:
# cheap at night, expensive in morning/evening, moderate midday.
WINTER_DAY = [
    10.0, 8.0, 5.0, 3.0, 4.0, 6.0,  # 00-05: cheap night
    15.0, 35.0, 50.0, 45.0, 30.0, 25.0,  # 06-11: morning ramp
    20.0, 18.0, 15.0, 12.0, 14.0, 40.0,  # 12-17: midday + evening ramp
    55.0, 60.0, 50.0, 35.0, 20.0, 12.0,  # 18-23: evening peak + decline
]
