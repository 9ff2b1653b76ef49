"""Shared test fixtures for Spot Scheduler tests."""

from __future__ import annotations

import pytest

from helpers import WINTER_DAY


@pytest.fixture
def winter_day() -> list[float]:
    """Return 24 hourly prices of a winter day."""
    return list(WINTER_DAY)


@pytest.fixture
def local_tz():
    """Run with Europe/Stockholm (CET in February) as the local timezone."""
    from zoneinfo import ZoneInfo

    from homeassistant.util import dt as dt_util

    original = dt_util.get_default_time_zone()
    dt_util.set_default_time_zone(ZoneInfo("Europe/Stockholm"))
    yield
    dt_util.set_default_time_zone(original)
