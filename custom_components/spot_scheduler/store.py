"""Day-keyed schedule persistence for the Spot Scheduler integration."""

from __future__ import annotations

import asyncio
import calendar
import logging
from datetime import date

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import DOMAIN, STORAGE_VERSION
from .scheduler import Schedule, monthly_average_price

_LOGGER = logging.getLogger(__name__)


class ScheduleStore:
    """Load and save one schedule per calendar day.

    Callers hold ``lock`` around every load-compute-save sequence so that
    the coordinator and manual edits never overwrite each other.
    """

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        self._hass = hass
        self._entry_id = entry_id
        self._stores: dict[date, Store] = {}
        self.lock = asyncio.Lock()

    def _store(self, day: date) -> Store:
        store = self._stores.get(day)
        if store is None:
            store = Store(
                self._hass,
                STORAGE_VERSION,
                f"{DOMAIN}.{self._entry_id}.schedule_{day.isoformat()}",
            )
            self._stores[day] = store
        return store

    async def async_load(self, day: date) -> Schedule | None:
        """Return the stored schedule of a day, or None if there is none."""
        data = await self._store(day).async_load()
        if not data:
            return None
        try:
            return Schedule.from_dict(data)
        except (KeyError, TypeError, ValueError):
            _LOGGER.warning("Ignoring malformed stored schedule for %s", day, exc_info=True)
            return None

    async def async_save(self, day: date, schedule: Schedule) -> None:
        await self._store(day).async_save(schedule.as_dict())
        _LOGGER.debug("Saved schedule for %s (%d pins)", day, len(schedule.pins))

    async def async_month_average(self, year: int, month: int) -> float | None:
        """Return the mean daily average price over the stored days of a month."""
        _, days_in_month = calendar.monthrange(year, month)
        schedules = []
        for day in range(1, days_in_month + 1):
            schedule = await self.async_load(date(year, month, day))
            if schedule is not None:
                schedules.append(schedule)
        return monthly_average_price(schedules)
