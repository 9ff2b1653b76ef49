"""DataUpdateCoordinator for the Spot Scheduler integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import (
    ATTR_ENTITY_ID,
    ATTR_UNIT_OF_MEASUREMENT,
    SERVICE_TURN_OFF,
    SERVICE_TURN_ON,
)
from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.event import async_track_time_change
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed
from homeassistant.util import dt as dt_util

from .const import (
    CONF_NORDPOOL_SENSOR,
    CONF_NORDPOOL_TYPE,
    CONF_NOTIFY_SERVICE,
    CONF_PINS,
    CONF_PRICE_SOURCE,
    CONF_TOMORROW_HOUR,
    DEFAULT_NORDPOOL_PRICE_UNIT,
    DEFAULT_TOMORROW_HOUR,
    DOMAIN,
    ELERING_PRICE_UNIT,
    MIN_PRICES_PER_DAY,
    NORDPOOL_TYPE_HACS,
    PRICE_SOURCE_ELERING,
    PRICE_SOURCE_NORDPOOL,
    UPDATE_INTERVAL_MINUTES,
)
from . import nordpool_adapter
from .notifications import (
    async_send_notification,
    format_error,
    format_schedule,
    format_state_change,
)
from .scheduler import InvalidPinConfig, PinConfig, PriceQuantum, Schedule, ScheduleError
from .spot_price_client import PriceSourceError, SpotPriceClient
from .store import ScheduleStore

_LOGGER = logging.getLogger(__name__)


@dataclass
class SpotSchedulerData:
    """Data returned by the Spot Scheduler coordinator."""

    today: Schedule | None = None
    tomorrow: Schedule | None = None
    pin_states: dict[str, bool] = field(default_factory=dict)
    current_price: float | None = None
    month_avg_price: float | None = None


class SpotSchedulerCoordinator(DataUpdateCoordinator[SpotSchedulerData]):
    """Coordinator that keeps day schedules and drives controlled devices."""

    config_entry: ConfigEntry

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            name=f"{DOMAIN}_{entry.entry_id}",
            config_entry=entry,
            update_interval=timedelta(minutes=UPDATE_INTERVAL_MINUTES),
        )
        self.store = ScheduleStore(hass, entry.entry_id)
        self._price_source = entry.data.get(CONF_PRICE_SOURCE, PRICE_SOURCE_NORDPOOL)
        self._nordpool_entity = entry.data.get(CONF_NORDPOOL_SENSOR)
        self._nordpool_type = entry.data.get(CONF_NORDPOOL_TYPE, NORDPOOL_TYPE_HACS)
        self._price_client: SpotPriceClient | None = None
        self._pin_states: dict[str, bool] | None = None
        self._tomorrow_error_notified: date | None = None
        self._month_avg_key: tuple[int, int] | None = None
        self._month_avg_price: float | None = None
        self._unsub_hourly: CALLBACK_TYPE | None = None

    @property
    def pin_configs(self) -> list[PinConfig]:
        """Return the configured pins.

        Raises:
            InvalidPinConfig: A stored pin record is incomplete.
        """
        return [
            PinConfig.from_dict(pin)
            for pin in self.config_entry.options.get(CONF_PINS, [])
        ]

    @property
    def notify_service(self) -> str | None:
        return self.config_entry.options.get(CONF_NOTIFY_SERVICE) or None

    @property
    def price_unit(self) -> str:
        """Return the unit of the scheduled prices.

        Elering prices are converted to c/kWh. Nord Pool prices keep the
        unit of the configured sensor, usually currency/kWh.
        """
        if self._price_source == PRICE_SOURCE_ELERING:
            return ELERING_PRICE_UNIT
        state = self.hass.states.get(self._nordpool_entity) if self._nordpool_entity else None
        unit = state.attributes.get(ATTR_UNIT_OF_MEASUREMENT) if state is not None else None
        return unit or DEFAULT_NORDPOOL_PRICE_UNIT

    async def _async_setup(self) -> None:
        """Set up the coordinator (called once on first refresh)."""
        # Switch devices right at the start of every hour
        self._unsub_hourly = async_track_time_change(
            self.hass, self._on_hour_change, minute=0, second=1
        )

    @callback
    def _on_hour_change(self, now: datetime) -> None:
        """Handle the start of a new hour."""
        _LOGGER.debug("New hour %s, requesting refresh", now.isoformat())
        self.hass.async_create_task(self.async_request_refresh())

    async def _async_update_data(self) -> SpotSchedulerData:
        """Ensure day schedules exist and drive devices to their scheduled state."""
        now = dt_util.now()
        today = now.date()

        try:
            pins = self.pin_configs
        except InvalidPinConfig as err:
            raise UpdateFailed(f"Invalid pin configuration: {err}") from err

        try:
            today_schedule, created = await self.async_ensure_schedule(today, pins)
        except (PriceSourceError, ScheduleError) as err:
            raise UpdateFailed(f"No schedule for today: {err}") from err
        if created:
            await self._async_notify(*format_schedule(today, today_schedule))

        tomorrow_schedule = await self._async_ensure_tomorrow(now, pins)

        pin_states = {
            pin.device_id: today_schedule.is_on(pin.device_id, now)
            for pin in pins
        }
        await self._async_apply_pin_states(today_schedule, pin_states)

        return SpotSchedulerData(
            today=today_schedule,
            tomorrow=tomorrow_schedule,
            pin_states=pin_states,
            current_price=today_schedule.avg_price_for_hour(now),
            month_avg_price=await self._async_month_average(today, created),
        )

    async def async_ensure_schedule(
        self, day: date, pins: list[PinConfig]
    ) -> tuple[Schedule, bool]:
        """Load the schedule of a day, computing and storing it when missing.

        Returns:
            (schedule, created) where created is True for a new schedule.
        """
        async with self.store.lock:
            schedule = await self.store.async_load(day)
            if schedule is not None:
                extended = schedule.with_pins(pins)
                if extended is not schedule:
                    _LOGGER.info("Scheduling new pins for %s from stored prices", day)
                    await self.store.async_save(day, extended)
                return extended, False

            prices = await self._async_fetch_prices(day)
            schedule = Schedule.compute(pins, prices)
            await self.store.async_save(day, schedule)
            _LOGGER.info(
                "Computed schedule for %s from %d prices (%d pins)",
                day, len(prices), len(schedule.pins),
            )
            return schedule, True

    async def _async_ensure_tomorrow(
        self, now: datetime, pins: list[PinConfig]
    ) -> Schedule | None:
        tomorrow = now.date() + timedelta(days=1)
        tomorrow_hour = int(
            self.config_entry.options.get(CONF_TOMORROW_HOUR, DEFAULT_TOMORROW_HOUR)
        )
        if now.hour < tomorrow_hour:
            async with self.store.lock:
                return await self.store.async_load(tomorrow)

        try:
            schedule, created = await self.async_ensure_schedule(tomorrow, pins)
        except (PriceSourceError, ScheduleError) as err:
            _LOGGER.warning("Could not compute schedule for %s: %s", tomorrow, err)
            if self._tomorrow_error_notified != tomorrow:
                self._tomorrow_error_notified = tomorrow
                await self._async_notify(
                    *format_error("Computing tomorrow's schedule failed", err)
                )
            return None

        if created:
            await self._async_notify(*format_schedule(tomorrow, schedule))
        return schedule

    async def _async_fetch_prices(self, day: date) -> list[PriceQuantum]:
        """Fetch a day of prices from the configured source.

        Raises:
            PriceSourceError: The source failed or the feed is incomplete.
        """
        if self._price_source == PRICE_SOURCE_ELERING:
            if self._price_client is None:
                self._price_client = SpotPriceClient(self.hass)
            prices = await self._price_client.async_get_prices_for_date(day)
        else:
            prices = await nordpool_adapter.async_get_prices_for_date(
                self.hass, self._nordpool_entity, self._nordpool_type, day
            )

        if len(prices) < MIN_PRICES_PER_DAY:
            raise PriceSourceError(
                f"Only {len(prices)} prices available for {day}"
            )
        return prices

    async def _async_apply_pin_states(
        self, schedule: Schedule, pin_states: dict[str, bool]
    ) -> None:
        """Turn devices on/off where the scheduled state changed."""
        first_update = self._pin_states is None
        previous = self._pin_states or {}
        changes: list[tuple[str, str, bool]] = []
        for device_id, state in pin_states.items():
            if previous.get(device_id) == state:
                continue
            pin = schedule.pin(device_id)
            changes.append((pin.name if pin else device_id, device_id, state))
            await self._control_entity(device_id, state)
        self._pin_states = dict(pin_states)

        if changes:
            await self._async_notify(*format_state_change(changes, first_update))

    async def _control_entity(self, device_id: str, state: bool) -> None:
        """Turn a controlled entity on or off."""
        service = SERVICE_TURN_ON if state else SERVICE_TURN_OFF
        _LOGGER.info("Calling homeassistant.%s for %s", service, device_id)
        try:
            await self.hass.services.async_call(
                "homeassistant",
                service,
                {ATTR_ENTITY_ID: device_id},
            )
        except HomeAssistantError:
            _LOGGER.exception("Failed to control entity %s", device_id)

    async def _async_month_average(self, today: date, refresh: bool) -> float | None:
        key = (today.year, today.month)
        if refresh or key != self._month_avg_key:
            self._month_avg_price = await self.store.async_month_average(*key)
            self._month_avg_key = key
        return self._month_avg_price

    async def _async_notify(self, title: str, message: str) -> None:
        await async_send_notification(self.hass, self.notify_service, title, message)

    async def async_set_on_hours(
        self, device_id: str, day: date, hour_indexes: list[int]
    ) -> Schedule:
        """Replace one device's on-hours of a stored day.

        On the current day, hours before the current hour keep their stored
        state.

        Raises:
            ScheduleError: No stored schedule, unknown device or hour index.
        """
        now = dt_util.now()
        async with self.store.lock:
            schedule = await self.store.async_load(day)
            if schedule is None:
                raise ScheduleError(f"Schedule not found for {day}")
            pin = schedule.pin(device_id)
            if pin is None:
                raise ScheduleError(f"No schedule for device {device_id} on {day}")

            hours = schedule.hour_starts()
            wanted = set(hour_indexes)
            if any(index < 0 or index >= len(hours) for index in wanted):
                raise ScheduleError(f"Hour index out of range for {day} ({len(hours)} hours)")

            current_hour = now.replace(minute=0, second=0, microsecond=0)
            on_hours = []
            for index, hour in enumerate(hours):
                if hour < current_hour:
                    keep = pin.is_on(hour)
                else:
                    keep = index in wanted
                if keep:
                    on_hours.append(hour)

            schedule = schedule.with_on_hours(device_id, on_hours)
            await self.store.async_save(day, schedule)
            _LOGGER.info(
                "Manually set %d on-hours for %s on %s", len(on_hours), device_id, day
            )

        await self.async_request_refresh()
        return schedule

    async def async_shutdown(self) -> None:
        """Clean up listeners."""
        if self._unsub_hourly:
            self._unsub_hourly()
            self._unsub_hourly = None
        await super().async_shutdown()
