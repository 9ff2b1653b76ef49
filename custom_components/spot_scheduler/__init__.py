"""The Spot Scheduler integration."""

from __future__ import annotations

import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.typing import ConfigType

from .const import (
    ATTR_DATE,
    ATTR_HOURS,
    CONF_DEVICE_ID,
    DOMAIN,
    SERVICE_SEND_SCHEDULE,
    SERVICE_SET_ON_HOURS,
)
from .coordinator import SpotSchedulerCoordinator
from .notifications import async_send_notification, format_schedule
from .scheduler import ScheduleError

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.BINARY_SENSOR, Platform.SENSOR]

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

SET_ON_HOURS_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_DEVICE_ID): cv.entity_id,
        vol.Required(ATTR_DATE): cv.date,
        vol.Required(ATTR_HOURS): vol.All(
            cv.ensure_list, [vol.All(vol.Coerce(int), vol.Range(min=0, max=24))]
        ),
    }
)

SEND_SCHEDULE_SCHEMA = vol.Schema({vol.Required(ATTR_DATE): cv.date})


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Register the integration services."""

    def _coordinators() -> list[SpotSchedulerCoordinator]:
        return list(hass.data.get(DOMAIN, {}).values())

    async def async_set_on_hours(call: ServiceCall) -> None:
        device_id = call.data[CONF_DEVICE_ID]
        day = call.data[ATTR_DATE]
        for coordinator in _coordinators():
            if any(pin.device_id == device_id for pin in coordinator.pin_configs):
                try:
                    await coordinator.async_set_on_hours(
                        device_id, day, call.data[ATTR_HOURS]
                    )
                except ScheduleError as err:
                    raise ServiceValidationError(str(err)) from err
                return
        raise ServiceValidationError(f"{device_id} is not scheduled by {DOMAIN}")

    async def async_send_schedule(call: ServiceCall) -> None:
        day = call.data[ATTR_DATE]
        sent = False
        for coordinator in _coordinators():
            async with coordinator.store.lock:
                schedule = await coordinator.store.async_load(day)
            if schedule is None:
                continue
            await async_send_notification(
                hass, coordinator.notify_service, *format_schedule(day, schedule)
            )
            sent = True
        if not sent:
            raise ServiceValidationError(f"Schedule not found for {day}")

    hass.services.async_register(
        DOMAIN, SERVICE_SET_ON_HOURS, async_set_on_hours, schema=SET_ON_HOURS_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SEND_SCHEDULE, async_send_schedule, schema=SEND_SCHEDULE_SCHEMA
    )
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Spot Scheduler from a config entry."""
    coordinator = SpotSchedulerCoordinator(hass, entry)
    await coordinator.async_config_entry_first_refresh()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = coordinator
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        coordinator: SpotSchedulerCoordinator = hass.data[DOMAIN].pop(entry.entry_id)
        await coordinator.async_shutdown()
    return unload_ok


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the entry when its options change."""
    _LOGGER.debug("Options of %s changed, reloading", entry.title)
    await hass.config_entries.async_reload(entry.entry_id)
