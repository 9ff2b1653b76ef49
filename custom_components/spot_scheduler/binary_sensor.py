"""Binary sensor platform for the Spot Scheduler integration."""

from __future__ import annotations

from homeassistant.components.binary_sensor import BinarySensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity
from homeassistant.util import slugify

from .const import CONF_NAME, DOMAIN
from .coordinator import SpotSchedulerCoordinator, SpotSchedulerData
from .scheduler import PinConfig, Schedule, format_hour_ranges


def device_info(entry: ConfigEntry) -> DeviceInfo:
    """Return the service device all Spot Scheduler entities belong to."""
    return DeviceInfo(
        identifiers={(DOMAIN, entry.entry_id)},
        name=entry.data[CONF_NAME],
        manufacturer="Spot Scheduler",
        model="Spot Price Scheduler",
        entry_type="service",
    )


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up one schedule binary sensor per controlled device."""
    coordinator: SpotSchedulerCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        PinScheduleBinarySensor(coordinator, entry, pin)
        for pin in coordinator.pin_configs
    )


def _schedule_attributes(schedule: Schedule | None, device_id: str) -> dict:
    pin = schedule.pin(device_id) if schedule else None
    if pin is None:
        return {"on_hours": None, "ranges": None, "avg_price_on": None, "avg_price_off": None}
    return {
        "on_hours": [hour.isoformat() for hour in pin.on_hours],
        "ranges": format_hour_ranges(pin.on_hours),
        "avg_price_on": round(schedule.avg_price(device_id, True), 3),
        "avg_price_off": round(schedule.avg_price(device_id, False), 3),
    }


class PinScheduleBinarySensor(
    CoordinatorEntity[SpotSchedulerCoordinator], BinarySensorEntity
):
    """Binary sensor that is on while the device is scheduled on."""

    _attr_has_entity_name = True
    _attr_icon = "mdi:calendar-clock"

    def __init__(
        self,
        coordinator: SpotSchedulerCoordinator,
        entry: ConfigEntry,
        pin: PinConfig,
    ) -> None:
        """Initialize the binary sensor."""
        super().__init__(coordinator)
        self._device_id = pin.device_id
        self._attr_name = pin.name
        self._attr_unique_id = f"{entry.entry_id}_{slugify(pin.device_id)}"
        self._attr_device_info = device_info(entry)

    @property
    def is_on(self) -> bool:
        """Return True if the device is scheduled on for the current hour."""
        if self.coordinator.data is None:
            return False
        return self.coordinator.data.pin_states.get(self._device_id, False)

    @property
    def extra_state_attributes(self) -> dict:
        """Return today's and tomorrow's schedule of the device."""
        if self.coordinator.data is None:
            return {}
        data: SpotSchedulerData = self.coordinator.data
        today = _schedule_attributes(data.today, self._device_id)
        tomorrow = _schedule_attributes(data.tomorrow, self._device_id)
        return {
            "device_id": self._device_id,
            **{f"{key}_today": value for key, value in today.items()},
            **{f"{key}_tomorrow": value for key, value in tomorrow.items()},
        }
