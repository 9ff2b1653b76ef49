"""Sensor platform for the Spot Scheduler integration."""

from __future__ import annotations

from homeassistant.components.sensor import SensorEntity, SensorStateClass
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import EntityCategory
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .binary_sensor import device_info
from .const import DOMAIN
from .coordinator import SpotSchedulerCoordinator


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Spot Scheduler sensors from a config entry."""
    coordinator: SpotSchedulerCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([
        CurrentPriceSensor(coordinator, entry),
        DayAveragePriceSensor(coordinator, entry),
        MonthAveragePriceSensor(coordinator, entry),
    ])


class _PriceSensorBase(CoordinatorEntity[SpotSchedulerCoordinator], SensorEntity):
    """Base class for Spot Scheduler price sensors."""

    _attr_has_entity_name = True
    _attr_suggested_display_precision = 3
    _attr_icon = "mdi:cash"

    def __init__(
        self, coordinator: SpotSchedulerCoordinator, entry: ConfigEntry
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._attr_unique_id = f"{entry.entry_id}_{self._attr_translation_key}"
        self._attr_device_info = device_info(entry)

    @property
    def native_unit_of_measurement(self) -> str:
        """Return the unit of the configured price source."""
        return self.coordinator.price_unit


class CurrentPriceSensor(_PriceSensorBase):
    """Mean spot price of the current hour."""

    _attr_translation_key = "current_price"
    _attr_state_class = SensorStateClass.MEASUREMENT

    @property
    def native_value(self) -> float | None:
        if self.coordinator.data is None:
            return None
        return self.coordinator.data.current_price


class DayAveragePriceSensor(_PriceSensorBase):
    """Average spot price of today, with tomorrow's as an attribute."""

    _attr_translation_key = "day_average_price"

    @property
    def native_value(self) -> float | None:
        """Return today's average price."""
        if self.coordinator.data is None or self.coordinator.data.today is None:
            return None
        return round(self.coordinator.data.today.day_avg_price(), 3)

    @property
    def extra_state_attributes(self) -> dict:
        """Return tomorrow's average price once known."""
        if self.coordinator.data is None:
            return {}
        tomorrow = self.coordinator.data.tomorrow
        return {
            "tomorrow": round(tomorrow.day_avg_price(), 3) if tomorrow else None,
        }


class MonthAveragePriceSensor(_PriceSensorBase):
    """Diagnostic sensor with the average over the stored days of this month."""

    _attr_translation_key = "month_average_price"
    _attr_entity_category = EntityCategory.DIAGNOSTIC

    @property
    def native_value(self) -> float | None:
        if self.coordinator.data is None or self.coordinator.data.month_avg_price is None:
            return None
        return round(self.coordinator.data.month_avg_price, 3)
