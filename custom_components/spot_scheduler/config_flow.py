"""Config flow for the Spot Scheduler integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.core import callback
from homeassistant.helpers.selector import (
    EntitySelector,
    EntitySelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    SelectOptionDict,
    SelectSelector,
    SelectSelectorConfig,
    TextSelector,
)
from homeassistant.util import slugify

from .const import (
    CONF_DEVICE_ID,
    CONF_HIGH_LIMIT,
    CONF_LOW_LIMIT,
    CONF_MAX_ON_HOURS,
    CONF_MIN_CONSECUTIVE_ON_HOURS,
    CONF_MIN_ON_HOURS,
    CONF_NAME,
    CONF_NORDPOOL_SENSOR,
    CONF_NORDPOOL_TYPE,
    CONF_NOTIFY_SERVICE,
    CONF_PIN_NAME,
    CONF_PINS,
    CONF_PRICE_SOURCE,
    CONF_TOMORROW_HOUR,
    DEFAULT_MAX_ON_HOURS,
    DEFAULT_MIN_ON_HOURS,
    DEFAULT_TOMORROW_HOUR,
    DOMAIN,
    PRICE_SOURCE_ELERING,
    PRICE_SOURCE_NORDPOOL,
)
from .nordpool_adapter import detect_nordpool_type, find_all_nordpool_sensors

_LOGGER = logging.getLogger(__name__)


def _optional_number(key: str, defaults: dict[str, Any]) -> vol.Optional:
    """Create vol.Optional with suggested value pre-fill (allows clearing)."""
    val = defaults.get(key)
    if val is not None:
        return vol.Optional(key, description={"suggested_value": val})
    return vol.Optional(key)


def _hours_selector(minimum: int = 0) -> NumberSelector:
    return NumberSelector(
        NumberSelectorConfig(
            min=minimum, max=24, step=1, mode=NumberSelectorMode.BOX,
            unit_of_measurement="hours",
        )
    )


def _price_selector() -> NumberSelector:
    return NumberSelector(
        NumberSelectorConfig(min=-100, max=1000, step=0.001, mode=NumberSelectorMode.BOX)
    )


def _pin_schema(defaults: dict[str, Any] | None = None) -> vol.Schema:
    """Build the schema for one controlled device."""
    if defaults is None:
        defaults = {}
    return vol.Schema(
        {
            vol.Required(CONF_PIN_NAME, default=defaults.get(CONF_PIN_NAME, vol.UNDEFINED)): TextSelector(),
            vol.Required(
                CONF_DEVICE_ID, default=defaults.get(CONF_DEVICE_ID, vol.UNDEFINED)
            ): EntitySelector(
                EntitySelectorConfig(domain=["switch", "input_boolean", "light"])
            ),
            vol.Required(
                CONF_MIN_ON_HOURS,
                default=defaults.get(CONF_MIN_ON_HOURS, DEFAULT_MIN_ON_HOURS),
            ): _hours_selector(),
            vol.Required(
                CONF_MAX_ON_HOURS,
                default=defaults.get(CONF_MAX_ON_HOURS, DEFAULT_MAX_ON_HOURS),
            ): _hours_selector(),
            # Optional price limits (empty = disabled)
            _optional_number(CONF_LOW_LIMIT, defaults): _price_selector(),
            _optional_number(CONF_HIGH_LIMIT, defaults): _price_selector(),
            _optional_number(CONF_MIN_CONSECUTIVE_ON_HOURS, defaults): _hours_selector(1),
        }
    )


def _pin_record(user_input: dict[str, Any]) -> dict[str, Any]:
    """Convert form input to a flat pin record with whole hours."""
    min_consecutive = user_input.get(CONF_MIN_CONSECUTIVE_ON_HOURS)
    return {
        CONF_PIN_NAME: user_input[CONF_PIN_NAME],
        CONF_DEVICE_ID: user_input[CONF_DEVICE_ID],
        CONF_LOW_LIMIT: user_input.get(CONF_LOW_LIMIT),
        CONF_HIGH_LIMIT: user_input.get(CONF_HIGH_LIMIT),
        CONF_MIN_ON_HOURS: int(user_input[CONF_MIN_ON_HOURS]),
        CONF_MAX_ON_HOURS: int(user_input[CONF_MAX_ON_HOURS]),
        CONF_MIN_CONSECUTIVE_ON_HOURS: (
            int(min_consecutive) if min_consecutive is not None else None
        ),
    }


class SpotSchedulerConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Spot Scheduler."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the flow."""
        self._name: str | None = None

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> SpotSchedulerOptionsFlow:
        """Get the options flow for this handler."""
        return SpotSchedulerOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step: name and price source."""
        if user_input is not None:
            self._name = user_input[CONF_NAME]
            source = user_input[CONF_PRICE_SOURCE]
            if source == PRICE_SOURCE_NORDPOOL:
                return await self.async_step_nordpool()

            await self.async_set_unique_id(f"{source}_{slugify(self._name)}")
            self._abort_if_unique_id_configured()
            return self._create_entry({CONF_PRICE_SOURCE: PRICE_SOURCE_ELERING})

        schema = vol.Schema(
            {
                vol.Required(CONF_NAME): TextSelector(),
                vol.Required(
                    CONF_PRICE_SOURCE, default=PRICE_SOURCE_NORDPOOL
                ): SelectSelector(
                    SelectSelectorConfig(
                        options=[PRICE_SOURCE_NORDPOOL, PRICE_SOURCE_ELERING],
                        mode="dropdown",
                        translation_key=CONF_PRICE_SOURCE,
                    )
                ),
            }
        )
        return self.async_show_form(step_id="user", data_schema=schema)

    async def async_step_nordpool(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Select the Nord Pool price sensor."""
        errors: dict[str, str] = {}
        all_sensors = find_all_nordpool_sensors(self.hass)

        if user_input is not None:
            nordpool_entity = user_input.get(CONF_NORDPOOL_SENSOR)
            nordpool_type = (
                detect_nordpool_type(self.hass, nordpool_entity)
                if nordpool_entity
                else "unknown"
            )
            if nordpool_type == "unknown":
                errors["base"] = "nordpool_not_found"
            else:
                await self.async_set_unique_id(
                    f"{nordpool_entity}_{slugify(self._name)}"
                )
                self._abort_if_unique_id_configured()
                return self._create_entry(
                    {
                        CONF_PRICE_SOURCE: PRICE_SOURCE_NORDPOOL,
                        CONF_NORDPOOL_SENSOR: nordpool_entity,
                        CONF_NORDPOOL_TYPE: nordpool_type,
                    }
                )

        if not all_sensors:
            errors["base"] = "nordpool_not_found"

        sensor_options = [
            SelectOptionDict(value=entity_id, label=label)
            for entity_id, _, label in all_sensors
        ]

        # Pre-select if only one sensor exists
        sensor_default: str | vol.Undefined = vol.UNDEFINED
        if len(all_sensors) == 1:
            sensor_default = all_sensors[0][0]

        schema = vol.Schema(
            {
                vol.Required(
                    CONF_NORDPOOL_SENSOR, default=sensor_default
                ): SelectSelector(
                    SelectSelectorConfig(options=sensor_options, mode="dropdown")
                ),
            }
        )
        return self.async_show_form(
            step_id="nordpool", data_schema=schema, errors=errors
        )

    def _create_entry(self, data: dict[str, Any]) -> ConfigFlowResult:
        return self.async_create_entry(
            title=self._name,
            data={CONF_NAME: self._name, **data},
            options={
                CONF_PINS: [],
                CONF_TOMORROW_HOUR: DEFAULT_TOMORROW_HOUR,
            },
        )


class SpotSchedulerOptionsFlow(OptionsFlow):
    """Manage controlled devices and notification settings."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Show the options menu."""
        return self.async_show_menu(
            step_id="init", menu_options=["add_pin", "remove_pin", "settings"]
        )

    @property
    def _pins(self) -> list[dict[str, Any]]:
        return list(self.config_entry.options.get(CONF_PINS, []))

    def _save(self, **changes: Any) -> ConfigFlowResult:
        return self.async_create_entry(data={**self.config_entry.options, **changes})

    async def async_step_add_pin(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Add a controlled device with its constraints."""
        errors: dict[str, str] = {}

        if user_input is not None:
            pin = _pin_record(user_input)
            if pin[CONF_MIN_ON_HOURS] > pin[CONF_MAX_ON_HOURS]:
                errors[CONF_MIN_ON_HOURS] = "min_exceeds_max"
            elif any(p[CONF_DEVICE_ID] == pin[CONF_DEVICE_ID] for p in self._pins):
                errors[CONF_DEVICE_ID] = "device_already_configured"
            else:
                _LOGGER.debug("Adding pin %s", pin)
                return self._save(**{CONF_PINS: [*self._pins, pin]})

        return self.async_show_form(
            step_id="add_pin",
            data_schema=_pin_schema(user_input),
            errors=errors,
        )

    async def async_step_remove_pin(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Remove a controlled device."""
        pins = self._pins
        if not pins:
            return self.async_abort(reason="no_pins")

        if user_input is not None:
            device_id = user_input[CONF_DEVICE_ID]
            return self._save(
                **{CONF_PINS: [p for p in pins if p[CONF_DEVICE_ID] != device_id]}
            )

        schema = vol.Schema(
            {
                vol.Required(CONF_DEVICE_ID): SelectSelector(
                    SelectSelectorConfig(
                        options=[
                            SelectOptionDict(
                                value=p[CONF_DEVICE_ID],
                                label=f"{p[CONF_PIN_NAME]} ({p[CONF_DEVICE_ID]})",
                            )
                            for p in pins
                        ],
                        mode="dropdown",
                    )
                ),
            }
        )
        return self.async_show_form(step_id="remove_pin", data_schema=schema)

    async def async_step_settings(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Edit notification and scheduling settings."""
        options = self.config_entry.options
        if user_input is not None:
            return self._save(
                **{
                    CONF_NOTIFY_SERVICE: user_input.get(CONF_NOTIFY_SERVICE),
                    CONF_TOMORROW_HOUR: int(user_input[CONF_TOMORROW_HOUR]),
                }
            )

        schema = vol.Schema(
            {
                vol.Optional(
                    CONF_NOTIFY_SERVICE,
                    description={"suggested_value": options.get(CONF_NOTIFY_SERVICE)},
                ): TextSelector(),
                vol.Required(
                    CONF_TOMORROW_HOUR,
                    default=options.get(CONF_TOMORROW_HOUR, DEFAULT_TOMORROW_HOUR),
                ): NumberSelector(
                    NumberSelectorConfig(min=0, max=23, step=1, mode=NumberSelectorMode.BOX)
                ),
            }
        )
        return self.async_show_form(step_id="settings", data_schema=schema)
