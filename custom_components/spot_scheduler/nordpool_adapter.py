"""Adapter for reading day prices from HACS Nordpool or native HA Nordpool."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import entity_registry as er
from homeassistant.util import dt as dt_util

from .const import NORDPOOL_TYPE_HACS, NORDPOOL_TYPE_NATIVE
from .scheduler import PriceQuantum

_LOGGER = logging.getLogger(__name__)


def detect_nordpool_type(hass: HomeAssistant, entity_id: str) -> str:
    """Detect whether an entity is a HACS Nordpool or native HA Nordpool sensor.

    Returns:
        "hacs", "native", or "unknown".
    """
    state = hass.states.get(entity_id)
    if state is not None and state.attributes.get("raw_today") is not None:
        return NORDPOOL_TYPE_HACS

    registry = er.async_get(hass)
    entity_entry = registry.async_get(entity_id)
    if entity_entry is not None and entity_entry.platform == "nordpool":
        return NORDPOOL_TYPE_NATIVE

    return "unknown"


def find_all_nordpool_sensors(hass: HomeAssistant) -> list[tuple[str, str, str]]:
    """List every usable Nordpool price sensor.

    HACS sensors are recognized by their raw_today attribute, native Nord Pool
    sensors by their "current_price" unique ID in the entity registry.

    Returns:
        List of (entity_id, nordpool_type, label) tuples.
    """
    found: list[tuple[str, str, str]] = []
    seen: set[str] = set()

    for state in hass.states.async_all("sensor"):
        if state.attributes.get("raw_today") is not None:
            label = state.attributes.get("friendly_name") or state.entity_id
            found.append((state.entity_id, NORDPOOL_TYPE_HACS, label))
            seen.add(state.entity_id)

    registry = er.async_get(hass)
    for entity_entry in registry.entities.values():
        if (
            entity_entry.platform != "nordpool"
            or entity_entry.domain != "sensor"
            or entity_entry.entity_id in seen
            or not entity_entry.unique_id.endswith("current_price")
        ):
            continue
        state = hass.states.get(entity_entry.entity_id)
        label = (
            state.attributes.get("friendly_name")
            if state is not None
            else None
        ) or entity_entry.entity_id
        found.append((entity_entry.entity_id, NORDPOOL_TYPE_NATIVE, label))
        seen.add(entity_entry.entity_id)

    _LOGGER.debug("Found Nordpool sensors: %s", [entity_id for entity_id, _, _ in found])
    return found


async def async_get_prices_for_date(
    hass: HomeAssistant,
    entity_id: str,
    nordpool_type: str,
    target_date: date,
) -> list[PriceQuantum]:
    """Fetch the prices of one local calendar day, ordered by start time.

    Args:
        hass: Home Assistant instance.
        entity_id: The Nordpool sensor entity ID.
        nordpool_type: "hacs" or "native".
        target_date: Local date to fetch.
    """
    if nordpool_type == NORDPOOL_TYPE_HACS:
        slots = _get_hacs_prices(hass, entity_id)
    elif nordpool_type == NORDPOOL_TYPE_NATIVE:
        slots = await _async_get_native_prices(hass, entity_id, target_date)
    else:
        _LOGGER.error("Unknown nordpool_type: %s", nordpool_type)
        return []

    return slots_to_quanta(slots, target_date)


def slots_to_quanta(slots: list[dict], target_date: date) -> list[PriceQuantum]:
    """Convert [{start, end, value}] slots to the quotes of one local day."""
    prices: list[PriceQuantum] = []
    for slot in slots:
        try:
            start = slot["start"]
            if not isinstance(start, datetime):
                start = datetime.fromisoformat(start)
            validity = dt_util.as_local(start)
            value = slot["value"]
            if value is None:
                continue
            if validity.date() != target_date:
                continue
            prices.append(PriceQuantum(validity=validity, price=float(value)))
        except (KeyError, ValueError, TypeError) as exc:
            _LOGGER.warning("Error converting Nordpool slot %s: %s", slot, exc)
    prices.sort(key=lambda quantum: quantum.validity)
    return prices


def _get_hacs_prices(hass: HomeAssistant, entity_id: str) -> list[dict]:
    """Read prices from HACS Nordpool sensor attributes."""
    state = hass.states.get(entity_id)
    if state is None:
        return []

    raw_today = state.attributes.get("raw_today") or []
    raw_tomorrow = state.attributes.get("raw_tomorrow") or []
    return list(raw_today) + list(raw_tomorrow)


async def _async_get_native_prices(
    hass: HomeAssistant, entity_id: str, target_date: date
) -> list[dict]:
    """Fetch prices from native HA Nordpool via service call."""
    registry = er.async_get(hass)
    entity_entry = registry.async_get(entity_id)
    if entity_entry is None or entity_entry.config_entry_id is None:
        _LOGGER.error(
            "Cannot find config entry for native Nordpool entity %s", entity_id
        )
        return []

    try:
        response = await hass.services.async_call(
            "nordpool",
            "get_prices_for_date",
            {
                "config_entry": entity_entry.config_entry_id,
                "date": str(target_date),
            },
            blocking=True,
            return_response=True,
        )
    except HomeAssistantError:
        _LOGGER.debug(
            "Failed to fetch native Nordpool prices for %s (may not be available yet)",
            target_date,
        )
        return []

    if not response:
        return []

    return _convert_native_response(response)


def _convert_native_response(response: dict | list | None) -> list[dict]:
    """Convert native Nordpool service response to HACS-compatible format.

    Native response is grouped by area: {"SE4": [{"start": ..., "end": ..., "price": ...}, ...]}
    We pick the first area and convert price from Currency/MWh to Currency/kWh.
    """
    price_list: list[dict] = []

    if isinstance(response, dict):
        for prices in response.values():
            if isinstance(prices, list):
                price_list = prices
                break
    elif isinstance(response, list):
        price_list = response

    converted: list[dict] = []
    for entry in price_list:
        try:
            start = entry.get("start")
            end = entry.get("end")
            price_mwh = entry.get("price")

            if start is None or price_mwh is None:
                continue

            # If no explicit end, assume 1-hour slots
            if end is None:
                start_dt = start if isinstance(start, datetime) else datetime.fromisoformat(start)
                end = start_dt + timedelta(hours=1)
                if not isinstance(start, datetime):
                    end = end.isoformat()

            converted.append({
                "start": start,
                "end": end,
                "value": float(price_mwh) / 1000.0,
            })
        except (ValueError, TypeError) as exc:
            _LOGGER.warning("Error converting native Nordpool entry: %s", exc)
            continue

    return converted
