"""Tests for the Nordpool adapter module."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from homeassistant.core import HomeAssistant, ServiceCall, SupportsResponse
from homeassistant.helpers import entity_registry as er
from pytest_homeassistant_custom_component.common import MockConfigEntry

from helpers import TZ, make_nordpool_hour, make_nordpool_slot

from custom_components.spot_scheduler.const import NORDPOOL_TYPE_HACS, NORDPOOL_TYPE_NATIVE
from custom_components.spot_scheduler.nordpool_adapter import (
    _convert_native_response,
    async_get_prices_for_date,
    detect_nordpool_type,
    find_all_nordpool_sensors,
    slots_to_quanta,
)

TEST_DAY = date(2026, 2, 6)


class TestConvertNativeResponse:
    """Tests for converting native Nordpool service response to standard format."""

    def test_dict_response_grouped_by_area(self):
        """Native response grouped by area should be converted correctly."""
        response = {
            "FI": [
                {
                    "start": "2026-02-06T00:00:00+01:00",
                    "end": "2026-02-06T01:00:00+01:00",
                    "price": 50.0,  # 50 EUR/MWh = 0.05 EUR/kWh
                },
                {
                    "start": "2026-02-06T01:00:00+01:00",
                    "end": "2026-02-06T02:00:00+01:00",
                    "price": -30.0,
                },
            ]
        }

        result = _convert_native_response(response)

        assert len(result) == 2
        assert result[0]["start"] == "2026-02-06T00:00:00+01:00"
        assert result[0]["value"] == pytest.approx(0.05)
        assert result[1]["value"] == pytest.approx(-0.03)

    def test_list_response(self):
        """Response as a flat list should also be handled."""
        response = [
            {
                "start": "2026-02-06T00:00:00+01:00",
                "end": "2026-02-06T01:00:00+01:00",
                "price": 150.0,
            },
        ]

        result = _convert_native_response(response)

        assert len(result) == 1
        assert result[0]["value"] == pytest.approx(0.15)

    def test_missing_end_generates_one_hour_slot(self):
        """If 'end' is missing, it should be calculated as start + 1 hour."""
        response = {"FI": [{"start": "2026-02-06T05:00:00+01:00", "price": 200.0}]}

        result = _convert_native_response(response)

        assert result[0]["end"] == "2026-02-06T06:00:00+01:00"

    def test_empty_response(self):
        """Empty response should return empty list."""
        assert _convert_native_response({}) == []
        assert _convert_native_response([]) == []
        assert _convert_native_response(None) == []

    def test_incomplete_entries_are_skipped(self):
        """Entries without 'start' or 'price' should be skipped."""
        response = {
            "FI": [
                {"end": "2026-02-06T01:00:00+01:00", "price": 100.0},
                {"start": "2026-02-06T01:00:00+01:00", "end": "2026-02-06T02:00:00+01:00"},
                {
                    "start": "2026-02-06T02:00:00+01:00",
                    "end": "2026-02-06T03:00:00+01:00",
                    "price": 300.0,
                },
            ]
        }

        result = _convert_native_response(response)

        assert len(result) == 1
        assert result[0]["value"] == pytest.approx(0.3)


class TestSlotsToQuanta:
    """Tests for picking one local day out of price slots."""

    def test_filters_to_target_day(self, local_tz):
        slots = make_nordpool_hour(23, 0.4) + make_nordpool_hour(0, 0.2, day_offset=1)

        result = slots_to_quanta(slots, TEST_DAY)

        assert len(result) == 4
        assert all(q.validity.date() == TEST_DAY for q in result)
        assert result[0].validity == datetime(2026, 2, 6, 23, tzinfo=TZ)
        assert result[0].price == pytest.approx(0.4)

    def test_sorted_by_start(self, local_tz):
        slots = [make_nordpool_slot(5, 0.5), make_nordpool_slot(1, 0.1), make_nordpool_slot(3, 0.3)]

        result = slots_to_quanta(slots, TEST_DAY)

        assert [q.validity.hour for q in result] == [1, 3, 5]

    def test_utc_timestamps_are_localized(self, local_tz):
        slots = [{"start": "2026-02-05T23:00:00+00:00", "value": 0.7}]

        result = slots_to_quanta(slots, TEST_DAY)

        assert len(result) == 1
        assert result[0].validity.hour == 0

    def test_bad_slots_are_skipped(self, local_tz):
        slots = [
            {"start": "not a date", "value": 0.1},
            {"value": 0.2},
            make_nordpool_slot(2, None),
            make_nordpool_slot(4, 0.4),
        ]

        result = slots_to_quanta(slots, TEST_DAY)

        assert [q.price for q in result] == [pytest.approx(0.4)]


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations):
    """Enable loading of custom integrations."""
    yield


def _add_native_sensor(hass: HomeAssistant, unique_id: str, object_id: str, entry_id: str):
    entry = MockConfigEntry(domain="nordpool", entry_id=entry_id)
    entry.add_to_hass(hass)
    registry = er.async_get(hass)
    return registry.async_get_or_create(
        domain="sensor",
        platform="nordpool",
        unique_id=unique_id,
        suggested_object_id=object_id,
        config_entry=entry,
    )


class TestFindAllNordpoolSensors:
    """Tests for finding all available Nordpool sensors."""

    async def test_no_sensors(self, hass: HomeAssistant):
        """Returns empty list when no Nordpool integration exists."""
        assert find_all_nordpool_sensors(hass) == []

    async def test_single_hacs_sensor(self, hass: HomeAssistant):
        """Finds a HACS Nordpool sensor by its raw_today attribute."""
        hass.states.async_set(
            "sensor.nordpool_kwh_fi_eur",
            "5.0",
            {
                "friendly_name": "Nordpool kWh FI EUR",
                "raw_today": [make_nordpool_slot(0, 5.0)],
            },
        )

        result = find_all_nordpool_sensors(hass)

        assert result == [("sensor.nordpool_kwh_fi_eur", NORDPOOL_TYPE_HACS, "Nordpool kWh FI EUR")]
        assert detect_nordpool_type(hass, "sensor.nordpool_kwh_fi_eur") == NORDPOOL_TYPE_HACS

    async def test_native_current_price_only(self, hass: HomeAssistant):
        """Only current_price sensors are returned for native Nordpool."""
        current = _add_native_sensor(hass, "fi-current_price", "nord_pool_fi", "native_entry")
        hass.states.async_set(current.entity_id, "0.05", {"friendly_name": "Nord Pool FI"})
        registry = er.async_get(hass)
        for key in ["last_price", "next_price", "daily_average"]:
            other = registry.async_get_or_create(
                domain="sensor",
                platform="nordpool",
                unique_id=f"fi-{key}",
                suggested_object_id=f"nord_pool_fi_{key}",
                config_entry=hass.config_entries.async_get_entry("native_entry"),
            )
            hass.states.async_set(other.entity_id, "0.00")

        result = find_all_nordpool_sensors(hass)

        assert result == [(current.entity_id, NORDPOOL_TYPE_NATIVE, "Nord Pool FI")]
        assert detect_nordpool_type(hass, current.entity_id) == NORDPOOL_TYPE_NATIVE

    async def test_hacs_sensor_not_duplicated_as_native(self, hass: HomeAssistant):
        """HACS sensor should not appear twice (once as HACS, once as native)."""
        entity = _add_native_sensor(hass, "kwh_fi_current_price", "nordpool_kwh_fi_eur", "hacs_entry")
        hass.states.async_set(entity.entity_id, "5.0", {"raw_today": [make_nordpool_slot(0, 5.0)]})

        result = find_all_nordpool_sensors(hass)

        assert len(result) == 1
        assert result[0][1] == NORDPOOL_TYPE_HACS

    async def test_unknown_entity(self, hass: HomeAssistant):
        hass.states.async_set("sensor.outdoor_temperature", "4.2")
        assert detect_nordpool_type(hass, "sensor.outdoor_temperature") == "unknown"


class TestGetPricesForDate:
    """Tests for reading a day of prices from either sensor type."""

    async def test_hacs_today_and_tomorrow(self, hass: HomeAssistant, local_tz):
        today = [slot for h in range(24) for slot in make_nordpool_hour(h, 0.1 * h)]
        tomorrow = [slot for h in range(24) for slot in make_nordpool_hour(h, 1.0, day_offset=1)]
        hass.states.async_set(
            "sensor.nordpool_kwh_fi_eur", "0.5", {"raw_today": today, "raw_tomorrow": tomorrow}
        )

        today_prices = await async_get_prices_for_date(
            hass, "sensor.nordpool_kwh_fi_eur", NORDPOOL_TYPE_HACS, TEST_DAY
        )
        tomorrow_prices = await async_get_prices_for_date(
            hass, "sensor.nordpool_kwh_fi_eur", NORDPOOL_TYPE_HACS, TEST_DAY + timedelta(days=1)
        )

        assert len(today_prices) == 96
        assert today_prices[-1].price == pytest.approx(2.3)
        assert len(tomorrow_prices) == 96
        assert all(q.price == 1.0 for q in tomorrow_prices)

    async def test_hacs_missing_sensor(self, hass: HomeAssistant, local_tz):
        assert await async_get_prices_for_date(
            hass, "sensor.missing", NORDPOOL_TYPE_HACS, TEST_DAY
        ) == []

    async def test_native_service_call(self, hass: HomeAssistant, local_tz):
        entity = _add_native_sensor(hass, "fi-current_price", "nord_pool_fi", "native_entry")
        calls: list[ServiceCall] = []

        async def get_prices_for_date(call: ServiceCall):
            calls.append(call)
            start = datetime(2026, 2, 5, 23, tzinfo=timezone.utc)
            return {
                "FI": [
                    {
                        "start": (start + timedelta(hours=h)).isoformat(),
                        "end": (start + timedelta(hours=h + 1)).isoformat(),
                        "price": 10.0 * h,
                    }
                    for h in range(24)
                ]
            }

        hass.services.async_register(
            "nordpool",
            "get_prices_for_date",
            get_prices_for_date,
            supports_response=SupportsResponse.ONLY,
        )

        prices = await async_get_prices_for_date(
            hass, entity.entity_id, NORDPOOL_TYPE_NATIVE, TEST_DAY
        )

        assert calls[0].data == {"config_entry": "native_entry", "date": "2026-02-06"}
        assert len(prices) == 24
        assert prices[0].validity == datetime(2026, 2, 6, 0, tzinfo=TZ)
        assert prices[1].price == pytest.approx(0.01)

    async def test_native_without_service(self, hass: HomeAssistant, local_tz):
        entity = _add_native_sensor(hass, "fi-current_price", "nord_pool_fi", "native_entry")
        assert await async_get_prices_for_date(
            hass, entity.entity_id, NORDPOOL_TYPE_NATIVE, TEST_DAY
        ) == []
