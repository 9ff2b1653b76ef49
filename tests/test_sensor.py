"""Tests for the Spot Scheduler sensor entities."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from helpers import hour_start, make_config_entry

from homeassistant.helpers.entity import EntityCategory

from custom_components.spot_scheduler.coordinator import SpotSchedulerData
from custom_components.spot_scheduler.scheduler import PriceQuantum, Schedule
from custom_components.spot_scheduler.sensor import (
    CurrentPriceSensor,
    DayAveragePriceSensor,
    MonthAveragePriceSensor,
)


def flat_schedule(price: float, day_offset: int = 0) -> Schedule:
    return Schedule(prices=[PriceQuantum(hour_start(h, day_offset), price) for h in range(24)])


def make_coordinator(data: SpotSchedulerData | None, price_unit: str = "c/kWh") -> MagicMock:
    coordinator = MagicMock()
    coordinator.data = data
    coordinator.price_unit = price_unit
    return coordinator


# --- Current price ---


def test_current_price_unique_id():
    sensor = CurrentPriceSensor(make_coordinator(SpotSchedulerData()), make_config_entry("abc"))
    assert sensor.unique_id == "abc_current_price"
    assert sensor.native_unit_of_measurement == "c/kWh"


@pytest.mark.parametrize("unit", ["c/kWh", "EUR/kWh", "SEK/kWh"])
def test_price_unit_follows_source(unit):
    for sensor_class in (CurrentPriceSensor, DayAveragePriceSensor, MonthAveragePriceSensor):
        sensor = sensor_class(make_coordinator(SpotSchedulerData(), unit), make_config_entry())
        assert sensor.native_unit_of_measurement == unit


def test_current_price_value():
    sensor = CurrentPriceSensor(
        make_coordinator(SpotSchedulerData(current_price=7.25)), make_config_entry()
    )
    assert sensor.native_value == 7.25


def test_current_price_no_data():
    sensor = CurrentPriceSensor(make_coordinator(None), make_config_entry())
    assert sensor.native_value is None


# --- Day average ---


def test_day_average_today_and_tomorrow():
    data = SpotSchedulerData(today=flat_schedule(4.1234), tomorrow=flat_schedule(2.0, 1))
    sensor = DayAveragePriceSensor(make_coordinator(data), make_config_entry())

    assert sensor.native_value == pytest.approx(4.123)
    assert sensor.extra_state_attributes == {"tomorrow": pytest.approx(2.0)}


def test_day_average_without_tomorrow():
    data = SpotSchedulerData(today=flat_schedule(4.0))
    sensor = DayAveragePriceSensor(make_coordinator(data), make_config_entry())
    assert sensor.extra_state_attributes == {"tomorrow": None}


def test_day_average_no_schedule():
    sensor = DayAveragePriceSensor(make_coordinator(SpotSchedulerData()), make_config_entry())
    assert sensor.native_value is None


# --- Month average ---


def test_month_average_is_diagnostic():
    sensor = MonthAveragePriceSensor(make_coordinator(SpotSchedulerData()), make_config_entry("abc"))
    assert sensor.unique_id == "abc_month_average_price"
    assert sensor.entity_category == EntityCategory.DIAGNOSTIC
    assert sensor.native_value is None


def test_month_average_value():
    sensor = MonthAveragePriceSensor(
        make_coordinator(SpotSchedulerData(month_avg_price=6.66666)), make_config_entry()
    )
    assert sensor.native_value == pytest.approx(6.667)
