"""Pure schedule computation for the Spot Scheduler integration.

This module contains no Home Assistant dependencies and can be tested independently.
It turns one day of spot price quotes into per-device on/off schedules:
- Hour bucketing: average sub-hourly quotes into one price per hour
- Constraint selection: pick the on-hours under price limits and hour counts
- Run filtering: drop short isolated on-periods in the middle of the day
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

_LOGGER = logging.getLogger(__name__)

ONE_HOUR = timedelta(hours=1)


class ScheduleError(Exception):
    """Base error for schedule computation."""


class InvalidPriceData(ScheduleError, ValueError):
    """Price series cannot be scheduled (NaN, naive timestamps, unordered)."""


class InvalidPinConfig(ScheduleError, ValueError):
    """Constraint record is missing required fields."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_datetime(value: str | datetime) -> datetime:
    """Convert a value to a datetime, handling both strings and datetime objects.

    Stored schedules keep timestamps as ISO strings, price sources may hand
    over datetime objects directly.
    """
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _utc(value: datetime) -> datetime:
    """Return the instant in UTC.

    Arithmetic and comparisons between datetimes sharing a tzinfo use wall
    time, which is wrong across DST transitions.
    """
    return value.astimezone(timezone.utc)


def _hour_start(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def round_price(price: float) -> float:
    """Round a price to three decimals."""
    return round(price * 1000.0) / 1000.0


def _optional_float(data: dict[str, Any], key: str) -> float | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return float(value)


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return int(value)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PriceQuantum:
    """One timestamped price at the native feed granularity."""

    validity: datetime
    price: float

    def as_dict(self) -> dict[str, Any]:
        return {"validity": self.validity.isoformat(), "price": self.price}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PriceQuantum:
        return cls(validity=_to_datetime(data["validity"]), price=float(data["price"]))


@dataclass(frozen=True)
class PinConfig:
    """Scheduling constraints for one controlled device."""

    name: str
    device_id: str
    min_on_hours: int
    max_on_hours: int
    low_limit: float | None = None
    high_limit: float | None = None
    min_consecutive_on_hours: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PinConfig:
        """Build constraints from a flat config record.

        Raises:
            InvalidPinConfig: A required field is missing or not a number.
        """
        try:
            return cls(
                name=str(data["name"]),
                device_id=str(data["device_id"]),
                min_on_hours=int(data["min_on_hours"]),
                max_on_hours=int(data["max_on_hours"]),
                low_limit=_optional_float(data, "low_limit"),
                high_limit=_optional_float(data, "high_limit"),
                min_consecutive_on_hours=_optional_int(data, "min_consecutive_on_hours"),
            )
        except KeyError as err:
            raise InvalidPinConfig(f"Pin config is missing field {err}") from err
        except (TypeError, ValueError) as err:
            raise InvalidPinConfig(f"Invalid pin config {data!r}: {err}") from err

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "device_id": self.device_id,
            "min_on_hours": self.min_on_hours,
            "max_on_hours": self.max_on_hours,
            "low_limit": self.low_limit,
            "high_limit": self.high_limit,
            "min_consecutive_on_hours": self.min_consecutive_on_hours,
        }


# ---------------------------------------------------------------------------
# Hour bucketing
# ---------------------------------------------------------------------------

def _checked_price(quantum: PriceQuantum) -> float:
    try:
        price = float(quantum.price)
    except (TypeError, ValueError) as err:
        raise InvalidPriceData(
            f"Non-numeric price {quantum.price!r} at {quantum.validity}"
        ) from err
    if not math.isfinite(price):
        raise InvalidPriceData(f"Non-finite price {price} at {quantum.validity}")
    return price


def bucket_hourly_prices(prices: Iterable[PriceQuantum]) -> list[PriceQuantum]:
    """Average a price series into one price per local calendar hour.

    The series must be ordered by validity; it is never reordered. A new
    bucket starts whenever the local date/hour of a quantum differs from the
    active bucket, so both quarter-hour and hourly feeds work, a spring-forward
    day yields 23 buckets and the repeated hour of a fall-back day is merged
    into a single bucket.

    Raises:
        InvalidPriceData: naive timestamp, non-finite price or unordered series.
    """
    buckets: list[PriceQuantum] = []
    current_key: tuple | None = None
    current_start: datetime | None = None
    total = 0.0
    count = 0
    previous: datetime | None = None

    for quantum in prices:
        validity = quantum.validity
        if validity.tzinfo is None:
            raise InvalidPriceData(f"Price timestamp {validity} is not timezone-aware")
        price = _checked_price(quantum)
        if previous is not None and _utc(validity) < _utc(previous):
            raise InvalidPriceData(
                f"Price series is not ordered: {validity} follows {previous}"
            )
        previous = validity

        key = (validity.date(), validity.hour)
        if key != current_key:
            if current_start is not None:
                buckets.append(PriceQuantum(current_start, total / count))
            current_key = key
            current_start = _hour_start(validity)
            total = 0.0
            count = 0
        total += price
        count += 1

    if current_start is not None:
        buckets.append(PriceQuantum(current_start, total / count))

    return buckets


# ---------------------------------------------------------------------------
# Constraint selection
# ---------------------------------------------------------------------------

def _by_price(quantum: PriceQuantum) -> float:
    return quantum.price


def select_on_hours(
    hourly_prices: list[PriceQuantum],
    config: PinConfig,
) -> list[datetime]:
    """Select the hours a device should be on.

    The order of the steps matters:
    1. Hours priced at or above high_limit are excluded.
    2. Remaining hours at or below low_limit are always-on candidates.
    3. Always-on hours are capped to the cheapest max_on_hours.
    4. The set is filled with the cheapest other hours up to min_on_hours,
       never beyond max_on_hours. Under-filling is not an error.
    5. The result is returned in chronological order.

    Sorting is stable, so equal prices keep their chronological order.
    """
    candidates = [
        hour for hour in hourly_prices
        if config.high_limit is None or hour.price < config.high_limit
    ]

    always_on: list[PriceQuantum] = []
    others: list[PriceQuantum] = []
    for hour in candidates:
        if config.low_limit is not None and hour.price <= config.low_limit:
            always_on.append(hour)
        else:
            others.append(hour)

    max_on = max(config.max_on_hours, 0)
    if len(always_on) > max_on:
        always_on = sorted(always_on, key=_by_price)[:max_on]

    selected = list(always_on)
    target = min(config.min_on_hours, max_on)
    if len(selected) < target:
        selected.extend(sorted(others, key=_by_price)[:target - len(selected)])

    _LOGGER.debug(
        "%s: %d candidates, %d always on, %d selected (min=%d, max=%d)",
        config.name, len(candidates), len(always_on), len(selected),
        config.min_on_hours, config.max_on_hours,
    )

    selected.sort(key=lambda hour: _utc(hour.validity))
    return [hour.validity for hour in selected]


# ---------------------------------------------------------------------------
# Run filtering
# ---------------------------------------------------------------------------

def _find_runs(on_hours: list[datetime]) -> list[list[datetime]]:
    """Group chronologically sorted hours into runs of adjacent hours."""
    runs: list[list[datetime]] = []
    for hour in on_hours:
        if runs and _utc(hour) - _utc(runs[-1][-1]) == ONE_HOUR:
            runs[-1].append(hour)
        else:
            runs.append([hour])
    return runs


def drop_short_runs(
    on_hours: list[datetime],
    min_consecutive_on_hours: int | None,
) -> list[datetime]:
    """Remove runs shorter than min_consecutive_on_hours.

    Runs touching the start (hour 0) or end (hour 23) of the day are kept
    whatever their length, they continue into the adjacent day.
    """
    if min_consecutive_on_hours is None:
        return list(on_hours)

    kept: list[datetime] = []
    for run in _find_runs(on_hours):
        start, end = run[0], run[-1]
        if start.hour != 0 and end.hour != 23 and len(run) < min_consecutive_on_hours:
            _LOGGER.debug(
                "Dropping %d hour run %s-%s (min %d)",
                len(run), start.isoformat(), end.isoformat(), min_consecutive_on_hours,
            )
            continue
        kept.extend(run)
    return kept


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

@dataclass
class PinSchedule:
    """On-hours of one device for one day."""

    name: str
    device_id: str
    on_hours: list[datetime] = field(default_factory=list)

    def is_on(self, instant: datetime) -> bool:
        """Return True if instant falls within [entry, entry + 1h) of an on-hour."""
        now = _utc(instant)
        return any(_utc(entry) <= now < _utc(entry) + ONE_HOUR for entry in self.on_hours)

    def avg_price(self, hourly_prices: list[PriceQuantum], on: bool) -> float:
        """Return the mean hourly price over the on- or off-hours.

        Divides by the expected hour count (on-hours, or the remaining hours
        of the day). Returns 0.0 when that count is zero.
        """
        on_set = {_utc(hour) for hour in self.on_hours}
        if on:
            expected = len(self.on_hours)
        else:
            expected = len(hourly_prices) - len(self.on_hours)
        if expected <= 0:
            return 0.0
        total = sum(
            hour.price for hour in hourly_prices
            if (_utc(hour.validity) in on_set) == on
        )
        return total / expected

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "device_id": self.device_id,
            "on_hours": [hour.isoformat() for hour in self.on_hours],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PinSchedule:
        return cls(
            name=data["name"],
            device_id=str(data["device_id"]),
            on_hours=[_to_datetime(hour) for hour in data.get("on_hours", [])],
        )


def compute_pin_schedule(config: PinConfig, prices: list[PriceQuantum]) -> PinSchedule:
    """Compute the schedule of one device from a day of prices."""
    hourly = bucket_hourly_prices(prices)
    on_hours = select_on_hours(hourly, config)
    on_hours = drop_short_runs(on_hours, config.min_consecutive_on_hours)
    return PinSchedule(name=config.name, device_id=config.device_id, on_hours=on_hours)


@dataclass
class Schedule:
    """All device schedules of one day together with the day's prices."""

    pins: list[PinSchedule] = field(default_factory=list)
    prices: list[PriceQuantum] = field(default_factory=list)

    @classmethod
    def compute(
        cls,
        configs: Iterable[PinConfig],
        prices: Iterable[PriceQuantum],
    ) -> Schedule:
        prices = list(prices)
        pins = [compute_pin_schedule(config, prices) for config in configs]
        return cls(pins=pins, prices=prices)

    def pin(self, device_id: str) -> PinSchedule | None:
        for pin in self.pins:
            if pin.device_id == device_id:
                return pin
        return None

    def hourly_prices(self) -> list[PriceQuantum]:
        return bucket_hourly_prices(self.prices)

    def hour_starts(self) -> list[datetime]:
        """Return the start of every hour of the day (23 to 25 entries)."""
        return [hour.validity for hour in self.hourly_prices()]

    def is_on(self, device_id: str, instant: datetime) -> bool:
        pin = self.pin(device_id)
        return pin is not None and pin.is_on(instant)

    def avg_price(self, device_id: str, on: bool) -> float:
        pin = self.pin(device_id)
        if pin is None:
            raise KeyError(device_id)
        return pin.avg_price(self.hourly_prices(), on)

    def avg_price_for_hour(self, instant: datetime) -> float | None:
        """Return the mean of all quotes within the hour containing instant."""
        start = _utc(_hour_start(instant))
        end = start + ONE_HOUR
        hour_prices = [
            quantum.price for quantum in self.prices
            if start <= _utc(quantum.validity) < end
        ]
        if not hour_prices:
            return None
        return sum(hour_prices) / len(hour_prices)

    def day_avg_price(self) -> float:
        # Assumes equal length quotes covering the whole day
        if not self.prices:
            return 0.0
        return sum(quantum.price for quantum in self.prices) / len(self.prices)

    def with_on_hours(self, device_id: str, on_hours: Iterable[datetime]) -> Schedule:
        """Return a copy with the on-hours of one device replaced.

        Raises:
            ScheduleError: Unknown device or an hour that is not part of the day.
        """
        if self.pin(device_id) is None:
            raise ScheduleError(f"No schedule for device {device_id}")
        valid = {_utc(hour) for hour in self.hour_starts()}
        unique: dict[datetime, datetime] = {}
        for hour in on_hours:
            if _utc(hour) not in valid:
                raise ScheduleError(f"{hour.isoformat()} is not an hour of this schedule")
            unique.setdefault(_utc(hour), hour)
        ordered = [unique[key] for key in sorted(unique)]
        pins = [
            PinSchedule(pin.name, pin.device_id, ordered)
            if pin.device_id == device_id
            else pin
            for pin in self.pins
        ]
        return Schedule(pins=pins, prices=list(self.prices))

    def with_pins(self, configs: Iterable[PinConfig]) -> Schedule:
        """Return a copy that also schedules configs missing from this day."""
        missing = [config for config in configs if self.pin(config.device_id) is None]
        if not missing:
            return self
        added = [compute_pin_schedule(config, self.prices) for config in missing]
        return Schedule(pins=self.pins + added, prices=list(self.prices))

    def as_dict(self) -> dict[str, Any]:
        return {
            "pins": [pin.as_dict() for pin in self.pins],
            "prices": [quantum.as_dict() for quantum in self.prices],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schedule:
        return cls(
            pins=[PinSchedule.from_dict(pin) for pin in data.get("pins", [])],
            prices=[PriceQuantum.from_dict(price) for price in data.get("prices", [])],
        )


# ---------------------------------------------------------------------------
# Reporting helpers
# ---------------------------------------------------------------------------

def format_hour_ranges(on_hours: list[datetime]) -> str:
    """Render sorted on-hours as ranges, e.g. "00:00-02:59, 14:00-14:59"."""
    return ", ".join(
        f"{run[0].hour:02d}:00-{run[-1].hour:02d}:59" for run in _find_runs(on_hours)
    )


def monthly_average_price(schedules: Iterable[Schedule]) -> float | None:
    """Return the mean of the daily average prices rounded to three decimals.

    Returns None without data.
    """
    day_averages = [schedule.day_avg_price() for schedule in schedules]
    if not day_averages:
        return None
    return round_price(sum(day_averages) / len(day_averages))
