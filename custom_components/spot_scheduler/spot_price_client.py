"""Spot price clients for Elering with porssisahko.net as fallback."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone

import aiohttp

from homeassistant.core import HomeAssistant
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.util import dt as dt_util

from .const import MIN_PRICES_PER_DAY
from .scheduler import PriceQuantum, round_price

_LOGGER = logging.getLogger(__name__)

ELERING_URL = "https://dashboard.elering.ee/api/nps/price"
ELERING_AREA = "fi"
PORSSISAHKO_URL = "https://api.porssisahko.net/v1/latest-prices.json"

VAT = 1.255
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


class PriceSourceError(Exception):
    """Prices could not be fetched or the feed is incomplete."""


def local_day_bounds(target_date: date) -> tuple[datetime, datetime]:
    """Return the first and last second of a local day in UTC."""
    start = dt_util.start_of_local_day(target_date)
    end = dt_util.start_of_local_day(target_date + timedelta(days=1)) - timedelta(seconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def parse_elering_response(payload: dict) -> list[PriceQuantum]:
    """Convert an Elering response (€/MWh) to c/kWh quotes including VAT.

    Negative prices carry no VAT.
    """
    if not payload.get("success"):
        raise PriceSourceError("Elering API returned error")

    prices: list[PriceQuantum] = []
    for entry in payload.get("data", {}).get(ELERING_AREA, []):
        c_per_kwh = float(entry["price"]) / 10.0
        validity = dt_util.as_local(
            datetime.fromtimestamp(int(entry["timestamp"]), tz=timezone.utc)
        )
        price = round_price(c_per_kwh * VAT) if c_per_kwh > 0 else c_per_kwh
        prices.append(PriceQuantum(validity=validity, price=price))
    return prices


def parse_porssisahko_response(payload: dict, target_date: date) -> list[PriceQuantum]:
    """Pick the quotes (c/kWh, VAT included) of one local day, ordered by time."""
    start, end = local_day_bounds(target_date)
    prices: list[PriceQuantum] = []
    for entry in payload.get("prices", []):
        start_date = datetime.fromisoformat(entry["startDate"].replace("Z", "+00:00"))
        if start <= start_date < end:
            prices.append(
                PriceQuantum(validity=dt_util.as_local(start_date), price=float(entry["price"]))
            )
    prices.sort(key=lambda quantum: quantum.validity)
    return prices


class SpotPriceClient:
    """Fetch one day of spot prices, preferring Elering."""

    def __init__(self, hass: HomeAssistant) -> None:
        self._session = async_get_clientsession(hass)

    async def async_get_prices_for_date(self, target_date: date) -> list[PriceQuantum]:
        """Return the day's prices from Elering, or porssisahko.net as fallback.

        Raises:
            PriceSourceError: Both sources failed.
        """
        _LOGGER.info("Getting prices for %s from Elering", target_date)
        try:
            prices = await self._async_fetch_elering(target_date)
        except PriceSourceError as err:
            _LOGGER.warning("Elering prices for %s unavailable: %s", target_date, err)
        else:
            # DST transition day may have only 23 hours
            if len(prices) >= MIN_PRICES_PER_DAY:
                return prices
            _LOGGER.warning(
                "Elering returned only %d prices for %s", len(prices), target_date
            )

        _LOGGER.info("Getting prices for %s from porssisahko.net", target_date)
        try:
            return await self._async_fetch_porssisahko(target_date)
        except PriceSourceError as err:
            raise PriceSourceError(
                f"Unable to get prices from porssisahko.net API: {err}"
            ) from err

    async def _async_fetch_elering(self, target_date: date) -> list[PriceQuantum]:
        start, end = local_day_bounds(target_date)
        params = {"start": start.isoformat(), "end": end.isoformat()}
        payload = await self._async_get_json(ELERING_URL, params)
        try:
            return parse_elering_response(payload)
        except (KeyError, TypeError, ValueError) as err:
            raise PriceSourceError(f"Unable to parse spot prices: {err}") from err

    async def _async_fetch_porssisahko(self, target_date: date) -> list[PriceQuantum]:
        payload = await self._async_get_json(PORSSISAHKO_URL)
        try:
            return parse_porssisahko_response(payload, target_date)
        except (KeyError, TypeError, ValueError) as err:
            raise PriceSourceError(f"Unable to parse spot prices: {err}") from err

    async def _async_get_json(self, url: str, params: dict | None = None) -> dict:
        try:
            async with self._session.get(
                url, params=params, timeout=REQUEST_TIMEOUT
            ) as response:
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
            raise PriceSourceError(f"Unable to request spot prices: {err}") from err
