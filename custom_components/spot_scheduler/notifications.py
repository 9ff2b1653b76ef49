"""Schedule and state change notifications."""

from __future__ import annotations

import logging
from datetime import date

from homeassistant.components import persistent_notification
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import slugify

from .const import DOMAIN
from .scheduler import Schedule, format_hour_ranges

_LOGGER = logging.getLogger(__name__)


def format_schedule(day: date, schedule: Schedule) -> tuple[str, str]:
    """Return (title, message) summarizing a day's schedule."""
    title = f"Schedule {day.strftime('%d.%m.%Y')}"
    lines: list[str] = []
    for pin in schedule.pins:
        lines.append(
            f"{pin.name}: {format_hour_ranges(pin.on_hours)} ({len(pin.on_hours)} h)\n"
            f"Average price: on {schedule.avg_price(pin.device_id, True):.3f}, "
            f"off {schedule.avg_price(pin.device_id, False):.3f}\n"
        )
    lines.append(f"Day average price: {schedule.day_avg_price():.3f}")
    return title, "\n".join(lines)


def format_state_change(
    changes: list[tuple[str, str, bool]], first_update: bool
) -> tuple[str, str]:
    """Return (title, message) for devices whose scheduled state changed.

    Args:
        changes: (name, device_id, new_state) per changed device.
        first_update: True on the first update after Home Assistant started.
    """
    title = "State change" + (" (after restart)" if first_update else "")
    message = "\n".join(
        f"{name} ({device_id}): {'on' if state else 'off'}"
        for name, device_id, state in changes
    )
    return title, message


def format_error(title: str, error: Exception) -> tuple[str, str]:
    return title, f"{type(error).__name__}: {error}"


async def async_send_notification(
    hass: HomeAssistant,
    notify_service: str | None,
    title: str,
    message: str,
) -> None:
    """Send through a notify service, or create a persistent notification."""
    _LOGGER.debug("Notification %s: %s", title, message)
    if not notify_service:
        persistent_notification.async_create(
            hass, message, title=title, notification_id=f"{DOMAIN}_{slugify(title)}"
        )
        return

    domain, _, service = notify_service.partition(".")
    if not service:
        domain, service = "notify", notify_service
    try:
        await hass.services.async_call(
            domain, service, {"title": title, "message": message}, blocking=True
        )
    except HomeAssistantError:
        _LOGGER.exception("Failed to send notification via %s", notify_service)
