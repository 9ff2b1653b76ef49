"""Constants for the Spot Scheduler integration."""

DOMAIN = "spot_scheduler"

# Config entry data keys (immutable after creation)
CONF_NAME = "name"
CONF_PRICE_SOURCE = "price_source"
CONF_NORDPOOL_SENSOR = "nordpool_sensor"
CONF_NORDPOOL_TYPE = "nordpool_type"

# Price sources
PRICE_SOURCE_NORDPOOL = "nordpool"
PRICE_SOURCE_ELERING = "elering"

# Price units
ELERING_PRICE_UNIT = "c/kWh"
DEFAULT_NORDPOOL_PRICE_UNIT = "EUR/kWh"

# Nordpool sensor types
NORDPOOL_TYPE_HACS = "hacs"
NORDPOOL_TYPE_NATIVE = "native"

# Options keys (changeable via options flow)
CONF_PINS = "pins"
CONF_NOTIFY_SERVICE = "notify_service"
CONF_TOMORROW_HOUR = "tomorrow_hour"

# Pin record keys
CONF_PIN_NAME = "name"
CONF_DEVICE_ID = "device_id"
CONF_LOW_LIMIT = "low_limit"
CONF_HIGH_LIMIT = "high_limit"
CONF_MIN_ON_HOURS = "min_on_hours"
CONF_MAX_ON_HOURS = "max_on_hours"
CONF_MIN_CONSECUTIVE_ON_HOURS = "min_consecutive_on_hours"

# Defaults
DEFAULT_MIN_ON_HOURS = 1
DEFAULT_MAX_ON_HOURS = 1
DEFAULT_TOMORROW_HOUR = 16  # tomorrow's prices are published in the afternoon

# A day with fewer quotes is an incomplete feed (DST days have 23 hours)
MIN_PRICES_PER_DAY = 23

# Update interval in minutes
UPDATE_INTERVAL_MINUTES = 15

STORAGE_VERSION = 1

# Services
SERVICE_SET_ON_HOURS = "set_on_hours"
SERVICE_SEND_SCHEDULE = "send_schedule"
ATTR_DATE = "date"
ATTR_HOURS = "hours"
