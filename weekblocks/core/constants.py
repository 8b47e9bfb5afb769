"""Block layout constants shared across the week block store."""

from __future__ import annotations

# Standard time-of-day labels; one block row per label
STANDARD_TIME_SLOTS = [
    "18:00",
    "18:30",
    "19:00",
    "19:30",
    "20:00",
    "20:30",
    "21:00",
    "21:30",
    "22:00",
    "22:30",
    "23:00",
]

DAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
DAYS_PER_WEEK = 7

# Grid column attribute names on BlockRow, Monday first
DAY_COLUMNS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

HEADER_TIME_LABEL = "Time"
DEFAULT_HEADER_ROWS = 1

MIN_BLOCK_YEAR = 2000
MAX_BLOCK_YEAR = 9999
MIN_ISO_WEEK = 1
MAX_ISO_WEEK = 53

CHANGELOG_SENTINEL = "(No changes this week)"
EMPTY_ROSTER = "[]"

# Cache key prefixes
LOCATION_CACHE_PREFIX = "week_location"
CONTENT_CACHE_PREFIX = "schedule_data"

# Lock keys for scheduled maintenance jobs
ROLLOVER_LOCK_KEY = "maintenance:weekly_rollover"
VALIDATION_LOCK_KEY = "maintenance:validate_index"
RETIRE_LOCK_KEY = "maintenance:retire_idle_scopes"
