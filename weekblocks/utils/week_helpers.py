"""ISO week arithmetic used by block layout and maintenance jobs."""

from datetime import date, timedelta
import re
from typing import List, Optional, Tuple

_WEEK_LABEL_RE = re.compile(r"^W(\d{1,2})$", re.IGNORECASE)
_BLOCK_KEY_RE = re.compile(r"^(\d{4})-W(\d{2})$")


def monday_of_iso_week(year: int, week: int) -> date:
    """Return the Monday of ISO week ``week`` in ISO year ``year``."""
    return date.fromisocalendar(year, week, 1)


def is_valid_iso_week(year: int, week: int) -> bool:
    try:
        date.fromisocalendar(year, week, 1)
    except ValueError:
        return False
    return True


def month_label(year: int, week: int) -> str:
    """English month name of the week's Monday, e.g. 'June'."""
    return monday_of_iso_week(year, week).strftime("%B")


def week_label(week: int) -> str:
    return f"W{week}"


def parse_week_label(label: Optional[str]) -> Optional[int]:
    """'W25' -> 25; anything else -> None."""
    if not label:
        return None
    match = _WEEK_LABEL_RE.match(label.strip())
    if not match:
        return None
    return int(match.group(1))


def block_key(year: int, week: int) -> str:
    return f"{year}-W{week:02d}"


def parse_block_key(key: Optional[str]) -> Optional[Tuple[int, int]]:
    """'2025-W07' -> (2025, 7); anything else -> None."""
    if not key:
        return None
    match = _BLOCK_KEY_RE.match(key)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def current_iso_week(today: Optional[date] = None) -> Tuple[int, int]:
    iso = (today or date.today()).isocalendar()
    return iso[0], iso[1]


def next_iso_week(year: int, week: int) -> Tuple[int, int]:
    iso = (monday_of_iso_week(year, week) + timedelta(days=7)).isocalendar()
    return iso[0], iso[1]


def iso_weeks_from(year: int, week: int, count: int) -> List[Tuple[int, int]]:
    """``count`` consecutive ISO weeks starting at (year, week)."""
    weeks: List[Tuple[int, int]] = []
    current = (year, week)
    for _ in range(max(count, 0)):
        weeks.append(current)
        current = next_iso_week(*current)
    return weeks
