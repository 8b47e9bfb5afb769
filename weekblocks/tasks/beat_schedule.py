# weekblocks/tasks/beat_schedule.py
"""
Celery Beat schedule for the week block maintenance jobs.
"""

from datetime import timedelta
from typing import Any

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: dict[str, dict[str, Any]] = {
    # Provision the coming weeks and refresh rosters - Monday 00:01 UTC
    "week-blocks-weekly-rollover": {
        "task": "week_blocks.weekly_rollover",
        "schedule": crontab(day_of_week="mon", hour=0, minute=1),
        "options": {"queue": "maintenance", "priority": 5},
    },
    # Audit the location index, rebuild past the error threshold
    "week-blocks-validate-index": {
        "task": "week_blocks.validate_index",
        "schedule": crontab(hour=3, minute=15),
        "options": {"queue": "maintenance", "priority": 3},
    },
    # Retire scopes with no recent activity
    "week-blocks-retire-idle-scopes": {
        "task": "week_blocks.retire_idle_scopes",
        "schedule": crontab(hour=4, minute=0),
        "options": {"queue": "maintenance", "priority": 2},
    },
}

SCHEDULE_CONFIG: dict[str, dict[str, dict[str, Any]]] = {
    "testing": {
        "week-blocks-validate-index": {
            "task": "week_blocks.validate_index",
            "schedule": timedelta(seconds=30),
            "options": {"queue": "maintenance"},
        },
    },
}


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of schedule entry name to Celery beat configuration dict
    """
    base = dict(CELERYBEAT_SCHEDULE)
    overrides = SCHEDULE_CONFIG.get(environment)
    if overrides:
        base.update(overrides)
    return base
