"""Tests for settings parsing and layout validation."""

import pytest
from pydantic import ValidationError

from weekblocks.core.config import Settings


def test_defaults_describe_standard_layout():
    settings = Settings()

    assert settings.num_slots == 11
    assert settings.data_start_row == 2
    assert settings.day_labels[0] == "Mon"
    assert settings.redis_url is None


def test_label_lists_accept_comma_separated_text():
    settings = Settings(time_slots="09:00, 10:00,11:00")

    assert settings.time_slots == ["09:00", "10:00", "11:00"]
    assert settings.num_slots == 3


def test_label_lists_from_env(monkeypatch):
    monkeypatch.setenv("WEEKBLOCKS_TIME_SLOTS", '["09:00", "10:00"]')

    assert Settings().num_slots == 2


def test_blank_redis_url_means_no_redis(monkeypatch):
    monkeypatch.setenv("WEEKBLOCKS_REDIS_URL", "  ")
    assert Settings().redis_url is None


def test_day_labels_must_cover_a_week():
    with pytest.raises(ValidationError):
        Settings(day_labels=["Mon", "Tue"])


def test_threshold_bounds():
    with pytest.raises(ValidationError):
        Settings(validation_error_threshold=1.5)
