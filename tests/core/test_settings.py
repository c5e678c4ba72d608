"""Tests for delay_spine.core.settings: SchedulerSettings and the cached accessor."""

from __future__ import annotations

import pydantic
import pytest

from delay_spine.core.errors import ConfigError
from delay_spine.core.settings import SchedulerSettings, get_settings, reset_settings


class TestDefaults:
    def test_defaults(self):
        s = SchedulerSettings(_env_file=None)
        assert s.redis_url == "redis://localhost:6379/0"
        assert s.lock_key == "delay_spine:sweep_lock"
        assert s.timer_key == "delay_spine:sweep_timer"
        assert s.set_name == "delay_spine:tasks"
        assert s.interval_seconds == 1.0
        assert s.lock_ttl_seconds == 60
        assert s.failure_policy == "retain"
        assert s.key_delimiter == "."
        assert s.escape_delimiters is True

    def test_lock_ttl_can_be_disabled(self):
        assert SchedulerSettings(_env_file=None, lock_ttl_seconds=None).lock_ttl_seconds is None


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("DELAY_SPINE_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("DELAY_SPINE_FAILURE_POLICY", "drop")
        monkeypatch.setenv("DELAY_SPINE_SET_NAME", "app:delayed")
        s = SchedulerSettings(_env_file=None)
        assert s.interval_seconds == 5.0
        assert s.failure_policy == "drop"
        assert s.set_name == "app:delayed"

    def test_unrelated_env_ignored(self, monkeypatch):
        monkeypatch.setenv("DELAY_SPINE_NOT_A_SETTING", "x")
        SchedulerSettings(_env_file=None)


class TestValidation:
    @pytest.mark.parametrize("interval", [0, -1])
    def test_interval_must_be_positive(self, interval):
        with pytest.raises(pydantic.ValidationError):
            SchedulerSettings(_env_file=None, interval_seconds=interval)

    @pytest.mark.parametrize("delimiter", ["", "::", "\\"])
    def test_delimiter_must_be_single_non_escape_char(self, delimiter):
        with pytest.raises(pydantic.ValidationError):
            SchedulerSettings(_env_file=None, key_delimiter=delimiter)

    def test_unknown_failure_policy(self):
        with pytest.raises(pydantic.ValidationError):
            SchedulerSettings(_env_file=None, failure_policy="retry")


class TestCachedAccessor:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_picks_up_env(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("DELAY_SPINE_LOCK_KEY", "other:lock")
        reset_settings()
        second = get_settings()
        assert second is not first
        assert second.lock_key == "other:lock"

    def test_invalid_environment_raises_config_error(self, monkeypatch):
        monkeypatch.setenv("DELAY_SPINE_INTERVAL_SECONDS", "0")
        with pytest.raises(ConfigError) as info:
            get_settings()
        assert "interval_seconds" in info.value.message
        assert isinstance(info.value.cause, pydantic.ValidationError)
        assert info.value.category.value == "CONFIG"
