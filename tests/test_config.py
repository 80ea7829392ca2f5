"""Tests for giveaway_fairness.config module."""

import os
from unittest import mock

import pytest

from giveaway_fairness import FairnessConfig, InvalidConfigError
from giveaway_fairness.config import (
    DEFAULT_DRAW_INTERVAL_SECONDS,
    RuntimeSettings,
    env_bool,
    env_float,
    env_int,
    read_fairness_defaults,
    read_runtime_settings,
)


class TestEnvHelpers:
    """Test environment parsing helpers."""

    def test_env_bool_values(self):
        """Should parse true/false spellings and fall back on junk."""
        for value, expected in [("yes", True), (" ON ", True), ("0", False)]:
            with mock.patch.dict(os.environ, {"TEST_VAR": value}, clear=True):
                assert env_bool("TEST_VAR") is expected
        with mock.patch.dict(os.environ, {"TEST_VAR": "maybe"}, clear=True):
            assert env_bool("TEST_VAR", default=True) is True

    def test_env_int_invalid_returns_default(self):
        with mock.patch.dict(os.environ, {"TEST_VAR": "abc"}, clear=True):
            assert env_int("TEST_VAR", default=7) == 7
        with mock.patch.dict(os.environ, {"TEST_VAR": "12"}, clear=True):
            assert env_int("TEST_VAR") == 12

    def test_env_float(self):
        with mock.patch.dict(os.environ, {"TEST_VAR": "0.25"}, clear=True):
            assert env_float("TEST_VAR") == 0.25
        with mock.patch.dict(os.environ, {"TEST_VAR": "  "}, clear=True):
            assert env_float("TEST_VAR", default=1.5) == 1.5
        with mock.patch.dict(os.environ, {"TEST_VAR": "lots"}, clear=True):
            assert env_float("TEST_VAR") is None


class TestRuntimeSettings:
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = read_runtime_settings()

        assert settings == RuntimeSettings(
            table_name=None,
            aws_region="us-east-1",
            draw_interval_seconds=DEFAULT_DRAW_INTERVAL_SECONDS,
            log_level="INFO",
            test_mode=False,
        )

    def test_environment_overrides(self):
        env = {
            "GIVEAWAY_TABLE_NAME": "giveaways",
            "AWS_REGION": "eu-west-1",
            "DRAW_INTERVAL_SECONDS": "30",
            "LOG_LEVEL": "debug",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = read_runtime_settings()

        assert settings.table_name == "giveaways"
        assert settings.aws_region == "eu-west-1"
        assert settings.draw_interval_seconds == 30
        assert settings.log_level == "DEBUG"

    def test_test_mode_shortens_interval(self):
        with mock.patch.dict(os.environ, {"GIVEAWAY_TEST": "true"}, clear=True):
            assert read_runtime_settings().draw_interval_seconds == 60

    def test_non_positive_interval_uses_default(self):
        with mock.patch.dict(os.environ, {"DRAW_INTERVAL_SECONDS": "0"}, clear=True):
            settings = read_runtime_settings()
        assert settings.draw_interval_seconds == DEFAULT_DRAW_INTERVAL_SECONDS


class TestFairnessDefaults:
    def test_without_overrides(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            assert read_fairness_defaults() == FairnessConfig()

    def test_with_overrides(self):
        env = {"FAIRNESS_P": "25", "FAIRNESS_RATIO_CAP": "3", "FAIRNESS_BETA": "1.5"}
        with mock.patch.dict(os.environ, env, clear=True):
            config = read_fairness_defaults()

        assert config.points_divisor == 25
        assert config.ratio_cap == 3.0
        assert config.beta == 1.5

    def test_out_of_range_override_raises(self):
        with mock.patch.dict(os.environ, {"FAIRNESS_EPSILON": "-1"}, clear=True):
            with pytest.raises(InvalidConfigError):
                read_fairness_defaults()
