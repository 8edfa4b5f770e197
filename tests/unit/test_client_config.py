"""Unit tests for ClientConfig validation and environment loading."""

from __future__ import annotations

import os
from unittest import mock

import pytest
from pydantic import ValidationError

from runwarden.core.errors import (
    ConfigurationError,
    ErrorCode,
    MultipleValidationErrors,
)
from runwarden.core.models.app import (
    ENV_API_BASE_URL,
    ENV_DEFAULT_TIMEZONE,
    ENV_REFRESH_INTERVAL,
    ENV_REQUEST_TIMEOUT,
    ClientConfig,
)

pytestmark = pytest.mark.unit

_ENV_NAMES = (ENV_API_BASE_URL, ENV_REQUEST_TIMEOUT, ENV_REFRESH_INTERVAL, ENV_DEFAULT_TIMEZONE)


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in _ENV_NAMES}


class TestDefaults:
    def test_defaults(self) -> None:
        config = ClientConfig()
        assert config.schedules_url == 'http://localhost:8081/api/schedules'
        assert config.request_timeout_seconds == 10.0
        assert config.refresh_interval_seconds == 30.0
        assert config.min_lead_time_seconds == 60
        assert config.max_custom_interval_days == 365

    def test_trailing_slash_stripped(self) -> None:
        config = ClientConfig(api_base_url='https://svc.example.com/')
        assert config.schedules_url == 'https://svc.example.com/api/schedules'

    def test_frozen(self) -> None:
        config = ClientConfig()
        with pytest.raises(ValidationError):
            config.page_limit = 10  # type: ignore[misc]


class TestValidation:
    def test_non_http_url(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig(api_base_url='ftp://svc')
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID
        assert "api_base_url='ftp://svc'" in exc_info.value.notes

    def test_unknown_timezone(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig(default_timezone='Atlantis/Capital')
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_TIMEZONE

    def test_refresh_shorter_than_timeout(self) -> None:
        with pytest.raises(ConfigurationError, match='refresh_interval_seconds is shorter'):
            ClientConfig(refresh_interval_seconds=5, request_timeout_seconds=10)

    def test_independent_errors_collected(self) -> None:
        with pytest.raises(MultipleValidationErrors) as exc_info:
            ClientConfig(api_base_url='svc', api_prefix='api', default_timezone='Nope/Nope')
        assert len(exc_info.value.report.errors) == 3

    @pytest.mark.parametrize(
        'overrides',
        [
            {'request_timeout_seconds': 0},
            {'refresh_interval_seconds': 0.5},
            {'page_limit': 0},
            {'page_limit': 501},
            {'max_custom_interval_days': 366},
            {'min_lead_time_seconds': -1},
        ],
    )
    def test_field_bounds(self, overrides: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(**overrides)  # type: ignore[arg-type]


class TestFromEnv:
    def test_unset_env_keeps_defaults(self) -> None:
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            assert ClientConfig.from_env() == ClientConfig()

    def test_reads_env(self) -> None:
        env = _clean_env() | {
            ENV_API_BASE_URL: 'https://svc.example.com',
            ENV_REQUEST_TIMEOUT: '5',
            ENV_REFRESH_INTERVAL: ' 120 ',
            ENV_DEFAULT_TIMEZONE: 'Europe/Berlin',
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = ClientConfig.from_env()
        assert config.api_base_url == 'https://svc.example.com'
        assert config.request_timeout_seconds == 5.0
        assert config.refresh_interval_seconds == 120.0
        assert config.default_timezone == 'Europe/Berlin'

    def test_blank_env_ignored(self) -> None:
        env = _clean_env() | {ENV_REQUEST_TIMEOUT: '   '}
        with mock.patch.dict(os.environ, env, clear=True):
            assert ClientConfig.from_env().request_timeout_seconds == 10.0

    def test_overrides_beat_env(self) -> None:
        env = _clean_env() | {ENV_API_BASE_URL: 'https://from-env'}
        with mock.patch.dict(os.environ, env, clear=True):
            config = ClientConfig.from_env(api_base_url='https://from-cli', page_limit=None)
        assert config.api_base_url == 'https://from-cli'
        assert config.page_limit == 50

    def test_bad_number(self) -> None:
        env = _clean_env() | {ENV_REQUEST_TIMEOUT: 'ten'}
        with mock.patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                ClientConfig.from_env()
        assert exc_info.value.message == f'invalid value for {ENV_REQUEST_TIMEOUT}'
