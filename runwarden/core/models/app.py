# runwarden/core/models/app.py
from __future__ import annotations
import os
from typing import Optional
from zoneinfo import ZoneInfo
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self
from runwarden.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from runwarden.core.models.schedule import MAX_CUSTOM_INTERVAL_DAYS

ENV_API_BASE_URL = 'RUNWARDEN_API_BASE_URL'
ENV_REQUEST_TIMEOUT = 'RUNWARDEN_REQUEST_TIMEOUT'
ENV_REFRESH_INTERVAL = 'RUNWARDEN_REFRESH_INTERVAL'
ENV_DEFAULT_TIMEZONE = 'RUNWARDEN_DEFAULT_TIMEZONE'


class ClientConfig(BaseModel):
    """
    Settings for talking to the schedule service and driving the coordinator.

    Fields:
        - api_base_url: Service root (the schedules API lives under api_prefix)
        - request_timeout_seconds: Per-request timeout; expiry surfaces as TransportError
        - refresh_interval_seconds: Periodic refresh cadence
        - page_limit: Page size for list refreshes
        - default_timezone: Zone pre-filled into new forms
        - min_lead_time_seconds: Minimum gap between now and a new schedule's run time
        - max_custom_interval_days: Upper bound for custom recurrence intervals
    """

    model_config = ConfigDict(frozen=True)

    api_base_url: str = 'http://localhost:8081'
    api_prefix: str = '/api/schedules'
    request_timeout_seconds: float = Field(default=10.0, ge=1, le=300)
    refresh_interval_seconds: float = Field(default=30.0, ge=1, le=3600)
    page_limit: int = Field(default=50, ge=1, le=500)
    default_timezone: str = 'UTC'
    min_lead_time_seconds: int = Field(default=60, ge=0)
    max_custom_interval_days: int = Field(
        default=MAX_CUSTOM_INTERVAL_DAYS, ge=1, le=MAX_CUSTOM_INTERVAL_DAYS
    )

    @model_validator(mode='after')
    def validate_client_configuration(self) -> Self:
        """Collects all independent errors and raises them together."""
        report = ValidationReport('config')

        if not self.api_base_url.startswith(('http://', 'https://')):
            report.add(
                ConfigurationError(
                    message='api_base_url must be an http(s) URL',
                    code=ErrorCode.CONFIG_INVALID,
                    notes=[f'api_base_url={self.api_base_url!r}'],
                    help_text='e.g. http://localhost:8081',
                )
            )

        if not self.api_prefix.startswith('/'):
            report.add(
                ConfigurationError(
                    message='api_prefix must start with "/"',
                    code=ErrorCode.CONFIG_INVALID,
                    notes=[f'api_prefix={self.api_prefix!r}'],
                )
            )

        try:
            ZoneInfo(self.default_timezone)
        except Exception as e:
            report.add(
                ConfigurationError(
                    message=f"unknown default_timezone '{self.default_timezone}'",
                    code=ErrorCode.CONFIG_INVALID_TIMEZONE,
                    notes=[f'zoneinfo lookup failed: {e}'],
                    help_text='use an IANA zone name such as "UTC" or "Europe/London"',
                )
            )

        if self.refresh_interval_seconds < self.request_timeout_seconds:
            report.add(
                ConfigurationError(
                    message='refresh_interval_seconds is shorter than request_timeout_seconds',
                    code=ErrorCode.CONFIG_INVALID,
                    notes=[
                        f'refresh_interval_seconds={self.refresh_interval_seconds}',
                        f'request_timeout_seconds={self.request_timeout_seconds}',
                    ],
                    help_text='refreshes would pile up behind slow requests; raise the interval',
                )
            )

        raise_collected(report)
        return self

    @property
    def schedules_url(self) -> str:
        return self.api_base_url.rstrip('/') + self.api_prefix

    @classmethod
    def from_env(cls, **overrides: object) -> ClientConfig:
        """Build a config from RUNWARDEN_* environment variables; unset ones keep defaults."""
        values: dict[str, object] = {}
        env_map: dict[str, tuple[str, type]] = {
            ENV_API_BASE_URL: ('api_base_url', str),
            ENV_REQUEST_TIMEOUT: ('request_timeout_seconds', float),
            ENV_REFRESH_INTERVAL: ('refresh_interval_seconds', float),
            ENV_DEFAULT_TIMEZONE: ('default_timezone', str),
        }
        for env_name, (field_name, caster) in env_map.items():
            raw: Optional[str] = os.getenv(env_name)
            if raw is None or raw.strip() == '':
                continue
            try:
                values[field_name] = caster(raw.strip())
            except ValueError as e:
                raise ConfigurationError(
                    message=f'invalid value for {env_name}',
                    code=ErrorCode.CONFIG_INVALID,
                    notes=[f'{env_name}={raw!r}', f'underlying error: {e}'],
                ) from e
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
