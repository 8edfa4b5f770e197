# runwarden/core/repository/http.py
"""httpx-backed client for the schedule REST service."""

from __future__ import annotations
from typing import Any, Optional, TypeVar
from urllib.parse import quote
import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError
from runwarden.core.errors import (
    ConflictError,
    DomainError,
    ErrorCode,
    InvalidStateError,
    NotFoundError,
    RemoteValidationError,
    ScheduleValidationError,
    TransportError,
)
from runwarden.core.logging import get_logger
from runwarden.core.models.app import ClientConfig
from runwarden.core.models.requests import (
    CreateScheduleRequest,
    RunNowResult,
    ScheduleDetail,
    ScheduleFilters,
    ScheduleListPage,
    ScheduleStats,
    UpdateScheduleRequest,
)
from runwarden.core.models.schedule import Schedule
from runwarden.core.repository.base import ScheduleRepository

logger = get_logger('http')

ModelT = TypeVar('ModelT', bound=BaseModel)

INVALID_STATE_CODES = frozenset({'INVALID_STATE', 'INVALID_STATUS', 'INVALID_TRANSITION'})


def _describe_parse_error(error: Exception) -> str:
    if isinstance(error, PydanticValidationError):
        first = error.errors()[0]
        location = '.'.join(str(p) for p in first['loc'])
        return f'{error.error_count()} validation error(s), first at {location}: {first["msg"]}'
    return str(getattr(error, 'message', error))


def error_from_response(
    response: httpx.Response, schedule_id: Optional[str] = None
) -> DomainError | TransportError:
    """
    Map a non-2xx response to the error taxonomy.

    The JSON `error` field is surfaced verbatim; without it the message
    falls back to `HTTP <status>`.
    """
    status = response.status_code
    message = f'HTTP {status}'
    remote_code: Optional[str] = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if isinstance(body.get('error'), str) and body['error'].strip():
            message = body['error']
        if body.get('code') is not None:
            remote_code = str(body['code'])

    notes = [f'{response.request.method} {response.request.url} -> {status}']
    if remote_code:
        notes.append(f'service code: {remote_code}')

    if status >= 500:
        return TransportError(
            message=message,
            code=ErrorCode.TRANSPORT,
            notes=notes,
            status_code=status,
        )

    common: dict[str, Any] = {
        'message': message,
        'notes': notes,
        'status_code': status,
        'remote_code': remote_code,
        'schedule_id': schedule_id,
    }
    if remote_code is not None and remote_code.upper() in INVALID_STATE_CODES:
        return InvalidStateError(code=ErrorCode.INVALID_STATE, **common)
    match status:
        case 404:
            return NotFoundError(code=ErrorCode.NOT_FOUND, **common)
        case 409:
            return ConflictError(code=ErrorCode.CONFLICT, **common)
        case 400 | 422:
            return RemoteValidationError(code=ErrorCode.REMOTE_VALIDATION, **common)
        case _:
            return DomainError(code=ErrorCode.DOMAIN, **common)


class HttpScheduleRepository(ScheduleRepository):
    """
    REST implementation of ScheduleRepository.

    Endpoints (relative to config.schedules_url):
        POST   ''                 create
        GET    ''                 list (status repeats, suite_id, from_date, to_date, limit, offset)
        GET    '/{id}'            detail + recent runs
        PATCH  '/{id}'            update
        POST   '/{id}/run-now'    run now
        POST   '/{id}/cancel'     cancel
        DELETE '/{id}'            delete
        GET    '/stats/summary'   stats
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or ClientConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.config.request_timeout_seconds,
            headers={'Content-Type': 'application/json'},
        )

    def _url(self, path: str = '') -> str:
        return self.config.schedules_url + path

    @staticmethod
    def _item_path(schedule_id: str, suffix: str = '') -> str:
        return f'/{quote(schedule_id, safe="")}{suffix}'

    async def _request(
        self,
        method: str,
        path: str = '',
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[list[tuple[str, str]]] = None,
        schedule_id: Optional[str] = None,
    ) -> Any:
        url = self._url(path)
        try:
            response = await self._client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f'{method} {url} timed out: {e}')
            raise TransportError(
                message=f'Request timed out after {self.config.request_timeout_seconds:g}s',
                code=ErrorCode.TRANSPORT,
                notes=[f'{method} {url}'],
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f'{method} {url} failed: {e}')
            raise TransportError(
                message=f'Could not reach the schedule service: {e}',
                code=ErrorCode.TRANSPORT,
                notes=[f'{method} {url}'],
                cause=e,
            ) from e

        if not response.is_success:
            error = error_from_response(response, schedule_id)
            logger.debug(f'{method} {url} -> {response.status_code}: {error.message}')
            raise error

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                message='Schedule service returned a non-JSON response',
                code=ErrorCode.TRANSPORT,
                notes=[f'{method} {url} -> {response.status_code}'],
                retryable=False,
                cause=e,
            ) from e

    @staticmethod
    def _parse(model: type[ModelT], data: Any, what: str) -> ModelT:
        try:
            return model.model_validate(data)
        except (PydanticValidationError, ScheduleValidationError) as e:
            raise TransportError(
                message=f'Unexpected {what} payload from the schedule service',
                code=ErrorCode.TRANSPORT,
                notes=[_describe_parse_error(e)],
                retryable=False,
                cause=e,
            ) from e

    @staticmethod
    def _unwrap(body: Any, key: str) -> Any:
        if isinstance(body, dict) and key in body:
            return body[key]
        return body

    @staticmethod
    def _message(body: Any, default: str) -> str:
        if isinstance(body, dict) and body.get('message'):
            return str(body['message'])
        return default

    async def create(self, request: CreateScheduleRequest) -> Schedule:
        body = await self._request('POST', json=request.to_payload())
        schedule = self._parse(Schedule, self._unwrap(body, 'schedule'), 'schedule')
        logger.info(
            f"Created schedule {schedule.id} for suite '{schedule.suite_name or schedule.suite_id}' "
            f'at {schedule.run_at_utc.isoformat()}'
        )
        return schedule

    async def list(self, filters: Optional[ScheduleFilters] = None) -> ScheduleListPage:
        filters = filters or ScheduleFilters(limit=self.config.page_limit)
        body = await self._request('GET', params=filters.to_params())
        return self._parse(ScheduleListPage, body, 'schedule list')

    async def get(self, schedule_id: str) -> ScheduleDetail:
        body = await self._request(
            'GET', self._item_path(schedule_id), schedule_id=schedule_id
        )
        return self._parse(ScheduleDetail, body, 'schedule detail')

    async def update(self, schedule_id: str, request: UpdateScheduleRequest) -> Schedule:
        body = await self._request(
            'PATCH',
            self._item_path(schedule_id),
            json=request.to_payload(),
            schedule_id=schedule_id,
        )
        return self._parse(Schedule, self._unwrap(body, 'schedule'), 'schedule')

    async def run_now(self, schedule_id: str, notes: Optional[str] = None) -> RunNowResult:
        payload = {'notes': notes} if notes else {}
        body = await self._request(
            'POST',
            self._item_path(schedule_id, '/run-now'),
            json=payload,
            schedule_id=schedule_id,
        )
        return self._parse(RunNowResult, body, 'run-now')

    async def cancel(self, schedule_id: str) -> str:
        body = await self._request(
            'POST', self._item_path(schedule_id, '/cancel'), schedule_id=schedule_id
        )
        return self._message(body, 'Schedule canceled')

    async def delete(self, schedule_id: str) -> str:
        body = await self._request(
            'DELETE', self._item_path(schedule_id), schedule_id=schedule_id
        )
        return self._message(body, 'Schedule deleted')

    async def stats(self) -> ScheduleStats:
        body = await self._request('GET', '/stats/summary')
        return self._parse(ScheduleStats, body, 'stats')

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
