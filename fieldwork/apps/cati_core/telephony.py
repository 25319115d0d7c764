from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from .models import mask_phone_number, normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://s-ct3.sarv.com/v2/clickToCall/para'
DEFAULT_TIMEOUT = 30
DEFAULT_RING_SECONDS = 30

ERROR_STATUSES = frozenset({'error', 'failed', 'failure'})
SUCCESS_CODES = frozenset({0, 200})


@dataclass
class CallInitiationResult:
    success: bool
    call_id: str = ''
    message: str = ''
    error_code: str = ''
    status_code: int | None = None
    details: dict[str, Any] = field(default_factory=dict)


def _telephony_settings() -> dict[str, Any]:
    return getattr(settings, 'CATI_TELEPHONY', {}) or {}


def configured_ring_seconds() -> int:
    return int(_telephony_settings().get('RING_SECONDS') or DEFAULT_RING_SECONDS)


def _coerce_code(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def extract_call_id(payload: dict[str, Any]) -> str:
    for key in ('callId', 'id', 'call_id'):
        value = payload.get(key)
        if value:
            return str(value)
    data = payload.get('data')
    if isinstance(data, dict) and data.get('callId'):
        return str(data['callId'])
    return ''


def extract_error_message(payload: Any, default: str = 'Call initiation failed.') -> str:
    if not isinstance(payload, dict):
        return default
    message = payload.get('message')
    if isinstance(message, str) and message:
        return message
    error = payload.get('error')
    if isinstance(error, dict) and error.get('message'):
        return str(error['message'])
    if isinstance(error, str) and error:
        return error
    return default


class ClickToCallClient:
    """Click-to-call adapter for the DeepCall provider.

    The provider bridges the interviewer's phone (``from``) to the respondent
    (``to``). Every failure shape is folded into a ``CallInitiationResult``;
    transport errors never escape ``initiate_call``.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        user_id: str | None = None,
        token: str | None = None,
        timeout: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        config = _telephony_settings()
        self.base_url = base_url or config.get('BASE_URL') or DEFAULT_BASE_URL
        self.user_id = user_id if user_id is not None else config.get('USER_ID', '')
        self.token = token if token is not None else config.get('TOKEN', '')
        self.timeout = timeout or config.get('TIMEOUT') or DEFAULT_TIMEOUT
        self._session = session or requests.Session()

    def initiate_call(
        self,
        from_number: str,
        to_number: str,
        *,
        from_type: str = 'Number',
        to_type: str = 'Number',
        from_ring_seconds: int = DEFAULT_RING_SECONDS,
        to_ring_seconds: int = DEFAULT_RING_SECONDS,
    ) -> CallInitiationResult:
        from_digits = normalize_phone(from_number)
        to_digits = normalize_phone(to_number)
        if not from_digits or not to_digits:
            return CallInitiationResult(
                success=False,
                message='Both interviewer and respondent numbers are required.',
                error_code='invalid_number',
            )

        params = {
            'user_id': self.user_id,
            'token': self.token,
            'from': from_digits,
            'to': to_digits,
            'fromType': from_type,
            'toType': to_type,
            'fromRingTime': from_ring_seconds,
            'toRingTime': to_ring_seconds,
        }
        logger.info(
            'Initiating call from %s to %s',
            mask_phone_number(from_digits),
            mask_phone_number(to_digits),
        )
        try:
            response = self._session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.Timeout:
            logger.warning('Telephony request timed out after %ss', self.timeout)
            return CallInitiationResult(
                success=False,
                message=f'Call initiation timed out after {self.timeout} seconds.',
                error_code='timeout',
            )
        except requests.RequestException as exc:
            logger.warning('Telephony request failed: %s', exc)
            return CallInitiationResult(success=False, message=str(exc), error_code='transport_error')

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {'data': payload}

        return self._interpret(response.status_code, payload)

    def _interpret(self, http_status: int, payload: dict[str, Any]) -> CallInitiationResult:
        if not 200 <= http_status < 300:
            return CallInitiationResult(
                success=False,
                message=extract_error_message(payload, f'Telephony provider returned HTTP {http_status}.'),
                error_code=str(payload.get('code') or http_status),
                status_code=http_status,
                details=payload,
            )

        provider_status = str(payload.get('status') or '').lower()
        raw_code = next(
            (payload[key] for key in ('code', 'statusCode', 'status_code') if payload.get(key) is not None),
            None,
        )
        code = _coerce_code(raw_code)
        if provider_status in ERROR_STATUSES or (raw_code is not None and code not in SUCCESS_CODES):
            return CallInitiationResult(
                success=False,
                message=extract_error_message(payload),
                error_code=str(raw_code if raw_code is not None else provider_status),
                status_code=http_status,
                details=payload,
            )

        call_id = extract_call_id(payload)
        if not call_id:
            return CallInitiationResult(
                success=False,
                message=extract_error_message(payload, 'Telephony provider did not return a call id.'),
                error_code='missing_call_id',
                status_code=http_status,
                details=payload,
            )
        return CallInitiationResult(success=True, call_id=call_id, status_code=http_status, details=payload)


def get_telephony_adapter() -> Any:
    path = getattr(settings, 'CATI_TELEPHONY_ADAPTER', 'fieldwork.apps.cati_core.telephony.ClickToCallClient')
    return import_string(path)()
