from __future__ import annotations

import logging
from typing import Any

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class CatiError(Exception):
    kind = 'error'
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'CATI operation failed.'

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {'kind': self.kind, 'detail': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class NotFound(CatiError):
    kind = 'not_found'
    http_status = status.HTTP_404_NOT_FOUND
    default_message = 'The requested record does not exist.'


class Forbidden(CatiError):
    kind = 'forbidden'
    http_status = status.HTTP_403_FORBIDDEN
    default_message = 'You are not assigned to this respondent.'


class NoEligibleRespondent(CatiError):
    # An empty queue is a normal state, not a failure.
    kind = 'no_eligible_respondent'
    http_status = status.HTTP_200_OK
    default_message = 'No Pending Respondents'


class TransportFailure(CatiError):
    kind = 'transport_failure'
    http_status = status.HTTP_502_BAD_GATEWAY
    default_message = 'Call initiation failed.'


class ValidationFailure(CatiError):
    kind = 'validation_failure'
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = 'The request payload is invalid.'


class PersistenceInconsistency(CatiError):
    kind = 'persistence_inconsistency'
    default_message = 'Persisted value does not match the value written.'


def cati_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    if isinstance(exc, CatiError):
        return Response(exc.as_payload(), status=exc.http_status)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    logger.exception(
        'Unhandled error in %s', view.__class__.__name__ if view is not None else 'request'
    )
    return Response(
        {'kind': CatiError.kind, 'detail': CatiError.default_message},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
