"""
Error taxonomy of the transaction engine and the API exception handler.

Services raise the typed errors below; they are DRF ``APIException``
subclasses so the project-wide handler can render them without each
view translating them.  Database failures that escape a service are
reported as infrastructure errors, distinct from the taxonomy.
"""
from __future__ import annotations

import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException, PermissionDenied, ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler, set_rollback

logger = logging.getLogger(__name__)


class DomainError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'request rejected'
    default_code = 'domain_error'


class ValidationError(DomainError):
    """Malformed input: bad time range, non-positive amount, unknown value."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'invalid input'
    default_code = 'validation_error'


class AuthorizationError(DomainError):
    """The actor's role or ownership does not allow the operation."""
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'not allowed'
    default_code = 'authorization_error'


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'not found'
    default_code = 'not_found'


class ConflictError(DomainError):
    """A contention rule was violated (double booking, occupied bed, stock)."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'resource conflict'
    default_code = 'conflict'


class InsufficientStockError(ConflictError):
    default_detail = 'insufficient stock'
    default_code = 'insufficient_stock'

    def __init__(self, medication_id, requested: int, available: int):
        self.medication_id = medication_id
        self.requested = requested
        self.available = available
        super().__init__(
            f'insufficient stock for medication {medication_id}: requested {requested}, available {available}'
        )


class IllegalStateTransitionError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'illegal state transition'
    default_code = 'illegal_transition'

    def __init__(self, entity: str, current: str, target: str, message: str | None = None):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(message or f'{entity} cannot move from {current} to {target}')


def api_exception_handler(exc, context):
    if isinstance(exc, DatabaseError):
        set_rollback()
        logger.exception('database failure in %s', context.get('view'))
        return Response(
            {'ok': False, 'error': {'code': 'infrastructure_error', 'message': 'storage unavailable'}},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    resp = drf_exception_handler(exc, context)
    if resp is None:
        set_rollback()
        logger.exception('unhandled error in %s', context.get('view'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'internal error'}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    if isinstance(exc, DomainError):
        code = exc.default_code
    elif isinstance(exc, DRFValidationError):
        code = ValidationError.default_code
    elif isinstance(exc, PermissionDenied):
        code = AuthorizationError.default_code
    else:
        code = getattr(exc, 'default_code', 'api_error')
    return Response({'ok': False, 'error': {'code': code, 'message': detail}}, status=resp.status_code)
