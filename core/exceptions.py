"""
Domain error taxonomy shared by the inventory and restock services.

Errors:
    - ValidationError: bad input shape or range, carries field-level messages
    - NotFoundError: unknown drug, category, form, vendor or restock
    - ConflictError: state transition that is no longer allowed
    - PersistenceError: storage failure after validation passed
"""
import logging
from typing import Dict, List, Optional

from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class ClinicError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    title = 'Server Error'

    def __init__(self, detail: str = ''):
        self.detail = detail or self.title
        super().__init__(self.detail)

    def as_dict(self) -> Dict:
        return {'error': self.title, 'detail': self.detail}


class ValidationError(ClinicError):
    """Raised when request data fails validation. No mutation has happened."""
    status_code = status.HTTP_400_BAD_REQUEST
    title = 'Validation Error'

    def __init__(self, detail: str = '', errors: Optional[Dict[str, List[str]]] = None):
        self.errors = errors or {}
        if not detail and self.errors:
            detail = '; '.join(
                f"{field}: {' '.join(messages)}" for field, messages in self.errors.items()
            )
        super().__init__(detail)

    def as_dict(self) -> Dict:
        data = super().as_dict()
        data['errors'] = self.errors
        return data


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND
    title = 'Not Found'


class ConflictError(ClinicError):
    status_code = status.HTTP_409_CONFLICT
    title = 'Conflict'


class PersistenceError(ClinicError):
    """Storage failure. The caller has to resubmit; nothing retries automatically."""
    title = 'Server Error'

    def __init__(self, detail: str = ''):
        super().__init__(detail or 'An unexpected error occurred, please try again')


def error_response(exc: ClinicError, **extra) -> Response:
    """Render a ClinicError as a DRF response."""
    body = exc.as_dict()
    body.update(extra)
    return Response(body, status=exc.status_code)
