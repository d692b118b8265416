"""
Custom Exception Handler and tenant-policy exceptions for DRF
"""

from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    NotAuthenticated,
    PermissionDenied,
    Throttled,
    ValidationError,
)
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
import logging

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security.audit")

GENERIC_PERMISSION_MESSAGE = "You do not have permission to perform this action."


# =============================================================================
# TENANT POLICY EXCEPTIONS
# =============================================================================

class TenantPolicyError(APIException):
    """
    Base for access-control failures. ``reason`` is the stable code clients
    branch on; it defaults to ``default_code``.
    """

    reason = None

    def __init__(self, detail=None, code=None, reason=None, details=None):
        super().__init__(detail=detail, code=code)
        self.reason = reason or self.reason or self.default_code
        self.details = details or {}


class Unauthenticated(NotAuthenticated):
    default_detail = "Please sign in."
    default_code = "unauthenticated"
    reason = "unauthenticated"


class ForbiddenCrossTenantWrite(TenantPolicyError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = GENERIC_PERMISSION_MESSAGE
    default_code = "forbidden_cross_tenant_write"


class InsufficientRole(TenantPolicyError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = GENERIC_PERMISSION_MESSAGE
    default_code = "insufficient_role"


class TenantMismatch(TenantPolicyError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The referenced record belongs to a different organization."
    default_code = "tenant_mismatch"


class MissingTenantContext(TenantPolicyError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Select an organization first."
    default_code = "missing_tenant_context"


class InvalidMutation(TenantPolicyError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "This change is not allowed."
    default_code = "invalid_mutation"


class PartialCascadeFailure(TenantPolicyError):
    """Rows were deleted but some stored files are still pending removal."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Deleted, but some files could not be removed and were queued for cleanup."
    default_code = "partial_cascade_failure"

    def __init__(self, pending_paths, deleted=None):
        self.pending_paths = list(pending_paths)
        self.deleted = deleted or {}
        super().__init__(details={
            'pending_files': len(self.pending_paths),
            'deleted': self.deleted,
        })


# =============================================================================
# HANDLER
# =============================================================================

def custom_exception_handler(exc, context):
    """
    Custom exception handler that provides consistent error responses.
    """
    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    if response is not None:
        _log_security_event(exc, context, response.status_code)
        details = response.data if isinstance(response.data, dict) else {'detail': response.data}
        extra = getattr(exc, 'details', None)
        if extra:
            details = {**details, **extra}
        response.data = {
            'success': False,
            'error': {
                'code': response.status_code,
                'reason': get_error_reason(exc),
                'message': get_error_message(details),
                'details': details,
            }
        }
        return response

    # Handle Django ValidationError
    if isinstance(exc, DjangoValidationError):
        logger.warning("Validation error: %s", exc)
        return Response(
            {
                'success': False,
                'error': {
                    'code': 400,
                    'reason': 'validation_error',
                    'message': 'Validation Error',
                    'details': {'validation_errors': exc.messages if hasattr(exc, 'messages') else [str(exc)]},
                }
            },
            status=status.HTTP_400_BAD_REQUEST
        )

    # Handle 404
    if isinstance(exc, Http404):
        return Response(
            {
                'success': False,
                'error': {
                    'code': 404,
                    'reason': 'not_found',
                    'message': 'Not Found',
                    'details': {'detail': str(exc)},
                }
            },
            status=status.HTTP_404_NOT_FOUND
        )

    # Log unexpected exceptions
    logger.exception("Unexpected error: %s", exc)

    return Response(
        {
            'success': False,
            'error': {
                'code': 500,
                'reason': 'server_error',
                'message': 'Internal Server Error',
                'details': {'detail': 'An unexpected error occurred.'},
            }
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def _log_security_event(exc, context, status_code):
    if status_code not in (401, 403, 429):
        return

    request = context.get("request")
    if request is None:
        return

    user = getattr(request, "user", None)
    user_id = getattr(user, "id", None) if user and getattr(user, "is_authenticated", False) else None
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        event_type = "auth_failed"
    elif isinstance(exc, (PermissionDenied, TenantPolicyError)):
        event_type = "permission_denied"
    elif isinstance(exc, Throttled):
        event_type = "throttled"
    else:
        event_type = "security_event"

    security_logger.warning(
        "api_security_event type=%s status=%s method=%s path=%s user_id=%s ip=%s reason=%s",
        event_type,
        status_code,
        request.method,
        request.path,
        user_id,
        request.META.get("REMOTE_ADDR"),
        get_error_reason(exc),
        extra={
            'event_type': event_type,
            'user_id': str(user_id) if user_id else None,
            'reason': get_error_reason(exc),
        },
    )


def get_error_reason(exc):
    reason = getattr(exc, 'reason', None)
    if reason:
        return reason
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, APIException):
        return exc.default_code
    return 'error'


def get_error_message(data):
    """Extract a user-friendly error message from response data"""
    if isinstance(data, dict):
        if 'detail' in data:
            return str(data['detail'])
        if 'non_field_errors' in data:
            return str(data['non_field_errors'][0])
        # Get first error message
        for key, value in data.items():
            if isinstance(value, list) and value:
                return f"{key}: {value[0]}"
            elif isinstance(value, str):
                return f"{key}: {value}"
    elif isinstance(data, list) and data:
        return str(data[0])
    return str(data)
