"""
Request middleware: correlation ids and per-request context reset.

Identity resolution itself happens in the DRF layer (see ``viewsets``),
after DRF authentication has run.
"""

import logging
import re

from .context import clear_context, set_client_ip
from .logging import (
    CORRELATION_HEADER,
    new_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

_VALID_CORRELATION_ID = re.compile(r'^[A-Za-z0-9._-]{1,128}$')


class CorrelationIdMiddleware:
    """Reads or generates ``X-Correlation-ID`` and echoes it on the response."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        incoming = request.headers.get(CORRELATION_HEADER, '')
        correlation_id = incoming if _VALID_CORRELATION_ID.match(incoming) else new_correlation_id()
        set_correlation_id(correlation_id)
        request.correlation_id = correlation_id
        try:
            response = self.get_response(request)
        finally:
            set_correlation_id(None)
        response[CORRELATION_HEADER] = correlation_id
        return response


class RequestContextMiddleware:
    """Seeds request-scoped context vars and clears them on the way out."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        clear_context()
        set_client_ip(self.get_client_ip(request))
        try:
            return self.get_response(request)
        finally:
            clear_context()

    @staticmethod
    def get_client_ip(request):
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
