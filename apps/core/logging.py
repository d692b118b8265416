import uuid
from contextvars import ContextVar
from typing import Optional

from .context import get_current_identity

# Async-safe storage for correlation ID
_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

CORRELATION_HEADER = 'X-Correlation-ID'


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class CorrelationIdFilter:
    """Stamps every record with the request's correlation id and actor."""

    def filter(self, record):
        record.correlation_id = get_correlation_id() or 'unknown'
        identity = get_current_identity()
        record.actor_id = getattr(identity, 'actor_id', None) or '-'
        return True
