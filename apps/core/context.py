"""
Request Context Management (Async-Safe)
Uses contextvars instead of threading.local for async compatibility
"""

from contextvars import ContextVar

# Context variables (async-safe)
current_identity_var: ContextVar = ContextVar('current_identity', default=None)
client_ip_var: ContextVar = ContextVar('client_ip', default=None)


def get_current_identity():
    """Get the ResolvedIdentity memoized for this request, if any."""
    return current_identity_var.get()


def set_current_identity(identity) -> None:
    current_identity_var.set(identity)


def get_client_ip():
    """Get client IP from context."""
    return client_ip_var.get()


def set_client_ip(ip: str) -> None:
    """Set client IP in context."""
    client_ip_var.set(ip)


def clear_context() -> None:
    """
    Clear all context variables.
    Called at the end of each request so an identity never outlives its actor.
    """
    set_current_identity(None)
    set_client_ip(None)
