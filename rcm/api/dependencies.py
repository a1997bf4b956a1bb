"""Request-scoped collaborators taken from the application state."""
from typing import Optional

from fastapi import Request

from rcm.services.audit import AuditSink, default_audit_sink
from rcm.utils.cache import Cache


def get_cache(request: Request) -> Optional[Cache]:
    """Posting stats cache; None when the app runs without Redis."""
    return getattr(request.app.state, "cache", None)


def get_audit_sink(request: Request) -> AuditSink:
    return getattr(request.app.state, "audit_sink", None) or default_audit_sink
