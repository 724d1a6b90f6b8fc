"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

Counters live in process memory and are keyed by client address. There must
be exactly one Limiter: the middleware and the route decorators have to see
the same counters.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def auth_rate_limit() -> str:
    """Limit string for credential endpoints, read from Settings on each check."""
    return get_settings().auth_rate_limit
