"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and the route modules
(to apply per-route limits with @limiter.limit()). A single shared instance
keeps one in-memory counter store for the whole app.

The credential endpoints (login, forgot) take their limit from
Settings.login_rate_limit at request time, so tests can raise it through the
environment.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def credential_rate_limit() -> str:
    return get_settings().login_rate_limit
