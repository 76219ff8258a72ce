"""
api/limiter.py -- Shared slowapi Limiter instance.

Imported by api/main.py (attached to app.state.limiter) and by route modules
that need per-route limits (login, magic-link generation and redemption).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Tests set limiter.enabled = False so repeated logins in one module do not
trip the per-IP counters.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

# Per-route limits.
LOGIN_LIMIT = "10/minute"
TOKEN_LIMIT = "20/minute"
