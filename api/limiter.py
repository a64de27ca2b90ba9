"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and by the route modules
that apply per-route limits with @limiter.limit(): login, scan, and
verify-code. The decorator goes directly above the def, under @router.*;
above it, FastAPI would register the unlimited function.

A single shared instance keeps one in-memory counter store for every route.
Separate instances per module would each count in isolation and limits would
never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
