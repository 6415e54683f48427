"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware, stored on app.state) and by
api/routes/oauth.py (per-route limits with @limiter.limit()). One shared
instance means one shared counter store; separate instances would each count
in isolation and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
