"""
api/limiter.py -- Shared slowapi rate limiter instance (per client IP).

This is the coarse outer throttle on POST /auth/login. It caps how fast one
IP can hit the endpoint at all, across every email it tries. The per-email
brute-force lockout lives in auth/ratelimit.py and is independent of this.

Import this in both api/main.py (to mount as middleware) and the route
modules (to apply per-route limits with @limiter.limit()). A single shared
instance means all routes share one in-memory counter store.

IP_RATE_LIMIT_ENABLED=false turns the throttle off (tests, or deployments
where a reverse proxy already throttles).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().ip_rate_limit_enabled,
)
