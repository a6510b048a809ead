"""Shared rate limiter for the Callgate admin endpoints.

The Limiter instance is shared between:
  - callgate/admin/router.py  (route decorators)
  - callgate/main.py          (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Default rate limit for admin mutation endpoints
ADMIN_MUTATION_RATE_LIMIT = "30/minute"
