"""
api/limiter.py -- slowapi rate limiter construction.

create_app() builds one Limiter per application and stores it on
app.state.limiter, where SlowAPIMiddleware looks for it. Route limits are
attached while the app's routers are assembled (see
api.routes.auth.build_login_router), so every app enforces the limits from its
own Settings and keeps its own in-memory counters.

The routes that carry a limit and the middleware must share the same Limiter
instance. Two instances means two counter stores, and limits would never
trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address


def build_limiter() -> Limiter:
    return Limiter(key_func=get_remote_address, storage_uri="memory://")
