from slowapi import Limiter
from slowapi.util import get_remote_address

from cookshare.settings import settings

# Shared by main.py (app.state + 429 handler) and per-route decorators
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
)
