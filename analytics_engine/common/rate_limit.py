"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance imported by the analytics router
for per-endpoint limits, and wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from analytics_engine.config import settings

# Snapshot recomputation is CPU-bound; limit per client IP.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.ANALYTICS_RATE_LIMIT],
)
