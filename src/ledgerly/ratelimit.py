"""Rate limiting for unauthenticated endpoints (in-memory, per process)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
