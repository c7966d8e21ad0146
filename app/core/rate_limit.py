from slowapi import Limiter
from slowapi.util import get_remote_address

# Shared limiter; bulk endpoints that fan out over many leads or
# workflows opt in with ``@limiter.limit(...)``.
limiter = Limiter(key_func=get_remote_address)

BULK_RATE_LIMIT = "10/minute"
