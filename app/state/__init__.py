from app.state.store import StateStore
from app.state.rate_limit import RateLimiter
from app.state.response_cache import ResponseCache, derive_cache_key

__all__ = ["StateStore", "RateLimiter", "ResponseCache", "derive_cache_key"]
