from .keys import canonicalize, key_kind, make_key, pair_key
from .response_cache import CacheEntry, CacheMetrics, ResponseCache

__all__ = [
    "CacheEntry",
    "CacheMetrics",
    "ResponseCache",
    "canonicalize",
    "key_kind",
    "make_key",
    "pair_key",
]
