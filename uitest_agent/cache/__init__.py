from .backends import CacheBackend, FileCacheBackend, InMemoryCacheBackend, RedisCacheBackend
from .decision_cache import DecisionCache
from .fingerprint import fingerprint, safe_fingerprint


def create_cache_backend(cache_config) -> CacheBackend:
    """Pick the backend named by ``cache_config.type``."""
    cache_type = cache_config.type
    if cache_type == "memory":
        return InMemoryCacheBackend()
    if cache_type == "file":
        return FileCacheBackend(cache_config.path)
    if cache_type == "redis":
        return RedisCacheBackend(cache_config.redis_url, key_prefix=cache_config.key_prefix)
    raise ValueError(f"Unsupported cache type: {cache_type}")


__all__ = [
    "CacheBackend",
    "DecisionCache",
    "FileCacheBackend",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "create_cache_backend",
    "fingerprint",
    "safe_fingerprint",
]
