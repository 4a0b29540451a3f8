"""
Cache helpers for the pick'em API

Cached routes return plain dicts (not Response objects) so they can be
pickled by any Flask-Caching backend. Keys start with a model name so a
recompute can drop every entry derived from that model.
"""

import functools

from flask import current_app, request

from pickem import cache


def make_cache_key(key_prefix):
    """Build a key from the prefix, the path and the sorted query string"""
    query = "&".join(f"{k}={v}" for k, v in sorted(request.args.items(multi=True)))
    return f"{key_prefix}:{request.path}?{query}"


def cached_route(timeout=300, key_prefix="view"):
    """
    Cache a view's return value per path and query string.

    Args:
        timeout: Seconds to keep the entry
        key_prefix: Leading key component, normally the model the view reads
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = make_cache_key(key_prefix)

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit: {cache_key}")
                return result

            result = f(*args, **kwargs)
            cache.set(cache_key, result, timeout=timeout)
            return result

        return wrapped

    return decorator


def _redis_client():
    backend = getattr(cache, "cache", None)
    return getattr(backend, "_write_client", None)


def invalidate_cache_pattern(pattern):
    """
    Drop cache entries whose key matches ``pattern`` (glob style).

    Redis deletes only the matching keys; backends that cannot list keys
    are cleared completely.
    """
    client = _redis_client()

    try:
        if client is not None:
            key_prefix = current_app.config.get("CACHE_KEY_PREFIX", "")
            deleted = 0
            for key in client.scan_iter(match=f"{key_prefix}{pattern}"):
                client.delete(key)
                deleted += 1
            current_app.logger.info(f"Cache invalidated {deleted} keys for {pattern}")
        else:
            cache.clear()
            current_app.logger.info(f"Cache cleared for pattern: {pattern}")
    except Exception as e:
        # a stale cache entry expires on its own
        current_app.logger.error(f"Failed to invalidate cache for {pattern}: {e}")


def invalidate_model_cache(model_name):
    """Drop every cached response built from ``model_name``"""
    invalidate_cache_pattern(f"{model_name}*")
