"""
Offer catalog cache.

Listings for /api/offers are kept in Redis under a generation number.
Invalidating bumps the generation, so stale listings are never read again
and simply expire; nothing has to scan the keyspace.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask

logger = logging.getLogger(__name__)

Loader = Callable[[], List[Dict[str, Any]]]


def _encode(value: Any) -> str:
    def default(obj: Any) -> Any:
        # Offer discounts are Numeric columns
        if isinstance(obj, Decimal):
            return {"__decimal__": str(obj)}
        raise TypeError(f"Cannot cache {type(obj).__name__}")
    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    def hook(dct: Dict[str, Any]) -> Any:
        if "__decimal__" in dct:
            return Decimal(dct["__decimal__"])
        return dct
    return json.loads(raw, object_hook=hook)


class CatalogCache:
    """
    Cache-aside for offer catalog listings.

    Keys: {prefix}:catalog:{generation}:{listing}. When Redis is disabled or
    unreachable every call goes straight to the loader.
    """

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'proposals'
        self.ttl = 120
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'proposals')
        self.ttl = app.config.get('CACHE_OFFERS_TTL', 120)

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Catalog cache disabled via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        try:
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {redis_url}: {e}. Catalog reads go to the database.")
            return
        self.client = client
        logger.info(f"[CACHE] Catalog cache connected: {redis_url}")

    @property
    def generation_key(self) -> str:
        return f"{self.prefix}:catalog:generation"

    def _listing_key(self, name: str) -> str:
        generation = self.client.get(self.generation_key) or 0
        return f"{self.prefix}:catalog:{generation}:{name}"

    def listing(self, name: str, loader: Loader) -> List[Dict[str, Any]]:
        """Return the cached listing `name`, loading and storing it on a miss."""
        if self.client is None:
            return loader()

        try:
            key = self._listing_key(name)
            raw = self.client.get(key)
        except RedisError as e:
            logger.warning(f"[CACHE] Read of {name} failed: {e}")
            return loader()

        if raw is not None:
            try:
                return _decode(raw)
            except ValueError:
                logger.warning(f"[CACHE] Dropping undecodable entry {key}")

        value = loader()
        try:
            self.client.setex(key, self.ttl, _encode(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write of {name} failed: {e}")
        return value

    def invalidate(self) -> Optional[int]:
        """Start a new generation; returns it, or None when nothing is cached."""
        if self.client is None:
            return None
        try:
            generation = self.client.incr(self.generation_key)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate failed, listings expire in {self.ttl}s: {e}")
            return None
        logger.info(f"[CACHE] Catalog generation is now {generation}")
        return generation


_catalog_cache: Optional[CatalogCache] = None


def init_cache(app: Flask) -> None:
    global _catalog_cache
    _catalog_cache = CatalogCache(app)
    app.extensions['catalog_cache'] = _catalog_cache


def get_cache() -> CatalogCache:
    if _catalog_cache is None:
        raise RuntimeError("Catalog cache not initialized.")
    return _catalog_cache
