"""
Wiring of the caches, the invalidation hook and the assembler.

Everything is built once at startup around one CacheStore and handed to
request handlers by reference.
"""
import random
from dataclasses import dataclass
from typing import Optional

from quotefeed.cache.catalog import CategoryCatalogCache
from quotefeed.cache.content_pool import ContentPoolCache
from quotefeed.cache.invalidation import InvalidationHook
from quotefeed.cache.overlay import UserOverlayCache
from quotefeed.cache.store import CacheStore, create_cache_store
from quotefeed.core.config import FeedConfig
from quotefeed.data.store import SqlFeedStore
from quotefeed.feed.assembler import FeedAssembler


@dataclass
class FeedServices:
    config: FeedConfig
    store: SqlFeedStore
    cache_store: CacheStore
    catalog: CategoryCatalogCache
    content_pool: ContentPoolCache
    user_overlay: UserOverlayCache
    invalidation: InvalidationHook
    assembler: FeedAssembler


def build_services(
    config: FeedConfig,
    store: SqlFeedStore,
    cache_store: Optional[CacheStore] = None,
    rng: Optional[random.Random] = None,
) -> FeedServices:
    """Construct the feed caches over store. cache_store defaults to the configured backend."""
    if cache_store is None:
        cache_store = create_cache_store(config.cache_backend, config.redis_url)

    catalog = CategoryCatalogCache(
        cache_store, store, config.catalog_ttl_seconds, config.coalesce_rebuilds
    )
    content_pool = ContentPoolCache(
        cache_store,
        content_store=store,
        engagement_store=store,
        user_directory=store,
        catalog=catalog,
        ttl_seconds=config.pool_ttl_seconds,
        coalesce_rebuilds=config.coalesce_rebuilds,
        rng=rng,
    )
    user_overlay = UserOverlayCache(
        cache_store, store, config.overlay_ttl_seconds, config.coalesce_rebuilds
    )
    return FeedServices(
        config=config,
        store=store,
        cache_store=cache_store,
        catalog=catalog,
        content_pool=content_pool,
        user_overlay=user_overlay,
        invalidation=InvalidationHook(content_pool, user_overlay),
        assembler=FeedAssembler(catalog, content_pool, user_overlay, config),
    )
