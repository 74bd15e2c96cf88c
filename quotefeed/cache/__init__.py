"""
Feed caches: category catalog, content pools and per-user overlays.
"""
from quotefeed.cache.catalog import CategoryCatalogCache
from quotefeed.cache.content_pool import ContentPoolCache, PoolPage, project_item
from quotefeed.cache.filter_key import ALL_FILTER_KEY, filter_key_for_names, make_filter_key, parse_filter_key
from quotefeed.cache.invalidation import InvalidationHook
from quotefeed.cache.overlay import UserEngagementIndex, UserOverlayCache, merge_overlay
from quotefeed.cache.store import CacheEntry, CacheStore, InMemoryCacheStore, RedisCacheStore, create_cache_store

__all__ = [
    "ALL_FILTER_KEY",
    "CacheEntry",
    "CacheStore",
    "CategoryCatalogCache",
    "ContentPoolCache",
    "InMemoryCacheStore",
    "InvalidationHook",
    "PoolPage",
    "RedisCacheStore",
    "UserEngagementIndex",
    "UserOverlayCache",
    "create_cache_store",
    "filter_key_for_names",
    "make_filter_key",
    "merge_overlay",
    "parse_filter_key",
    "project_item",
]
