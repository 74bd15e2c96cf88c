"""
Category catalog cache: category name, icon and system item count.
"""
from typing import Dict, List, Tuple

from quotefeed.cache.base import TimedCache, gather_strict
from quotefeed.cache.policy import NAMESPACE_CATALOG
from quotefeed.cache.store import CacheStore
from quotefeed.data.records import CategoryMeta
from quotefeed.data.store import CategoryStore


class CategoryCatalogCache(TimedCache):
    """Long-lived cache of the full category list, ordered by name."""

    namespace = NAMESPACE_CATALOG

    def __init__(self, store: CacheStore, category_store: CategoryStore, ttl_seconds: float,
                 coalesce_rebuilds: bool = False):
        super().__init__(store, ttl_seconds, coalesce_rebuilds)
        self.category_store = category_store

    async def get(self) -> List[CategoryMeta]:
        entry = await self._get_or_build(self._key(), self._build)
        return list(entry.payload)

    async def get_map(self) -> Dict[str, CategoryMeta]:
        return {c.id: c for c in await self.get()}

    async def _build(self) -> Tuple[Tuple[CategoryMeta, ...], int]:
        categories, counts = await gather_strict(
            self.category_store.find_categories(),
            self.category_store.count_items_by_category(),
        )
        catalog = tuple(
            CategoryMeta(id=c.id, name=c.name, icon=c.icon, count=counts.get(c.id, 0))
            for c in categories
        )
        return catalog, len(catalog)
