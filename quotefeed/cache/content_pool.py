"""
Content pool cache: the merged, shuffled, paginatable feed for one filter key.

Rebuild (on miss or expiry):
  1. filter key -> category ids (None for "all")
  2. concurrently fetch system items, public user items, the category map,
     like counts and dislike counts
  3. resolve creator names for user items
  4. project every record into a ContentItem
  5. concatenate and shuffle once
  6. store the whole sequence with its length as total

Reads slice the stored sequence, so every page served during one pool
lifetime comes from the same order.
"""
import random
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

from quotefeed.cache.base import TimedCache, gather_strict
from quotefeed.cache.catalog import CategoryCatalogCache
from quotefeed.cache.filter_key import parse_filter_key
from quotefeed.cache.policy import NAMESPACE_POOL
from quotefeed.cache.store import CacheStore
from quotefeed.data.records import (
    CategoryMeta,
    ContentItem,
    SystemItemRecord,
    SystemOrigin,
    UserGeneratedOrigin,
    UserItemRecord,
)
from quotefeed.data.store import ContentStore, EngagementStore, UserDirectory
from quotefeed.utils.logger import get_logger

logger = get_logger("cache.content_pool")

# (name, icon) shown when an item's category cannot be resolved
SYSTEM_FALLBACK_CATEGORY = ("General", "💭")
USER_FALLBACK_CATEGORY = ("Personal", "✨")


@dataclass(frozen=True)
class PoolPage:
    items: List[ContentItem]
    total: int


def project_item(
    record: Union[SystemItemRecord, UserItemRecord],
    categories: Mapping[str, CategoryMeta],
    likes: Mapping[str, int],
    dislikes: Mapping[str, int],
    creator_names: Mapping[int, str],
) -> ContentItem:
    """Map a store record of either origin onto the common ContentItem view."""
    if isinstance(record, UserItemRecord):
        origin = UserGeneratedOrigin(
            creator_id=record.creator_id,
            creator_name=creator_names.get(record.creator_id),
        )
        fallback_name, fallback_icon = USER_FALLBACK_CATEGORY
    else:
        origin = SystemOrigin()
        fallback_name, fallback_icon = SYSTEM_FALLBACK_CATEGORY

    meta = categories.get(record.category_id) if record.category_id is not None else None
    return ContentItem(
        id=record.id,
        text=record.text,
        author=record.author,
        category_id=record.category_id,
        category=meta.name if meta else fallback_name,
        category_icon=meta.icon if meta else fallback_icon,
        likes_count=likes.get(record.id, 0),
        dislikes_count=dislikes.get(record.id, 0),
        origin=origin,
    )


class ContentPoolCache(TimedCache):
    """Per-filter-key pools of projected, shuffled feed items."""

    namespace = NAMESPACE_POOL

    def __init__(
        self,
        store: CacheStore,
        content_store: ContentStore,
        engagement_store: EngagementStore,
        user_directory: UserDirectory,
        catalog: CategoryCatalogCache,
        ttl_seconds: float,
        coalesce_rebuilds: bool = False,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(store, ttl_seconds, coalesce_rebuilds)
        self.content_store = content_store
        self.engagement_store = engagement_store
        self.user_directory = user_directory
        self.catalog = catalog
        self._rng = rng or random.Random()

    async def get(self, filter_key: str, limit: int, offset: int = 0) -> PoolPage:
        """
        Page through the pool for filter_key.

        limit == 0 returns the entire pool (legacy unpaginated mode).
        """
        entry = await self._get_or_build(self._key(filter_key), lambda: self._build(filter_key))
        payload = entry.payload
        if limit == 0:
            return PoolPage(items=list(payload), total=entry.total)
        offset = max(offset, 0)
        return PoolPage(items=list(payload[offset:offset + limit]), total=entry.total)

    async def invalidate_all(self) -> int:
        """Drop the pools of every filter key."""
        self._bump_generation()
        return await self.store.delete_prefix(self._key(""))

    def _key(self, suffix: str = "") -> str:
        # The empty suffix is the prefix shared by every pool key
        return f"{self.namespace}:{suffix}"

    async def _build(self, filter_key: str) -> Tuple[Tuple[ContentItem, ...], int]:
        category_ids = parse_filter_key(filter_key)
        system_items, user_items, categories, likes, dislikes = await gather_strict(
            self.content_store.find_system_items(category_ids),
            self.content_store.find_public_user_items(category_ids),
            self.catalog.get_map(),
            self.engagement_store.count_likes_by_item(),
            self.engagement_store.count_dislikes_by_item(),
        )

        creator_names: Dict[int, str] = {}
        if user_items:
            creator_names = await self.user_directory.find_user_names(
                {record.creator_id for record in user_items}
            )

        items = [
            project_item(record, categories, likes, dislikes, creator_names)
            for record in [*system_items, *user_items]
        ]
        # One uniform permutation per rebuild (Fisher-Yates, in place)
        self._rng.shuffle(items)
        logger.debug(
            f"Pool {filter_key}: {len(system_items)} system + {len(user_items)} user items"
        )
        return tuple(items), len(items)
