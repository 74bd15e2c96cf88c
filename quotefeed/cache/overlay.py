"""
User overlay cache: which items one user has liked and saved.

Overlays are short-lived and are dropped for a user right after that
user's own engagement writes, so their next read reflects the change.
"""
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from quotefeed.cache.base import TimedCache, gather_strict
from quotefeed.cache.policy import NAMESPACE_OVERLAY
from quotefeed.cache.store import CacheStore
from quotefeed.data.records import QUOTE_TYPE_USER, ContentItem
from quotefeed.data.store import EngagementStore


@dataclass(frozen=True)
class UserEngagementIndex:
    liked: FrozenSet[str] = frozenset()
    saved: FrozenSet[str] = frozenset()


class UserOverlayCache(TimedCache):
    namespace = NAMESPACE_OVERLAY

    def __init__(self, store: CacheStore, engagement_store: EngagementStore, ttl_seconds: float,
                 coalesce_rebuilds: bool = False):
        super().__init__(store, ttl_seconds, coalesce_rebuilds)
        self.engagement_store = engagement_store

    async def get(self, user_id: int) -> UserEngagementIndex:
        entry = await self._get_or_build(self._key(str(user_id)), lambda: self._build(user_id))
        return entry.payload

    async def invalidate(self, user_id: int) -> bool:
        """Drop exactly one user's overlay."""
        self._bump_generation()
        return await self.store.delete(self._key(str(user_id)))

    async def _build(self, user_id: int) -> Tuple[UserEngagementIndex, None]:
        liked, saved = await gather_strict(
            self.engagement_store.find_liked_item_ids(user_id),
            self.engagement_store.find_saved_item_ids(user_id),
        )
        return UserEngagementIndex(liked=frozenset(liked), saved=frozenset(saved)), None


def item_view(item: ContentItem, is_liked: bool = False, is_saved: bool = False,
              is_own_quote: bool = False) -> Dict[str, Any]:
    return {
        "id": item.id,
        "text": item.text,
        "author": item.author,
        "category": item.category,
        "category_icon": item.category_icon,
        "category_id": item.category_id,
        "likes_count": item.likes_count,
        "dislikes_count": item.dislikes_count,
        "quote_type": item.quote_type,
        "creator_id": item.creator_id,
        "creator_name": item.creator_name,
        "is_liked": is_liked,
        "is_saved": is_saved,
        "is_own_quote": is_own_quote,
    }


def merge_overlay(
    items: Sequence[ContentItem],
    overlay: Optional[UserEngagementIndex],
    user_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Attach per-user flags to a page of items.

    Without an overlay (anonymous request) every flag is False.
    """
    if overlay is None or user_id is None:
        return [item_view(item) for item in items]
    return [
        item_view(
            item,
            is_liked=item.id in overlay.liked,
            is_saved=item.id in overlay.saved,
            is_own_quote=item.quote_type == QUOTE_TYPE_USER and item.creator_id == user_id,
        )
        for item in items
    ]
