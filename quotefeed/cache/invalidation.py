"""
Invalidation hooks handed to every write path that can make a cache stale.

Call them only after the underlying write has succeeded.
"""
from quotefeed.cache.content_pool import ContentPoolCache
from quotefeed.cache.overlay import UserOverlayCache
from quotefeed.utils.logger import get_logger

logger = get_logger("cache.invalidation")


class InvalidationHook:
    def __init__(self, content_pool: ContentPoolCache, user_overlay: UserOverlayCache):
        self.content_pool = content_pool
        self.user_overlay = user_overlay

    async def invalidate_content_pool(self) -> None:
        """Clear the pools of every filter key (item create/update/delete/visibility change)."""
        removed = await self.content_pool.invalidate_all()
        logger.info(f"Content pool invalidated ({removed} entries dropped)")

    async def invalidate_user_overlay(self, user_id: int) -> None:
        """Clear one user's liked/saved overlay (after that user's engagement write)."""
        removed = await self.user_overlay.invalidate(user_id)
        logger.info(f"Overlay invalidated for user {user_id} (cached={removed})")
