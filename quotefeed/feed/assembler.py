"""
Feed assembler: turns one feed request into a response envelope.

Flow per request:
  1. category names -> filter key (catalog lookup only when names were given)
  2. page from the content pool for that key
  3. overlay for the caller (authenticated requests only)
  4. merge flags onto the page, build pagination, pick Cache-Control
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from quotefeed.cache.base import gather_strict
from quotefeed.cache.catalog import CategoryCatalogCache
from quotefeed.cache.content_pool import ContentPoolCache
from quotefeed.cache.filter_key import ALL_FILTER_KEY, ALL_CATEGORIES_NAME, filter_key_for_names
from quotefeed.cache.overlay import UserOverlayCache, merge_overlay
from quotefeed.core.config import FeedConfig
from quotefeed.utils.logger import get_logger

logger = get_logger("feed.assembler")


@dataclass
class FeedRequest:
    category_names: Sequence[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: int = 0
    user_id: Optional[int] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


@dataclass
class FeedResult:
    quotes: List[Dict[str, Any]]
    pagination: Optional[Dict[str, Any]]
    cache_control: str
    filter_key: str = ALL_FILTER_KEY

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"quotes": self.quotes}
        if self.pagination is not None:
            body["pagination"] = self.pagination
        return body


class FeedAssembler:
    """Orchestrates the catalog, content pool and overlay caches for one request."""

    def __init__(
        self,
        catalog: CategoryCatalogCache,
        content_pool: ContentPoolCache,
        user_overlay: UserOverlayCache,
        config: FeedConfig,
    ):
        self.catalog = catalog
        self.content_pool = content_pool
        self.user_overlay = user_overlay
        self.config = config

    def clamp_limit(self, limit: Optional[int]) -> int:
        """None -> default page size, above max -> max, 0 stays 0 (whole pool)."""
        if limit is None:
            return self.config.default_limit
        return max(0, min(limit, self.config.max_limit))

    async def resolve_filter_key(self, category_names: Sequence[str]) -> str:
        names = [n for n in category_names if n and n.strip() and n.strip() != ALL_CATEGORIES_NAME]
        if not names:
            return ALL_FILTER_KEY
        return filter_key_for_names(names, await self.catalog.get())

    async def assemble(self, request: FeedRequest) -> FeedResult:
        """
        Build the feed page for request.

        Store failures raised while rebuilding any cache propagate unchanged;
        nothing is cached for a failed rebuild.
        """
        filter_key = await self.resolve_filter_key(request.category_names)
        limit = self.clamp_limit(request.limit)
        offset = max(request.offset or 0, 0)

        if request.is_authenticated:
            page, overlay = await gather_strict(
                self.content_pool.get(filter_key, limit, offset),
                self.user_overlay.get(request.user_id),
            )
        else:
            page = await self.content_pool.get(filter_key, limit, offset)
            overlay = None

        quotes = merge_overlay(page.items, overlay, request.user_id)

        pagination = None
        if limit != 0:
            pagination = {
                "total": page.total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < page.total,
            }

        cache_control = (
            self.config.authenticated_cache_control
            if request.is_authenticated
            else self.config.anonymous_cache_control
        )
        logger.debug(
            f"Feed {filter_key} offset={offset} limit={limit}: {len(quotes)}/{page.total} items"
        )
        return FeedResult(quotes=quotes, pagination=pagination, cache_control=cache_control,
                          filter_key=filter_key)
