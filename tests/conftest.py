"""Pytest configuration and shared fakes for quote feed tests."""

import random
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set

import pytest

from quotefeed.cache.catalog import CategoryCatalogCache
from quotefeed.cache.content_pool import ContentPoolCache
from quotefeed.cache.invalidation import InvalidationHook
from quotefeed.cache.overlay import UserOverlayCache
from quotefeed.cache.store import InMemoryCacheStore
from quotefeed.core.config import FeedConfig
from quotefeed.data.records import CategoryRecord, SystemItemRecord, UserItemRecord, user_item_id
from quotefeed.data.store import StoreUnavailableError
from quotefeed.feed.assembler import FeedAssembler


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFeedStore:
    """
    In-memory stand-in for SqlFeedStore.

    Every read is counted in `calls`; names listed in `failing` raise
    StoreUnavailableError instead of answering.
    """

    def __init__(self):
        self.categories: List[CategoryRecord] = []
        self.system_items: List[SystemItemRecord] = []
        self.user_items: List[UserItemRecord] = []
        self.user_names: Dict[int, str] = {}
        self.likes: Set[tuple] = set()
        self.dislikes: Set[tuple] = set()
        self.saved: Set[tuple] = set()
        self.calls: Counter = Counter()
        self.failing: Set[str] = set()

    def _call(self, name: str) -> None:
        self.calls[name] += 1
        if name in self.failing:
            raise StoreUnavailableError(f"{name} failed")

    # ── seeding helpers ─────────────────────────────────────────────────

    def add_category(self, category_id: str, name: str, icon: str = "💡") -> None:
        self.categories.append(CategoryRecord(id=category_id, name=name, icon=icon))

    def add_system_item(self, item_id: str, category_id: Optional[str] = None,
                        text: Optional[str] = None, author: str = "Anonymous") -> None:
        self.system_items.append(SystemItemRecord(
            id=item_id, text=text or f"System quote {item_id}", author=author, category_id=category_id
        ))

    def add_user_item(self, row_id: int, creator_id: int, category_id: Optional[str] = None,
                      is_public: bool = True, text: Optional[str] = None) -> str:
        item_id = user_item_id(row_id)
        self.user_items.append(UserItemRecord(
            id=item_id, text=text or f"User quote {row_id}", author="Me",
            creator_id=creator_id, category_id=category_id, is_public=is_public,
        ))
        return item_id

    # ── CategoryStore ───────────────────────────────────────────────────

    async def find_categories(self) -> List[CategoryRecord]:
        self._call("find_categories")
        return sorted(self.categories, key=lambda c: c.name)

    async def count_items_by_category(self) -> Dict[str, int]:
        self._call("count_items_by_category")
        return dict(Counter(i.category_id for i in self.system_items if i.category_id is not None))

    # ── ContentStore ────────────────────────────────────────────────────

    async def find_system_items(self, category_ids: Optional[Sequence[str]] = None) -> List[SystemItemRecord]:
        self._call("find_system_items")
        return [i for i in self.system_items if category_ids is None or i.category_id in category_ids]

    async def find_public_user_items(self, category_ids: Optional[Sequence[str]] = None) -> List[UserItemRecord]:
        self._call("find_public_user_items")
        return [
            i for i in self.user_items
            if i.is_public and (category_ids is None or i.category_id in category_ids)
        ]

    # ── EngagementStore ─────────────────────────────────────────────────

    async def count_likes_by_item(self) -> Dict[str, int]:
        self._call("count_likes_by_item")
        return dict(Counter(item_id for _, item_id in self.likes))

    async def count_dislikes_by_item(self) -> Dict[str, int]:
        self._call("count_dislikes_by_item")
        return dict(Counter(item_id for _, item_id in self.dislikes))

    async def find_liked_item_ids(self, user_id: int) -> Set[str]:
        self._call("find_liked_item_ids")
        return {item_id for uid, item_id in self.likes if uid == user_id}

    async def find_saved_item_ids(self, user_id: int) -> Set[str]:
        self._call("find_saved_item_ids")
        return {item_id for uid, item_id in self.saved if uid == user_id}

    # ── UserDirectory ───────────────────────────────────────────────────

    async def find_user_names(self, user_ids: Iterable[int]) -> Dict[int, str]:
        self._call("find_user_names")
        return {uid: self.user_names[uid] for uid in user_ids if uid in self.user_names}

    # ── writes used by the mutation scenarios ───────────────────────────

    async def like(self, user_id: int, item_id: str) -> bool:
        self.dislikes.discard((user_id, item_id))
        if (user_id, item_id) in self.likes:
            return False
        self.likes.add((user_id, item_id))
        return True

    async def save(self, user_id: int, item_id: str) -> bool:
        if (user_id, item_id) in self.saved:
            return False
        self.saved.add((user_id, item_id))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_store(clock):
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def fake_store():
    store = FakeFeedStore()
    store.add_category("1", "Wisdom", "🦉")
    store.add_category("2", "Humor", "😄")
    store.add_category("3", "Love", "❤️")
    store.user_names = {7: "Ada", 8: "Grace"}
    return store


@pytest.fixture
def config():
    return FeedConfig()


@pytest.fixture
def catalog(cache_store, fake_store, config):
    return CategoryCatalogCache(cache_store, fake_store, config.catalog_ttl_seconds)


@pytest.fixture
def content_pool(cache_store, fake_store, catalog, config):
    return ContentPoolCache(
        cache_store,
        content_store=fake_store,
        engagement_store=fake_store,
        user_directory=fake_store,
        catalog=catalog,
        ttl_seconds=config.pool_ttl_seconds,
        rng=random.Random(42),
    )


@pytest.fixture
def user_overlay(cache_store, fake_store, config):
    return UserOverlayCache(cache_store, fake_store, config.overlay_ttl_seconds)


@pytest.fixture
def invalidation(content_pool, user_overlay):
    return InvalidationHook(content_pool, user_overlay)


@pytest.fixture
def assembler(catalog, content_pool, user_overlay, config):
    return FeedAssembler(catalog, content_pool, user_overlay, config)
