"""
Tests for the user overlay cache and flag merging.
"""

import pytest

from quotefeed.cache.overlay import UserEngagementIndex, merge_overlay
from quotefeed.data.store import StoreUnavailableError


@pytest.mark.asyncio
async def test_overlay_holds_liked_and_saved_ids(user_overlay, fake_store):
    fake_store.likes |= {(7, "1"), (7, "user_2"), (8, "3")}
    fake_store.saved |= {(7, "3")}

    overlay = await user_overlay.get(7)

    assert overlay == UserEngagementIndex(liked=frozenset({"1", "user_2"}), saved=frozenset({"3"}))


@pytest.mark.asyncio
async def test_overlay_cached_until_ttl(user_overlay, fake_store, clock):
    await user_overlay.get(7)
    await user_overlay.get(7)
    assert fake_store.calls["find_liked_item_ids"] == 1

    clock.advance(user_overlay.ttl_seconds)
    await user_overlay.get(7)
    assert fake_store.calls["find_liked_item_ids"] == 2


@pytest.mark.asyncio
async def test_overlays_are_per_user(user_overlay, fake_store):
    fake_store.likes.add((7, "1"))

    assert "1" in (await user_overlay.get(7)).liked
    assert "1" not in (await user_overlay.get(8)).liked


@pytest.mark.asyncio
async def test_invalidate_drops_only_that_user(user_overlay, fake_store, cache_store):
    await user_overlay.get(7)
    await user_overlay.get(8)

    assert await user_overlay.invalidate(7) is True

    assert "overlay:7" not in cache_store.keys()
    assert "overlay:8" in cache_store.keys()


@pytest.mark.asyncio
async def test_stale_overlay_until_invalidated(user_overlay, fake_store):
    await user_overlay.get(7)
    fake_store.likes.add((7, "1"))
    assert "1" not in (await user_overlay.get(7)).liked

    await user_overlay.invalidate(7)
    assert "1" in (await user_overlay.get(7)).liked


@pytest.mark.asyncio
async def test_failed_lookup_caches_nothing(user_overlay, fake_store, cache_store):
    fake_store.failing.add("find_saved_item_ids")

    with pytest.raises(StoreUnavailableError):
        await user_overlay.get(7)
    assert "overlay:7" not in cache_store.keys()


class TestMergeOverlay:
    @pytest.mark.asyncio
    async def test_flags_follow_overlay(self, content_pool, fake_store):
        fake_store.add_system_item("1", category_id="1")
        fake_store.add_system_item("2", category_id="1")
        own = fake_store.add_user_item(3, creator_id=7)
        other = fake_store.add_user_item(4, creator_id=8)
        page = await content_pool.get("all", limit=0)
        overlay = UserEngagementIndex(liked=frozenset({"1"}), saved=frozenset({"1", own}))

        views = {v["id"]: v for v in merge_overlay(page.items, overlay, user_id=7)}

        assert (views["1"]["is_liked"], views["1"]["is_saved"]) == (True, True)
        assert (views["2"]["is_liked"], views["2"]["is_saved"]) == (False, False)
        assert views[own]["is_own_quote"] is True
        assert views[own]["is_saved"] is True
        assert views[other]["is_own_quote"] is False
        assert views["1"]["is_own_quote"] is False

    @pytest.mark.asyncio
    async def test_anonymous_gets_all_false(self, content_pool, fake_store):
        fake_store.add_system_item("1", category_id="1")
        fake_store.add_user_item(3, creator_id=7)
        page = await content_pool.get("all", limit=0)

        views = merge_overlay(page.items, None)

        assert views
        for view in views:
            assert view["is_liked"] is False
            assert view["is_saved"] is False
            assert view["is_own_quote"] is False

    @pytest.mark.asyncio
    async def test_view_fields(self, content_pool, fake_store):
        fake_store.add_system_item("1", category_id="1", text="Know thyself.", author="Socrates")
        page = await content_pool.get("all", limit=0)

        view = merge_overlay(page.items, None)[0]

        assert view == {
            "id": "1",
            "text": "Know thyself.",
            "author": "Socrates",
            "category": "Wisdom",
            "category_icon": "🦉",
            "category_id": "1",
            "likes_count": 0,
            "dislikes_count": 0,
            "quote_type": "regular",
            "creator_id": None,
            "creator_name": None,
            "is_liked": False,
            "is_saved": False,
            "is_own_quote": False,
        }
