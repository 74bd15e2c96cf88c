"""
Endpoint tests for the quote feed API.

Each test runs against a fresh SQLite file seeded through a synchronous
engine; the app itself talks to it through aiosqlite.
"""

import random

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from quotefeed.api.server import create_app
from quotefeed.cache.store import InMemoryCacheStore
from quotefeed.core.config import FeedConfig
from quotefeed.data.database import Base
from quotefeed.data.models import Category, Quote, User, UserDislike, UserLike, UserQuote
from quotefeed.data.store import StoreUnavailableError

AUTHOR = {"X-User-Id": "7"}
OTHER = {"X-User-Id": "8"}


@pytest.fixture
def db_path(tmp_path):
    """SQLite file with 2 categories, 4 system quotes and 2 user quotes (1 public)."""
    path = tmp_path / "quotefeed-test.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        session.add_all([
            Category(id=1, name="Wisdom", icon="🦉"),
            Category(id=2, name="Humor", icon="😄"),
            User(id=7, name="Ada"),
            User(id=8, name="Grace"),
            Quote(id=1, text="Know thyself.", author="Socrates", category_id=1),
            Quote(id=2, text="The unexamined life is not worth living.", author="Socrates", category_id=1),
            Quote(id=3, text="Well begun is half done.", author="Aristotle", category_id=1),
            Quote(id=4, text="I am so clever that sometimes I don't understand a word I am saying.",
                  author="Oscar Wilde", category_id=2),
            UserQuote(id=1, user_id=8, text="Laughter is cheaper than therapy.", author="Grace",
                      category_id=2, is_public=True),
            UserQuote(id=2, user_id=8, text="A private thought, kept to myself.", author="Grace",
                      category_id=2, is_public=False),
        ])
        session.commit()
    engine.dispose()
    return path


@pytest.fixture
def client(db_path):
    config = FeedConfig(database_url=f"sqlite+aiosqlite:///{db_path}")
    app = create_app(config, cache_store=InMemoryCacheStore(), rng=random.Random(0))
    with TestClient(app) as c:
        yield c


def _count(db_path, model, **filters):
    engine = create_engine(f"sqlite:///{db_path}")
    with Session(engine) as session:
        stmt = select(func.count()).select_from(model).filter_by(**filters)
        count = session.execute(stmt).scalar_one()
    engine.dispose()
    return count


def _feed(client, headers=None, **params):
    response = client.get("/api/quotes", params=params, headers=headers or {})
    assert response.status_code == 200
    return response


# ── Health and categories ────────────────────────────────────────────────

class TestReadEndpoints:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "online"
        assert data["cache_backend"] == "memory"
        assert "hits" in data["cache"]

    def test_categories(self, client):
        response = client.get("/api/categories")

        assert response.status_code == 200
        data = response.json()
        assert data["totalCategories"] == 2
        counts = {c["name"]: c["count"] for c in data["categories"]}
        assert counts == {"Humor": 1, "Wisdom": 3}
        assert response.headers["cache-control"] == "private, max-age=300"
        assert "X-User-Id" not in response.headers.get("vary", "")

    def test_anonymous_feed(self, client):
        response = _feed(client, limit=10)
        data = response.json()

        assert data["pagination"] == {"total": 5, "limit": 10, "offset": 0, "hasMore": False}
        assert response.headers["cache-control"] == "public, max-age=60, stale-while-revalidate=120"
        ids = {q["id"] for q in data["quotes"]}
        assert ids == {"1", "2", "3", "4", "user_1"}
        user_quote = next(q for q in data["quotes"] if q["id"] == "user_1")
        assert user_quote["quote_type"] == "user"
        assert user_quote["creator_id"] == 8
        assert user_quote["creator_name"] == "Grace"
        assert all(not q["is_liked"] and not q["is_saved"] for q in data["quotes"])

    def test_authenticated_feed_is_private(self, client):
        response = _feed(client, headers=AUTHOR, limit=10)
        assert response.headers["cache-control"] == "private, max-age=30, stale-while-revalidate=60"

    def test_filter_by_category_name(self, client):
        data = _feed(client, categories="Wisdom", limit=10).json()

        assert data["pagination"]["total"] == 3
        for quote in data["quotes"]:
            assert quote["category"] == "Wisdom"
            assert quote["quote_type"] == "regular"
            assert quote["creator_id"] is None

    def test_unknown_category_means_no_filter(self, client):
        data = _feed(client, categories="Nonexistent", limit=10).json()
        assert data["pagination"]["total"] == 5

    def test_limit_zero_has_no_pagination(self, client):
        data = _feed(client, limit=0).json()
        assert "pagination" not in data
        assert len(data["quotes"]) == 5

    def test_pages_are_consistent(self, client):
        full = [q["id"] for q in _feed(client, limit=0).json()["quotes"]]
        first = _feed(client, limit=2, offset=0).json()
        second = _feed(client, limit=2, offset=2).json()

        assert [q["id"] for q in first["quotes"] + second["quotes"]] == full[:4]
        assert first["pagination"]["hasMore"] is True

    def test_negative_offset_rejected(self, client):
        assert client.get("/api/quotes", params={"offset": -1}).status_code == 422

    def test_store_failure_is_generic_500(self, client, monkeypatch):
        async def unavailable(category_ids=None):
            raise StoreUnavailableError("find_system_items failed")

        monkeypatch.setattr(client.app.state.services.store, "find_system_items", unavailable)

        response = client.get("/api/quotes", params={"limit": 5})

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
        assert not [k for k in client.app.state.services.cache_store.keys() if k.startswith("pool:")]


# ── Engagement mutations ─────────────────────────────────────────────────

class TestEngagement:
    def test_requires_user(self, client):
        response = client.post("/api/user/likes", json={"quoteId": "1"})
        assert response.status_code == 401

    def test_requires_quote_id(self, client):
        response = client.post("/api/user/likes", json={}, headers=AUTHOR)
        assert response.status_code == 422

    def test_like_visible_on_next_read(self, client):
        before = _feed(client, headers=AUTHOR, limit=10).json()
        assert not any(q["is_liked"] for q in before["quotes"])

        response = client.post("/api/user/likes", json={"quoteId": "1"}, headers=AUTHOR)
        assert response.status_code == 200
        assert response.json()["changed"] is True

        after = _feed(client, headers=AUTHOR, limit=10).json()
        liked = {q["id"] for q in after["quotes"] if q["is_liked"]}
        assert liked == {"1"}

        other = _feed(client, headers=OTHER, limit=10).json()
        assert not any(q["is_liked"] for q in other["quotes"])

    def test_like_is_idempotent(self, client, db_path):
        client.post("/api/user/likes", json={"quoteId": "1"}, headers=AUTHOR)
        response = client.post("/api/user/likes", json={"quoteId": "1"}, headers=AUTHOR)

        assert response.json() == {"message": "Quote already liked", "quoteId": "1", "changed": False}
        assert _count(db_path, UserLike, user_id=7, quote_id="1") == 1

    def test_like_and_dislike_are_exclusive(self, client, db_path):
        client.post("/api/user/dislikes", json={"quoteId": "2"}, headers=AUTHOR)
        assert _count(db_path, UserDislike, user_id=7, quote_id="2") == 1

        client.post("/api/user/likes", json={"quoteId": "2"}, headers=AUTHOR)
        assert _count(db_path, UserDislike, user_id=7, quote_id="2") == 0
        assert _count(db_path, UserLike, user_id=7, quote_id="2") == 1

        client.post("/api/user/dislikes", json={"quoteId": "2"}, headers=AUTHOR)
        assert _count(db_path, UserLike, user_id=7, quote_id="2") == 0

    def test_unlike(self, client):
        client.post("/api/user/likes", json={"quoteId": "user_1"}, headers=AUTHOR)
        _feed(client, headers=AUTHOR, limit=10)

        response = client.request("DELETE", "/api/user/likes", json={"quoteId": "user_1"}, headers=AUTHOR)
        assert response.json()["changed"] is True

        data = _feed(client, headers=AUTHOR, limit=10).json()
        assert not any(q["is_liked"] for q in data["quotes"])

    def test_save_and_unsave(self, client):
        client.post("/api/user/saved", json={"quoteId": "3"}, headers=AUTHOR)
        saved = {q["id"] for q in _feed(client, headers=AUTHOR, limit=10).json()["quotes"] if q["is_saved"]}
        assert saved == {"3"}

        client.request("DELETE", "/api/user/saved", json={"quoteId": "3"}, headers=AUTHOR)
        saved = {q["id"] for q in _feed(client, headers=AUTHOR, limit=10).json()["quotes"] if q["is_saved"]}
        assert saved == set()

    def test_undislike_of_missing_row_is_noop(self, client):
        response = client.request("DELETE", "/api/user/dislikes", json={"quoteId": "4"}, headers=AUTHOR)
        assert response.status_code == 200
        assert response.json()["changed"] is False


# ── Engaged lists ────────────────────────────────────────────────────────

class TestEngagedLists:
    def test_requires_user(self, client):
        for path in ("/api/user/likes", "/api/user/dislikes", "/api/user/saved"):
            assert client.get(path).status_code == 401

    def test_liked_list_is_most_recent_first(self, client):
        client.post("/api/user/likes", json={"quoteId": "1"}, headers=AUTHOR)
        client.post("/api/user/likes", json={"quoteId": "user_1"}, headers=AUTHOR)

        quotes = client.get("/api/user/likes", headers=AUTHOR).json()["quotes"]

        assert [q["id"] for q in quotes] == ["user_1", "1"]
        assert quotes[0]["quote_type"] == "user"
        assert quotes[0]["creator_name"] == "Grace"
        assert quotes[0]["category"] == "Humor"
        assert quotes[1]["quote_type"] == "regular"
        assert quotes[1]["category"] == "Wisdom"
        assert client.get("/api/user/likes", headers=OTHER).json() == {"quotes": []}

    def test_disliked_and_saved_lists(self, client):
        client.post("/api/user/dislikes", json={"quoteId": "4"}, headers=AUTHOR)
        client.post("/api/user/saved", json={"quoteId": "3"}, headers=AUTHOR)

        disliked = client.get("/api/user/dislikes", headers=AUTHOR).json()["quotes"]
        saved = client.get("/api/user/saved", headers=AUTHOR).json()["quotes"]

        assert [q["id"] for q in disliked] == ["4"]
        assert [q["id"] for q in saved] == ["3"]
        assert saved[0]["author"] == "Aristotle"

    def test_list_follows_unlike(self, client):
        client.post("/api/user/likes", json={"quoteId": "2"}, headers=AUTHOR)
        client.post("/api/user/dislikes", json={"quoteId": "2"}, headers=AUTHOR)

        assert client.get("/api/user/likes", headers=AUTHOR).json() == {"quotes": []}
        assert [q["id"] for q in client.get("/api/user/dislikes", headers=AUTHOR).json()["quotes"]] == ["2"]

    def test_private_quote_listed_only_for_its_owner(self, client):
        client.post("/api/user/saved", json={"quoteId": "user_2"}, headers=AUTHOR)
        client.post("/api/user/saved", json={"quoteId": "user_2"}, headers=OTHER)

        assert client.get("/api/user/saved", headers=AUTHOR).json() == {"quotes": []}
        mine = client.get("/api/user/saved", headers=OTHER).json()["quotes"]
        assert [q["id"] for q in mine] == ["user_2"]

    def test_unresolvable_ids_are_skipped(self, client):
        client.post("/api/user/saved", json={"quoteId": "999"}, headers=AUTHOR)
        client.post("/api/user/saved", json={"quoteId": "garbage"}, headers=AUTHOR)
        client.post("/api/user/saved", json={"quoteId": "1"}, headers=AUTHOR)

        saved = client.get("/api/user/saved", headers=AUTHOR).json()["quotes"]
        assert [q["id"] for q in saved] == ["1"]


# ── User-authored quotes ─────────────────────────────────────────────────

class TestUserQuotes:
    def test_create_public_quote_appears_in_feed(self, client):
        assert _feed(client, limit=10).json()["pagination"]["total"] == 5

        response = client.post(
            "/api/user/quotes",
            json={"text": "  Ship it, then make it better.  ", "categoryId": "1", "isPublic": True},
            headers=AUTHOR,
        )
        assert response.status_code == 201
        quote = response.json()["quote"]
        assert quote["text"] == "Ship it, then make it better."
        assert quote["author"] == "Me"
        assert quote["category"] == "Wisdom"

        data = _feed(client, headers=AUTHOR, limit=10).json()
        assert data["pagination"]["total"] == 6
        mine = next(q for q in data["quotes"] if q["id"] == quote["id"])
        assert mine["is_own_quote"] is True
        assert mine["creator_name"] == "Ada"

    def test_create_private_quote_stays_out_of_feed(self, client):
        client.post("/api/user/quotes", json={"text": "Just for me to read later."}, headers=AUTHOR)
        assert _feed(client, limit=10).json()["pagination"]["total"] == 5

    @pytest.mark.parametrize("text", ["", "   ", "too short", "x" * 501])
    def test_create_rejects_bad_text(self, client, text):
        response = client.post("/api/user/quotes", json={"text": text}, headers=AUTHOR)
        assert response.status_code == 400

    def test_create_requires_user(self, client):
        response = client.post("/api/user/quotes", json={"text": "A perfectly fine quote."})
        assert response.status_code == 401

    def test_list_includes_private(self, client):
        data = client.get("/api/user/quotes", headers=OTHER).json()
        assert {q["id"] for q in data["quotes"]} == {"user_1", "user_2"}
        assert client.get("/api/user/quotes", headers=AUTHOR).json() == {"quotes": []}

    def test_visibility_change_updates_feed(self, client):
        assert _feed(client, limit=10).json()["pagination"]["total"] == 5

        response = client.patch("/api/user/quotes/user_2", json={"isPublic": True}, headers=OTHER)
        assert response.status_code == 200
        assert response.json()["quote"]["is_public"] is True
        assert _feed(client, limit=10).json()["pagination"]["total"] == 6

        client.patch("/api/user/quotes/user_1", json={"isPublic": False}, headers=OTHER)
        client.patch("/api/user/quotes/user_2", json={"isPublic": False}, headers=OTHER)
        assert _feed(client, limit=10).json()["pagination"]["total"] == 4

    def test_update_text_shows_in_feed(self, client):
        _feed(client, limit=10)
        client.patch("/api/user/quotes/user_1", json={"text": "Laughter is still cheaper."}, headers=OTHER)

        data = _feed(client, limit=10).json()
        assert next(q for q in data["quotes"] if q["id"] == "user_1")["text"] == "Laughter is still cheaper."

    def test_update_requires_owner(self, client):
        response = client.patch("/api/user/quotes/user_1", json={"isPublic": False}, headers=AUTHOR)
        assert response.status_code == 404
        assert _feed(client, limit=10).json()["pagination"]["total"] == 5

    def test_update_with_nothing_to_change(self, client):
        response = client.patch("/api/user/quotes/user_1", json={}, headers=OTHER)
        assert response.status_code == 400

    def test_delete_removes_quote_and_its_engagement(self, client, db_path):
        client.post("/api/user/likes", json={"quoteId": "user_1"}, headers=AUTHOR)
        assert _feed(client, limit=10).json()["pagination"]["total"] == 5

        response = client.delete("/api/user/quotes/user_1", headers=OTHER)
        assert response.status_code == 200

        assert _feed(client, limit=10).json()["pagination"]["total"] == 4
        assert _count(db_path, UserQuote, id=1) == 0
        assert _count(db_path, UserLike, quote_id="user_1") == 0
        assert client.delete("/api/user/quotes/user_1", headers=OTHER).status_code == 404

    def test_delete_missing(self, client):
        assert client.delete("/api/user/quotes/user_999", headers=OTHER).status_code == 404
        assert client.delete("/api/user/quotes/garbage", headers=OTHER).status_code == 404

    def test_get_own_quote(self, client):
        response = client.get("/api/user/quotes/user_2", headers=OTHER)

        assert response.status_code == 200
        quote = response.json()["quote"]
        assert quote["id"] == "user_2"
        assert quote["is_public"] is False
        assert quote["category"] == "Humor"

    def test_get_quote_of_another_user_is_missing(self, client):
        assert client.get("/api/user/quotes/user_1", headers=AUTHOR).status_code == 404
        assert client.get("/api/user/quotes/garbage", headers=OTHER).status_code == 404
        assert client.get("/api/user/quotes/user_1").status_code == 401

    def test_create_rejects_non_numeric_category(self, client, db_path):
        response = client.post(
            "/api/user/quotes",
            json={"text": "a valid quote text", "categoryId": "abc"},
            headers=AUTHOR,
        )
        assert response.status_code == 400
        assert _count(db_path, UserQuote, user_id=7) == 0

    def test_update_rejects_non_numeric_category(self, client):
        response = client.patch("/api/user/quotes/user_1", json={"categoryId": "abc"}, headers=OTHER)
        assert response.status_code == 400
        assert client.get("/api/user/quotes/user_1", headers=OTHER).json()["quote"]["category_id"] == "2"

    def test_update_can_clear_category(self, client):
        response = client.patch("/api/user/quotes/user_1", json={"categoryId": ""}, headers=OTHER)
        assert response.status_code == 200
        assert response.json()["quote"]["category_id"] is None

    def test_put_updates_like_patch(self, client):
        _feed(client, limit=10)
        response = client.put("/api/user/quotes/user_1", json={"text": "Laughter, replaced wholesale."},
                              headers=OTHER)
        assert response.status_code == 200
        assert response.json()["quote"]["is_public"] is True

        data = _feed(client, limit=10).json()
        assert next(q for q in data["quotes"] if q["id"] == "user_1")["text"] == "Laughter, replaced wholesale."
