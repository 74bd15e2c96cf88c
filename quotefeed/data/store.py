"""
Store layer backed by SQLAlchemy (asyncio).

The caches only depend on the small protocols declared here
(CategoryStore, ContentStore, EngagementStore, UserDirectory).
SqlFeedStore implements all of them, plus the write operations the
mutation endpoints use. Every call opens its own session, so callers may
issue several of them concurrently with asyncio.gather.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Union

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quotefeed.data.models import Category, Quote, User, UserDislike, UserLike, UserQuote, UserSaved
from quotefeed.data.records import (
    USER_ITEM_PREFIX,
    CategoryRecord,
    SystemItemRecord,
    UserItemRecord,
    parse_user_item_id,
    user_item_id,
)
from quotefeed.utils.logger import get_logger

logger = get_logger("data.store")


class StoreUnavailableError(RuntimeError):
    """Raised when an underlying store call fails."""


class ItemNotFoundError(LookupError):
    """Raised when a mutation targets an item that does not exist or is not the caller's."""


class CategoryStore(Protocol):
    async def find_categories(self) -> List[CategoryRecord]: ...

    async def count_items_by_category(self) -> Dict[str, int]: ...


class ContentStore(Protocol):
    async def find_system_items(self, category_ids: Optional[Sequence[str]] = None) -> List[SystemItemRecord]: ...

    async def find_public_user_items(self, category_ids: Optional[Sequence[str]] = None) -> List[UserItemRecord]: ...


class EngagementStore(Protocol):
    async def count_likes_by_item(self) -> Dict[str, int]: ...

    async def count_dislikes_by_item(self) -> Dict[str, int]: ...

    async def find_liked_item_ids(self, user_id: int) -> Set[str]: ...

    async def find_saved_item_ids(self, user_id: int) -> Set[str]: ...


class UserDirectory(Protocol):
    async def find_user_names(self, user_ids: Iterable[int]) -> Dict[int, str]: ...


def _int_ids(category_ids: Sequence[str]) -> List[int]:
    ids = []
    for value in category_ids:
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric category id {value!r}")
    return ids


def _system_item_record(row: Quote) -> SystemItemRecord:
    return SystemItemRecord(
        id=str(row.id),
        text=row.text,
        author=row.author,
        category_id=str(row.category_id) if row.category_id is not None else None,
    )


def _user_item_record(row: UserQuote) -> UserItemRecord:
    return UserItemRecord(
        id=user_item_id(row.id),
        text=row.text,
        author=row.author,
        creator_id=row.user_id,
        category_id=str(row.category_id) if row.category_id is not None else None,
        is_public=bool(row.is_public),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlFeedStore:
    """Relational implementation of every store the feed consumes."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Store call '{operation}' failed: {e}")
            raise StoreUnavailableError(f"{operation} failed") from e

    #
    # Categories
    #

    async def find_categories(self) -> List[CategoryRecord]:
        async with self._session("find_categories") as session:
            result = await session.execute(select(Category).order_by(Category.name))
            return [
                CategoryRecord(id=str(c.id), name=c.name, icon=c.icon)
                for c in result.scalars()
            ]

    async def count_items_by_category(self) -> Dict[str, int]:
        """Number of system items per category id."""
        async with self._session("count_items_by_category") as session:
            result = await session.execute(
                select(Quote.category_id, func.count(Quote.id))
                .where(Quote.category_id.is_not(None))
                .group_by(Quote.category_id)
            )
            return {str(category_id): count for category_id, count in result.all()}

    #
    # Content
    #

    async def find_system_items(self, category_ids: Optional[Sequence[str]] = None) -> List[SystemItemRecord]:
        stmt = select(Quote)
        if category_ids is not None:
            stmt = stmt.where(Quote.category_id.in_(_int_ids(category_ids)))
        async with self._session("find_system_items") as session:
            result = await session.execute(stmt)
            return [_system_item_record(q) for q in result.scalars()]

    async def find_public_user_items(self, category_ids: Optional[Sequence[str]] = None) -> List[UserItemRecord]:
        stmt = select(UserQuote).where(UserQuote.is_public.is_(True))
        if category_ids is not None:
            stmt = stmt.where(UserQuote.category_id.in_(_int_ids(category_ids)))
        async with self._session("find_public_user_items") as session:
            result = await session.execute(stmt)
            return [_user_item_record(row) for row in result.scalars()]

    #
    # Engagement aggregates
    #

    async def _count_by_item(self, model, operation: str) -> Dict[str, int]:
        async with self._session(operation) as session:
            result = await session.execute(
                select(model.quote_id, func.count(model.id)).group_by(model.quote_id)
            )
            return {quote_id: count for quote_id, count in result.all()}

    async def count_likes_by_item(self) -> Dict[str, int]:
        return await self._count_by_item(UserLike, "count_likes_by_item")

    async def count_dislikes_by_item(self) -> Dict[str, int]:
        return await self._count_by_item(UserDislike, "count_dislikes_by_item")

    async def _item_ids_for_user(self, model, user_id: int, operation: str) -> Set[str]:
        async with self._session(operation) as session:
            result = await session.execute(select(model.quote_id).where(model.user_id == user_id))
            return set(result.scalars())

    async def find_liked_item_ids(self, user_id: int) -> Set[str]:
        return await self._item_ids_for_user(UserLike, user_id, "find_liked_item_ids")

    async def find_saved_item_ids(self, user_id: int) -> Set[str]:
        return await self._item_ids_for_user(UserSaved, user_id, "find_saved_item_ids")

    #
    # User directory
    #

    async def find_user_names(self, user_ids: Iterable[int]) -> Dict[int, str]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        async with self._session("find_user_names") as session:
            result = await session.execute(select(User.id, User.name).where(User.id.in_(ids)))
            return {user_id: name for user_id, name in result.all()}

    #
    # Engagement writes
    #

    async def _add_engagement(self, model, user_id: int, item_id: str, operation: str,
                              exclusive_with=None) -> bool:
        """Insert an engagement row. Returns False when it already existed."""
        async with self._session(operation) as session:
            existing = await session.execute(
                select(model.id).where(model.user_id == user_id, model.quote_id == item_id)
            )
            if existing.first() is not None:
                return False
            if exclusive_with is not None:
                await session.execute(
                    delete(exclusive_with).where(
                        exclusive_with.user_id == user_id, exclusive_with.quote_id == item_id
                    )
                )
            session.add(model(user_id=user_id, quote_id=item_id))
            try:
                await session.commit()
            except IntegrityError:
                # Lost a race against an identical insert
                await session.rollback()
                return False
            return True

    async def _remove_engagement(self, model, user_id: int, item_id: str, operation: str) -> bool:
        async with self._session(operation) as session:
            result = await session.execute(
                delete(model).where(model.user_id == user_id, model.quote_id == item_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def like(self, user_id: int, item_id: str) -> bool:
        return await self._add_engagement(UserLike, user_id, item_id, "like", exclusive_with=UserDislike)

    async def unlike(self, user_id: int, item_id: str) -> bool:
        return await self._remove_engagement(UserLike, user_id, item_id, "unlike")

    async def dislike(self, user_id: int, item_id: str) -> bool:
        return await self._add_engagement(UserDislike, user_id, item_id, "dislike", exclusive_with=UserLike)

    async def undislike(self, user_id: int, item_id: str) -> bool:
        return await self._remove_engagement(UserDislike, user_id, item_id, "undislike")

    async def save(self, user_id: int, item_id: str) -> bool:
        return await self._add_engagement(UserSaved, user_id, item_id, "save")

    async def unsave(self, user_id: int, item_id: str) -> bool:
        return await self._remove_engagement(UserSaved, user_id, item_id, "unsave")

    #
    # Engaged items (the caller's likes / dislikes / saved lists)
    #

    async def _engaged_items(self, model, user_id: int,
                             operation: str) -> List[Union[SystemItemRecord, UserItemRecord]]:
        """
        Items the user engaged with through model, most recent first.

        User-authored items are included when public or owned by the user.
        Engagement rows whose item no longer resolves are skipped.
        """
        async with self._session(operation) as session:
            result = await session.execute(
                select(model.quote_id)
                .where(model.user_id == user_id)
                .order_by(model.created_at.desc(), model.id.desc())
            )
            item_ids = list(result.scalars())

            system_ids = [int(i) for i in item_ids if i.isdigit()]
            user_row_ids = [
                row_id for row_id in (
                    parse_user_item_id(i) for i in item_ids if i.startswith(USER_ITEM_PREFIX)
                )
                if row_id is not None
            ]

            records: Dict[str, Union[SystemItemRecord, UserItemRecord]] = {}
            if system_ids:
                rows = await session.execute(select(Quote).where(Quote.id.in_(system_ids)))
                for row in rows.scalars():
                    records[str(row.id)] = _system_item_record(row)
            if user_row_ids:
                rows = await session.execute(
                    select(UserQuote).where(
                        UserQuote.id.in_(user_row_ids),
                        or_(UserQuote.is_public.is_(True), UserQuote.user_id == user_id),
                    )
                )
                for row in rows.scalars():
                    record = _user_item_record(row)
                    records[record.id] = record

        return [records[i] for i in item_ids if i in records]

    async def find_liked_items(self, user_id: int) -> List[Union[SystemItemRecord, UserItemRecord]]:
        return await self._engaged_items(UserLike, user_id, "find_liked_items")

    async def find_disliked_items(self, user_id: int) -> List[Union[SystemItemRecord, UserItemRecord]]:
        return await self._engaged_items(UserDislike, user_id, "find_disliked_items")

    async def find_saved_items(self, user_id: int) -> List[Union[SystemItemRecord, UserItemRecord]]:
        return await self._engaged_items(UserSaved, user_id, "find_saved_items")

    #
    # User-authored items
    #

    async def find_user_quote(self, user_id: int, item_id: str) -> UserItemRecord:
        """One of the caller's own quotes, public or private."""
        async with self._session("find_user_quote") as session:
            return _user_item_record(await self._owned_quote(session, user_id, item_id))

    async def find_user_quotes(self, user_id: int) -> List[UserItemRecord]:
        async with self._session("find_user_quotes") as session:
            result = await session.execute(
                select(UserQuote)
                .where(UserQuote.user_id == user_id)
                .order_by(UserQuote.created_at.desc(), UserQuote.id.desc())
            )
            return [_user_item_record(row) for row in result.scalars()]

    async def create_user_quote(self, user_id: int, text: str, author: str,
                                category_id: Optional[str] = None, is_public: bool = False) -> UserItemRecord:
        async with self._session("create_user_quote") as session:
            row = UserQuote(
                user_id=user_id,
                text=text,
                author=author,
                category_id=int(category_id) if category_id else None,
                is_public=is_public,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _user_item_record(row)

    async def _owned_quote(self, session: AsyncSession, user_id: int, item_id: str) -> UserQuote:
        row_id = parse_user_item_id(item_id)
        row = None
        if row_id is not None:
            result = await session.execute(
                select(UserQuote).where(UserQuote.id == row_id, UserQuote.user_id == user_id)
            )
            row = result.scalar_one_or_none()
        if row is None:
            raise ItemNotFoundError(f"Quote {item_id} not found")
        return row

    async def update_user_quote(self, user_id: int, item_id: str, changes: Mapping[str, Any]) -> UserItemRecord:
        """Apply a partial update (text, author, category_id, is_public) to the caller's quote."""
        async with self._session("update_user_quote") as session:
            row = await self._owned_quote(session, user_id, item_id)
            for field_name, value in changes.items():
                if field_name == "category_id":
                    value = int(value) if value else None
                setattr(row, field_name, value)
            await session.commit()
            await session.refresh(row)
            return _user_item_record(row)

    async def delete_user_quote(self, user_id: int, item_id: str) -> UserItemRecord:
        """Delete the caller's quote together with the engagement rows that point at it."""
        async with self._session("delete_user_quote") as session:
            row = await self._owned_quote(session, user_id, item_id)
            record = _user_item_record(row)
            for model in (UserLike, UserDislike, UserSaved):
                await session.execute(delete(model).where(model.quote_id == record.id))
            await session.delete(row)
            await session.commit()
            return record
