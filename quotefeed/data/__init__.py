"""
Data access for the quote feed: ORM models, session factory and stores.
"""
from quotefeed.data.database import Base, create_session_factory, create_tables
from quotefeed.data.store import ItemNotFoundError, SqlFeedStore, StoreUnavailableError

__all__ = [
    "Base",
    "create_session_factory",
    "create_tables",
    "ItemNotFoundError",
    "SqlFeedStore",
    "StoreUnavailableError",
]
