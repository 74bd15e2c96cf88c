"""
SQLAlchemy database models.
These are the source of truth for everything the feed caches hold.

- categories     category metadata (name, icon)
- quotes         system-authored items, always visible
- user_quotes    user-authored items, public/private flag
- users          user directory (display names)
- user_likes / user_dislikes / user_saved
                 per-user engagement rows keyed by feed item id
                 ("12" for system items, "user_5" for user items)
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from quotefeed.data.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    icon = Column(String(16), nullable=False, default="💭")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Quote(Base):
    """System-authored quote. Always visible in the feed."""
    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True)
    text = Column(Text, nullable=False)
    author = Column(String(255), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserQuote(Base):
    """User-authored quote. Only public rows are eligible for the feed."""
    __tablename__ = "user_quotes"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    author = Column(String(255), nullable=False, default="Me")
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserLike(Base):
    __tablename__ = "user_likes"
    __table_args__ = (UniqueConstraint("user_id", "quote_id", name="uq_user_likes_user_quote"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    quote_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserDislike(Base):
    __tablename__ = "user_dislikes"
    __table_args__ = (UniqueConstraint("user_id", "quote_id", name="uq_user_dislikes_user_quote"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    quote_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserSaved(Base):
    __tablename__ = "user_saved"
    __table_args__ = (UniqueConstraint("user_id", "quote_id", name="uq_user_saved_user_quote"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    quote_id = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
