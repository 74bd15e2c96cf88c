"""
Plain value types passed between the stores, the caches and the API.

Store records are what the collaborator stores return; ContentItem is the
common view every feed entry is projected into before it enters a cache.
All of them are frozen: a cached value is never patched in place.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

USER_ITEM_PREFIX = "user_"

QUOTE_TYPE_REGULAR = "regular"
QUOTE_TYPE_USER = "user"


def user_item_id(row_id: int) -> str:
    """Feed identifier of a user-authored quote row."""
    return f"{USER_ITEM_PREFIX}{row_id}"


def parse_user_item_id(item_id: str) -> Optional[int]:
    """Row id behind a user item identifier; accepts "user_5" or "5"."""
    raw = item_id[len(USER_ITEM_PREFIX):] if item_id.startswith(USER_ITEM_PREFIX) else item_id
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class CategoryRecord:
    id: str
    name: str
    icon: str


@dataclass(frozen=True)
class CategoryMeta:
    """Category metadata as served by the catalog cache."""
    id: str
    name: str
    icon: str
    count: int = 0

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "icon": self.icon, "count": self.count}


@dataclass(frozen=True)
class SystemItemRecord:
    id: str
    text: str
    author: str
    category_id: Optional[str] = None


@dataclass(frozen=True)
class UserItemRecord:
    id: str
    text: str
    author: str
    creator_id: int
    category_id: Optional[str] = None
    is_public: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SystemOrigin:
    """Item authored by the platform."""


@dataclass(frozen=True)
class UserGeneratedOrigin:
    """Item authored by a user and published to the feed."""
    creator_id: int
    creator_name: Optional[str] = None


Origin = Union[SystemOrigin, UserGeneratedOrigin]


@dataclass(frozen=True)
class ContentItem:
    id: str
    text: str
    author: str
    category_id: Optional[str]
    category: str
    category_icon: str
    likes_count: int
    dislikes_count: int
    origin: Origin

    @property
    def quote_type(self) -> str:
        if isinstance(self.origin, UserGeneratedOrigin):
            return QUOTE_TYPE_USER
        return QUOTE_TYPE_REGULAR

    @property
    def creator_id(self) -> Optional[int]:
        if isinstance(self.origin, UserGeneratedOrigin):
            return self.origin.creator_id
        return None

    @property
    def creator_name(self) -> Optional[str]:
        if isinstance(self.origin, UserGeneratedOrigin):
            return self.origin.creator_name
        return None
