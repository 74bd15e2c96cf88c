"""
Pydantic models for quote feed API requests and responses.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuoteView(BaseModel):
    """One feed entry with the caller's flags merged in."""
    id: str
    text: str
    author: str
    category: str
    category_icon: str
    category_id: Optional[str] = None
    likes_count: int = 0
    dislikes_count: int = 0
    quote_type: str = Field(description="'regular' (platform) or 'user' (user-authored)")
    creator_id: Optional[int] = None
    creator_name: Optional[str] = None
    is_liked: bool = False
    is_saved: bool = False
    is_own_quote: bool = False


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class FeedResponse(BaseModel):
    """Response model for the feed. pagination is absent in unpaginated (limit=0) mode."""
    quotes: List[QuoteView]
    pagination: Optional[Pagination] = None


class EngagedQuoteView(BaseModel):
    """An item in one of the caller's liked, disliked or saved lists."""
    id: str
    text: str
    author: str
    category: str
    category_icon: str
    category_id: Optional[str] = None
    quote_type: str
    creator_id: Optional[int] = None
    creator_name: Optional[str] = None


class EngagedQuotesResponse(BaseModel):
    quotes: List[EngagedQuoteView]


class CategoryView(BaseModel):
    id: str
    name: str
    icon: str
    count: int = 0


class CategoriesResponse(BaseModel):
    categories: List[CategoryView]
    totalCategories: int


class EngagementRequest(BaseModel):
    """Body of like/dislike/save mutations."""
    model_config = ConfigDict(populate_by_name=True)

    quote_id: str = Field(alias="quoteId", min_length=1, description="Feed item id ('12' or 'user_5')")


class EngagementResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    quote_id: str = Field(alias="quoteId")
    changed: bool = Field(description="False when the request was a no-op (already in that state)")


class CreateUserQuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    author: Optional[str] = None
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    is_public: bool = Field(default=False, alias="isPublic")


class UpdateUserQuoteRequest(BaseModel):
    """Partial update; only the fields present in the body are changed."""
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    author: Optional[str] = None
    category_id: Optional[str] = Field(default=None, alias="categoryId")
    is_public: Optional[bool] = Field(default=None, alias="isPublic")


class UserQuoteView(BaseModel):
    id: str
    text: str
    author: str
    category_id: Optional[str] = None
    category: Optional[str] = None
    category_icon: Optional[str] = None
    is_public: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserQuotesResponse(BaseModel):
    quotes: List[UserQuoteView]


class UserQuoteResponse(BaseModel):
    quote: UserQuoteView


class UserQuoteMutationResponse(BaseModel):
    message: str
    quote: UserQuoteView


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    service: str
    version: str
    cache_backend: str
    cache: Dict[str, Any] = Field(default_factory=dict)
