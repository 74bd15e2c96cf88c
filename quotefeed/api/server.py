"""
FastAPI server for the quote feed.

Read endpoints go through the feed caches; mutation endpoints write to the
store and then call the matching invalidation hook. The caller is
identified by the X-User-Id header (set by the authenticating proxy);
without it a request is anonymous.
"""
import os
import random
import time
import traceback
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, List, Optional, Union

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from quotefeed import __version__
from quotefeed.api.models import (
    CategoriesResponse,
    CreateUserQuoteRequest,
    EngagedQuotesResponse,
    EngagedQuoteView,
    EngagementRequest,
    EngagementResponse,
    FeedResponse,
    HealthResponse,
    UpdateUserQuoteRequest,
    UserQuoteMutationResponse,
    UserQuoteResponse,
    UserQuoteView,
    UserQuotesResponse,
)
from quotefeed.cache.content_pool import project_item
from quotefeed.cache.filter_key import split_category_param
from quotefeed.cache.store import CacheStore
from quotefeed.core.config import FeedConfig, get_config
from quotefeed.data.database import create_session_factory, create_tables
from quotefeed.data.records import CategoryMeta, SystemItemRecord, UserItemRecord
from quotefeed.data.store import ItemNotFoundError, SqlFeedStore
from quotefeed.feed.assembler import FeedRequest
from quotefeed.feed.services import FeedServices, build_services
from quotefeed.utils.logger import get_logger, set_level

logger = get_logger("api.server")

MIN_QUOTE_LENGTH = 10
MAX_QUOTE_LENGTH = 500
DEFAULT_USER_QUOTE_AUTHOR = "Me"


class LatencyLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every non-OPTIONS request with method, path, status and duration."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)
        t0 = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - t0) * 1000, 1)
        logger.info(
            "[LATENCY] %s %s -> %d  %.1fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response


#
# Dependencies
#

def get_services(request: Request) -> FeedServices:
    return request.app.state.services


def get_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> Optional[int]:
    """Caller's user id, or None for anonymous requests."""
    if x_user_id is None or not x_user_id.strip():
        return None
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")


def require_user_id(user_id: Optional[int] = Depends(get_user_id)) -> int:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _internal_error(where: str, e: Exception) -> HTTPException:
    logger.error(f"Error in {where}: {e}\n{traceback.format_exc()}")
    return HTTPException(status_code=500, detail="Internal server error")


def _validated_text(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Quote text is required")
    if len(text) < MIN_QUOTE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Quote must be at least {MIN_QUOTE_LENGTH} characters")
    if len(text) > MAX_QUOTE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Quote must be at most {MAX_QUOTE_LENGTH} characters")
    return text


def _validated_category_id(category_id: Optional[str]) -> Optional[str]:
    """Numeric category id, or None when absent; anything else is a 400."""
    if category_id is None or not category_id.strip():
        return None
    category_id = category_id.strip()
    if not category_id.isdigit():
        raise HTTPException(status_code=400, detail="Invalid category id")
    return category_id


def _engaged_quote_views(
    records: List[Union[SystemItemRecord, UserItemRecord]],
    categories: Dict[str, CategoryMeta],
    creator_names: Dict[int, str],
) -> List[EngagedQuoteView]:
    views = []
    for record in records:
        item = project_item(record, categories, {}, {}, creator_names)
        views.append(EngagedQuoteView(
            id=item.id,
            text=item.text,
            author=item.author,
            category=item.category,
            category_icon=item.category_icon,
            category_id=item.category_id,
            quote_type=item.quote_type,
            creator_id=item.creator_id,
            creator_name=item.creator_name,
        ))
    return views


def _user_quote_view(record: UserItemRecord, categories: Dict[str, CategoryMeta]) -> UserQuoteView:
    meta = categories.get(record.category_id) if record.category_id else None
    return UserQuoteView(
        id=record.id,
        text=record.text,
        author=record.author,
        category_id=record.category_id,
        category=meta.name if meta else None,
        category_icon=meta.icon if meta else None,
        is_public=record.is_public,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def create_app(
    config: Optional[FeedConfig] = None,
    cache_store: Optional[CacheStore] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """
    Build the feed API.

    The database engine, the cache store and the caches are created in the
    lifespan handler and live on app.state.services until shutdown.
    """
    config = config or get_config()
    set_level(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine, session_factory = create_session_factory(config.database_url)
        await create_tables(engine)
        services = build_services(config, SqlFeedStore(session_factory), cache_store=cache_store, rng=rng)
        app.state.services = services
        logger.info(f"Quote feed ready (cache backend: {services.cache_store.backend})")
        try:
            yield
        finally:
            await services.cache_store.close()
            await engine.dispose()
            logger.info("Quote feed shut down")

    app = FastAPI(
        title="Quote Feed API",
        description="Cached, shuffled and paginated quote discovery feed",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    # Enable CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LatencyLoggingMiddleware)

    #
    # Health
    #

    @app.get("/health", response_model=HealthResponse)
    async def health(services: FeedServices = Depends(get_services)):
        """Health check with cache store statistics."""
        return HealthResponse(
            status="online",
            service="Quote Feed API",
            version=__version__,
            cache_backend=services.cache_store.backend,
            cache=services.cache_store.stats(),
        )

    #
    # Read endpoints
    #

    @app.get("/api/quotes", response_model=FeedResponse, response_model_exclude_unset=True)
    async def get_quotes(
        response: Response,
        categories: Optional[str] = Query(default=None, description="Comma-separated category names; 'All' or absent for no filter"),
        limit: Optional[int] = Query(default=None, ge=0, description="Page size; 0 returns the whole feed without pagination"),
        offset: int = Query(default=0, ge=0),
        user_id: Optional[int] = Depends(get_user_id),
        services: FeedServices = Depends(get_services),
    ):
        """Shuffled quote feed, optionally filtered by category names."""
        try:
            result = await services.assembler.assemble(FeedRequest(
                category_names=split_category_param(categories),
                limit=limit,
                offset=offset,
                user_id=user_id,
            ))
        except Exception as e:
            raise _internal_error("/api/quotes", e)

        response.headers["Cache-Control"] = result.cache_control
        return result.to_dict()

    @app.get("/api/categories", response_model=CategoriesResponse)
    async def get_categories(response: Response, services: FeedServices = Depends(get_services)):
        """All categories with their system quote counts."""
        try:
            categories = await services.catalog.get()
        except Exception as e:
            raise _internal_error("/api/categories", e)

        response.headers["Cache-Control"] = services.config.categories_cache_control
        return CategoriesResponse(
            categories=[c.to_dict() for c in categories],
            totalCategories=len(categories),
        )

    #
    # Engagement mutations (invalidate the caller's overlay)
    #

    async def _engagement(
        services: FeedServices,
        user_id: int,
        body: EngagementRequest,
        write: Callable[[int, str], Awaitable[bool]],
        done_message: str,
        noop_message: str,
    ) -> EngagementResponse:
        try:
            changed = await write(user_id, body.quote_id)
            await services.invalidation.invalidate_user_overlay(user_id)
        except Exception as e:
            raise _internal_error(write.__name__, e)
        return EngagementResponse(
            message=done_message if changed else noop_message,
            quoteId=body.quote_id,
            changed=changed,
        )

    @app.post("/api/user/likes", response_model=EngagementResponse)
    async def like_quote(body: EngagementRequest, user_id: int = Depends(require_user_id),
                         services: FeedServices = Depends(get_services)):
        return await _engagement(services, user_id, body, services.store.like,
                                 "Quote liked", "Quote already liked")

    @app.delete("/api/user/likes", response_model=EngagementResponse)
    async def unlike_quote(body: EngagementRequest, user_id: int = Depends(require_user_id),
                           services: FeedServices = Depends(get_services)):
        return await _engagement(services, user_id, body, services.store.unlike,
                                 "Quote unliked", "Quote was not liked")

    @app.post("/api/user/dislikes", response_model=EngagementResponse)
    async def dislike_quote(body: EngagementRequest, user_id: int = Depends(require_user_id),
                            services: FeedServices = Depends(get_services)):
        return await _engagement(services, user_id, body, services.store.dislike,
                                 "Quote disliked", "Quote already disliked")

    @app.delete("/api/user/dislikes", response_model=EngagementResponse)
    async def undislike_quote(body: EngagementRequest, user_id: int = Depends(require_user_id),
                              services: FeedServices = Depends(get_services)):
        return await _engagement(services, user_id, body, services.store.undislike,
                                 "Dislike removed", "Quote was not disliked")

    @app.post("/api/user/saved", response_model=EngagementResponse)
    async def save_quote(body: EngagementRequest, user_id: int = Depends(require_user_id),
                         services: FeedServices = Depends(get_services)):
        return await _engagement(services, user_id, body, services.store.save,
                                 "Quote saved", "Quote already saved")

    @app.delete("/api/user/saved", response_model=EngagementResponse)
    async def unsave_quote(body: EngagementRequest, user_id: int = Depends(require_user_id),
                           services: FeedServices = Depends(get_services)):
        return await _engagement(services, user_id, body, services.store.unsave,
                                 "Quote removed from saved", "Quote was not saved")

    #
    # Engaged lists (read straight from the store)
    #

    async def _engaged_list(
        services: FeedServices,
        user_id: int,
        read: Callable[[int], Awaitable[List[Union[SystemItemRecord, UserItemRecord]]]],
    ) -> EngagedQuotesResponse:
        try:
            records = await read(user_id)
            categories = await services.catalog.get_map()
            creator_names = await services.store.find_user_names(
                r.creator_id for r in records if isinstance(r, UserItemRecord)
            )
        except Exception as e:
            raise _internal_error(read.__name__, e)
        return EngagedQuotesResponse(quotes=_engaged_quote_views(records, categories, creator_names))

    @app.get("/api/user/likes", response_model=EngagedQuotesResponse)
    async def list_liked_quotes(user_id: int = Depends(require_user_id),
                                services: FeedServices = Depends(get_services)):
        """Quotes the caller liked, most recent first."""
        return await _engaged_list(services, user_id, services.store.find_liked_items)

    @app.get("/api/user/dislikes", response_model=EngagedQuotesResponse)
    async def list_disliked_quotes(user_id: int = Depends(require_user_id),
                                   services: FeedServices = Depends(get_services)):
        return await _engaged_list(services, user_id, services.store.find_disliked_items)

    @app.get("/api/user/saved", response_model=EngagedQuotesResponse)
    async def list_saved_quotes(user_id: int = Depends(require_user_id),
                                services: FeedServices = Depends(get_services)):
        return await _engaged_list(services, user_id, services.store.find_saved_items)

    #
    # User-authored quotes (invalidate every content pool)
    #

    @app.get("/api/user/quotes", response_model=UserQuotesResponse)
    async def list_user_quotes(user_id: int = Depends(require_user_id),
                               services: FeedServices = Depends(get_services)):
        """The caller's own quotes, public and private. Read straight from the store."""
        try:
            records = await services.store.find_user_quotes(user_id)
            categories = await services.catalog.get_map()
        except Exception as e:
            raise _internal_error("/api/user/quotes", e)
        return UserQuotesResponse(quotes=[_user_quote_view(r, categories) for r in records])

    @app.get("/api/user/quotes/{quote_id}", response_model=UserQuoteResponse)
    async def get_user_quote(quote_id: str, user_id: int = Depends(require_user_id),
                             services: FeedServices = Depends(get_services)):
        """One of the caller's own quotes; other users' quotes are reported as missing."""
        try:
            record = await services.store.find_user_quote(user_id, quote_id)
        except ItemNotFoundError:
            raise HTTPException(status_code=404, detail="Quote not found")
        except Exception as e:
            raise _internal_error("GET /api/user/quotes/{id}", e)

        try:
            categories = await services.catalog.get_map()
        except Exception as e:
            raise _internal_error("GET /api/user/quotes/{id}", e)
        return UserQuoteResponse(quote=_user_quote_view(record, categories))

    @app.post("/api/user/quotes", response_model=UserQuoteMutationResponse, status_code=201)
    async def create_user_quote(body: CreateUserQuoteRequest, user_id: int = Depends(require_user_id),
                                services: FeedServices = Depends(get_services)):
        text = _validated_text(body.text)
        author = (body.author or "").strip() or DEFAULT_USER_QUOTE_AUTHOR
        category_id = _validated_category_id(body.category_id)
        try:
            record = await services.store.create_user_quote(
                user_id, text, author, category_id=category_id, is_public=body.is_public
            )
            await services.invalidation.invalidate_content_pool()
            categories = await services.catalog.get_map()
        except Exception as e:
            raise _internal_error("POST /api/user/quotes", e)
        return UserQuoteMutationResponse(
            message="Quote created successfully", quote=_user_quote_view(record, categories)
        )

    @app.api_route("/api/user/quotes/{quote_id}", methods=["PATCH", "PUT"],
                   response_model=UserQuoteMutationResponse)
    async def update_user_quote(quote_id: str, body: UpdateUserQuoteRequest,
                                user_id: int = Depends(require_user_id),
                                services: FeedServices = Depends(get_services)):
        """Partial update; PUT is accepted with the same semantics as PATCH."""
        changes = body.model_dump(exclude_unset=True)
        if "text" in changes:
            changes["text"] = _validated_text(changes["text"])
        if "author" in changes:
            changes["author"] = (changes["author"] or "").strip() or DEFAULT_USER_QUOTE_AUTHOR
        if "category_id" in changes:
            changes["category_id"] = _validated_category_id(changes["category_id"])
        if changes.get("is_public") is None:
            changes.pop("is_public", None)
        if not changes:
            raise HTTPException(status_code=400, detail="No fields to update")

        try:
            record = await services.store.update_user_quote(user_id, quote_id, changes)
        except ItemNotFoundError:
            raise HTTPException(status_code=404, detail="Quote not found")
        except Exception as e:
            raise _internal_error("PATCH /api/user/quotes", e)

        try:
            await services.invalidation.invalidate_content_pool()
            categories = await services.catalog.get_map()
        except Exception as e:
            raise _internal_error("PATCH /api/user/quotes", e)
        return UserQuoteMutationResponse(
            message="Quote updated successfully", quote=_user_quote_view(record, categories)
        )

    @app.delete("/api/user/quotes/{quote_id}", response_model=UserQuoteMutationResponse)
    async def delete_user_quote(quote_id: str, user_id: int = Depends(require_user_id),
                                services: FeedServices = Depends(get_services)):
        try:
            record = await services.store.delete_user_quote(user_id, quote_id)
        except ItemNotFoundError:
            raise HTTPException(status_code=404, detail="Quote not found")
        except Exception as e:
            raise _internal_error("DELETE /api/user/quotes", e)

        try:
            await services.invalidation.invalidate_content_pool()
            categories = await services.catalog.get_map()
        except Exception as e:
            raise _internal_error("DELETE /api/user/quotes", e)
        return UserQuoteMutationResponse(
            message="Quote deleted successfully", quote=_user_quote_view(record, categories)
        )

    return app


app = create_app()


def main():
    """Run the API server."""
    uvicorn.run(
        "quotefeed.api.server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
