"""
Filter keys: the canonical cache key for a requested category selection.

"all" means no filter. Otherwise the key is the sorted, comma-joined set
of category ids, so the same selection in any order hits the same slot.
"""
from typing import Iterable, List, Optional, Sequence

from quotefeed.data.records import CategoryMeta

ALL_FILTER_KEY = "all"
ALL_CATEGORIES_NAME = "All"


def split_category_param(raw: Optional[str]) -> List[str]:
    """Split the comma-separated `categories` query value into names."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def make_filter_key(category_ids: Optional[Iterable[str]]) -> str:
    if category_ids is None:
        return ALL_FILTER_KEY
    ids = sorted(set(category_ids))
    if not ids:
        return ALL_FILTER_KEY
    return ",".join(ids)


def parse_filter_key(filter_key: str) -> Optional[List[str]]:
    """Category ids behind a filter key, or None for no filter."""
    if filter_key == ALL_FILTER_KEY or not filter_key:
        return None
    return filter_key.split(",")


def filter_key_for_names(category_names: Optional[Sequence[str]], categories: Sequence[CategoryMeta]) -> str:
    """
    Resolve requested category names against the catalog.

    "All" entries are ignored, unknown names are dropped silently, and a
    selection with nothing left resolves to "all".
    """
    names = {name.strip() for name in category_names or [] if name and name.strip()}
    names.discard(ALL_CATEGORIES_NAME)
    if not names:
        return ALL_FILTER_KEY
    ids = [c.id for c in categories if c.name in names]
    return make_filter_key(ids)
