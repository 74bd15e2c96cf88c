"""
Feed caching policy: what gets cached, for how long, and who invalidates it.

The relational database is always the source of truth. Every cache below is
a read-through cache owned by the process that built it.
"""

# ────────────────────────────────────────────────────────────────────────────
# Cache Policy Table
# ────────────────────────────────────────────────────────────────────────────
#
# Data                  | Key                    | TTL     | Invalidated by
# ----------------------+------------------------+---------+-------------------------------
# Category catalog      | catalog                | 10 min  | TTL only
# Content pool          | pool:{filter_key}      | 2 min   | any user-quote create/update/
#                       |                        |         | delete/visibility change
#                       |                        |         | (clears every filter key)
# User overlay          | overlay:{user_id}      | 30 sec  | that user's like/unlike/
#                       |                        |         | dislike/undislike/save/unsave
#
# ────────────────────────────────────────────────────────────────────────────
# Consistency Expectations
# ────────────────────────────────────────────────────────────────────────────
#
# - A content pool is shuffled once per rebuild. Every page read during its
#   lifetime slices the same order, so paging never repeats or skips items.
# - Like/dislike counts inside a pool may lag by up to the pool TTL; they are
#   refreshed on the next rebuild, not on each engagement write.
# - After an invalidation call returns, the next read in the same process
#   rebuilds from the database.
# - With the in-memory backend each process owns its caches: an invalidation
#   on one instance leaves other instances stale for at most their TTL.
#   The redis backend shares entries (and invalidations) across instances.
# - A failed rebuild never writes an entry. Zero counts are only defaulted
#   per item for items with no engagement rows.

# TTL constants (seconds), overridable through FeedConfig and env vars
DEFAULT_TTL_CATALOG = 600           # 10 minutes
DEFAULT_TTL_POOL = 120              # 2 minutes
DEFAULT_TTL_OVERLAY = 30            # 30 seconds

# Key namespaces
NAMESPACE_CATALOG = "catalog"
NAMESPACE_POOL = "pool"
NAMESPACE_OVERLAY = "overlay"

# Extra lifetime given to redis keys beyond the logical TTL; freshness is
# still decided by the entry timestamp
REDIS_EXPIRY_GRACE_SECONDS = 5
