"""
Quote feed service: cached, shuffled, paginated quote discovery feed.
"""

__version__ = "1.0.0"
