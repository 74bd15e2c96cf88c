"""
Core settings for the quote feed service.
"""
from quotefeed.core.config import FeedConfig, get_config, set_config

__all__ = ["FeedConfig", "get_config", "set_config"]
