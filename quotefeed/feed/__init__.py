"""
Feed assembly and service wiring.
"""
from quotefeed.feed.assembler import FeedAssembler, FeedRequest, FeedResult
from quotefeed.feed.services import FeedServices, build_services

__all__ = ["FeedAssembler", "FeedRequest", "FeedResult", "FeedServices", "build_services"]
