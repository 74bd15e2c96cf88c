"""
HTTP surface of the quote feed.
"""
