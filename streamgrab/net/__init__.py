"""
Network Layer.

This package owns the aiohttp session and the authenticated fetcher used for
manifests, keys and segments.
"""

from .fetcher import FetchResponse, SegmentFetcher, open_session

__all__ = ["FetchResponse", "SegmentFetcher", "open_session"]
