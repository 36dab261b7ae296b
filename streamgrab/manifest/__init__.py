"""
Manifest Parsing Layer.

HLS playlists are parsed line by line; DASH MPDs are parsed with lxml.
"""

from . import dash, hls

__all__ = ["dash", "hls"]
