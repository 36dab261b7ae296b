"""
URL heuristics used to classify candidate streams and to decide which observed
requests carry credentials worth capturing.
"""

import re
from urllib.parse import urlparse

from streamgrab.models.stream import StreamType

VIDEO_EXTENSIONS = re.compile(
    r"\.(mp4|webm|mkv|avi|mov|flv|wmv|m4v|3gp|ogv|ts)(\?|$)", re.IGNORECASE
)
VIDEO_MIMETYPES = re.compile(
    r"^(video/|application/x-mpegurl|application/vnd\.apple\.mpegurl"
    r"|application/dash\+xml|application/octet-stream)",
    re.IGNORECASE,
)
HLS_PATTERNS = re.compile(r"\.(m3u8|m3u)(\?|$)", re.IGNORECASE)
DASH_PATTERNS = re.compile(r"\.(mpd)(\?|$)", re.IGNORECASE)
AUDIO_EXTENSIONS = re.compile(
    r"\.(mp3|aac|ogg|wav|flac|m4a|opus|wma)(\?|$)", re.IGNORECASE
)
SEGMENT_EXTENSIONS = re.compile(r"\.(m4s|m4v|m4a|cmfv|cmfa|key)(\?|$)", re.IGNORECASE)
STREAMING_PATH_HINTS = re.compile(
    r"/(hls|dash|manifest|playlist|chunklist|segment|fragments?|videoplayback)[/?.]",
    re.IGNORECASE,
)
AD_PATTERNS = re.compile(
    r"doubleclick|googlesyndication|adservice|analytics|tracking|pixel|beacon",
    re.IGNORECASE,
)

# Ordered from most to least specific
_QUALITY_HINTS = [
    (re.compile(r"2160|4k|uhd", re.IGNORECASE), "2160p"),
    (re.compile(r"1440|2k", re.IGNORECASE), "1440p"),
    (re.compile(r"1080|fhd|full.?hd", re.IGNORECASE), "1080p"),
    (re.compile(r"720|hd(?!s)", re.IGNORECASE), "720p"),
    (re.compile(r"480|sd", re.IGNORECASE), "480p"),
    (re.compile(r"360"), "360p"),
    (re.compile(r"240"), "240p"),
    (re.compile(r"144"), "144p"),
]


def classify_type(url: str, content_type: str = "") -> StreamType:
    """Infers the stream type from a URL and an optional Content-Type."""
    if url.startswith("blob:"):
        return StreamType.MSE_BLOB
    if HLS_PATTERNS.search(url) or re.search("mpegurl", content_type, re.IGNORECASE):
        return StreamType.HLS
    if DASH_PATTERNS.search(url) or "dash+xml" in content_type.lower():
        return StreamType.DASH
    if AUDIO_EXTENSIONS.search(url) or content_type.lower().startswith("audio/"):
        return StreamType.AUDIO
    return StreamType.DIRECT


def guess_quality(url: str, extra: str = "") -> str:
    """Guesses a quality label such as '720p' from URL text."""
    haystack = f"{url} {extra}"
    for pattern, label in _QUALITY_HINTS:
        if pattern.search(haystack):
            return label
    return "Unknown"


def is_media_resource(url: str, content_type: str = "") -> bool:
    """True for URLs or content types that look like playable media."""
    if AD_PATTERNS.search(url):
        return False
    return bool(
        VIDEO_EXTENSIONS.search(url)
        or HLS_PATTERNS.search(url)
        or DASH_PATTERNS.search(url)
        or AUDIO_EXTENSIONS.search(url)
        or (content_type and VIDEO_MIMETYPES.search(content_type))
    )


def is_streaming_resource(url: str) -> bool:
    """
    True for requests whose credentials are worth capturing: manifests,
    segments, keys and media files, or URLs with streaming path hints.
    """
    if AD_PATTERNS.search(url):
        return False
    return bool(
        is_media_resource(url)
        or SEGMENT_EXTENSIONS.search(url)
        or STREAMING_PATH_HINTS.search(url)
    )


def is_blacklisted(url: str, blacklisted_domains: list[str]) -> bool:
    """True when the URL's host contains one of the blacklisted domains."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return False
    return any(domain in hostname for domain in blacklisted_domains)
