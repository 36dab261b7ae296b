"""
Utilities for handling URLs, output filenames and extensions.
"""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urljoin, urlparse

from pathvalidate import sanitize_filename as _platform_sanitize

MAX_FILENAME_LENGTH = 200

_RESERVED_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE_RUN = re.compile(r"\s+")

# Extensions stripped before the container extension is re-applied
_HLS_SUFFIX = re.compile(r"\.(m3u8?|ts)$", re.IGNORECASE)
_DASH_SUFFIX = re.compile(r"\.(mpd|mp4)$", re.IGNORECASE)


def resolve_url(base: str, relative: str) -> str:
    """
    Resolves `relative` against `base`. Absolute URLs are returned unchanged.
    """
    if not relative:
        return base
    try:
        return urljoin(base, relative)
    except ValueError:
        return relative


def extract_filename(url: str) -> Optional[str]:
    """Returns the last path component of a URL if it looks like a file name."""
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    last = path.rsplit("/", 1)[-1]
    if last and "." in last:
        return unquote(last)
    return None


def sanitize_filename(name: str) -> str:
    """
    Replaces reserved characters with '_', collapses whitespace runs and caps
    the result at 200 characters, keeping the extension intact where possible.
    """
    cleaned = _RESERVED_CHARS.sub("_", name)
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    if len(cleaned) > MAX_FILENAME_LENGTH:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and stem and len(ext) < 10:
            cleaned = stem[: MAX_FILENAME_LENGTH - len(ext) - 1].rstrip() + "." + ext
        else:
            cleaned = cleaned[:MAX_FILENAME_LENGTH]
    return _platform_sanitize(cleaned, platform="auto") or "video"


def normalize_extension(name: str, stream_type: str) -> str:
    """Forces the container extension an assembled stream will have."""
    if stream_type == "hls":
        return _HLS_SUFFIX.sub("", name) + ".ts"
    if stream_type == "dash":
        return _DASH_SUFFIX.sub("", name) + ".mp4"
    if "." not in name:
        return name + (".mp3" if stream_type == "audio" else ".mp4")
    return name


def build_output_filename(
    filename: Optional[str], url: str, stream_type: str, fallback: str = "video"
) -> str:
    """
    Derives the final, sanitized file name for an acquired stream.
    """
    name = filename or extract_filename(url) or fallback
    return sanitize_filename(normalize_extension(name, stream_type))


def unique_path(directory: Path, filename: str) -> Path:
    """Returns a path in `directory` that does not collide with an existing file."""
    candidate = directory / filename
    if not candidate.exists():
        return candidate
    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while True:
        candidate = directory / f"{stem} ({counter}){suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
