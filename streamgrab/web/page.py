"""
Finds media URLs in a static HTML page.

A fetched page only shows what the server rendered: streams that players
create at runtime (MSE blobs, XHR-loaded manifests) need a HAR capture instead.
"""

import asyncio
import json
import logging
import re
from typing import Any, Iterator, Optional

import aiohttp
from bs4 import BeautifulSoup

from streamgrab.exceptions import CaptureImportError
from streamgrab.models.stream import StreamDescriptor, StreamType
from streamgrab.utils.detect import (
    AD_PATTERNS,
    AUDIO_EXTENSIONS,
    classify_type,
    guess_quality,
)
from streamgrab.utils.path import extract_filename, resolve_url

log = logging.getLogger(__name__)

_MEDIA_URL = re.compile(
    r"\.(mp4|webm|mkv|avi|mov|flv|m4v|3gp|ogv|ts|m3u8?|mpd)(\?|#|$)", re.IGNORECASE
)
_ABSOLUTE_URL = re.compile(r"https?://", re.IGNORECASE)
_EMBED_URL = re.compile(r"\.(mp4|webm|m3u8|mpd)", re.IGNORECASE)
_JSON_URL_KEYS = re.compile(
    r"contentUrl|embedUrl|videoUrl|streamUrl|hlsUrl|dashUrl|mp4Url", re.IGNORECASE
)
_META_SELECTORS = (
    'meta[property="og:video"]',
    'meta[property="og:video:url"]',
    'meta[property="og:video:secure_url"]',
    'meta[name="twitter:player:stream"]',
)
_DATA_ATTRIBUTES = (
    "data-video-url",
    "data-src",
    "data-video-src",
    "data-hls",
    "data-dash",
    "data-stream-url",
)


def _is_media_url(url: str) -> bool:
    return bool(_MEDIA_URL.search(url) or AUDIO_EXTENSIONS.search(url))


def _urls_from_json(data: Any) -> Iterator[str]:
    if isinstance(data, list):
        for item in data:
            yield from _urls_from_json(item)
    elif isinstance(data, dict):
        for key, value in data.items():
            if isinstance(value, str):
                if _is_media_url(value) or _JSON_URL_KEYS.fullmatch(key):
                    yield value
            else:
                yield from _urls_from_json(value)


def _candidates(soup: BeautifulSoup) -> Iterator[tuple[str, Optional[StreamType]]]:
    """Yields (raw URL, forced type) pairs in document order per source."""
    for video in soup.find_all("video"):
        if video.get("src"):
            yield video["src"], None
        for source in video.find_all("source"):
            if source.get("src"):
                yield source["src"], None

    for audio in soup.find_all("audio"):
        if audio.get("src"):
            yield audio["src"], StreamType.AUDIO
        for source in audio.find_all("source"):
            if source.get("src"):
                yield source["src"], StreamType.AUDIO

    for iframe in soup.find_all("iframe"):
        src = iframe.get("src") or iframe.get("data-src")
        if src and _EMBED_URL.search(src):
            yield src, None

    for link in soup.find_all("a", href=True):
        if _is_media_url(link["href"]):
            yield link["href"], None

    for meta in soup.select(", ".join(_META_SELECTORS)):
        if meta.get("content"):
            yield meta["content"], None

    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        for url in _urls_from_json(data):
            yield url, None

    for element in soup.find_all(
        lambda tag: any(tag.has_attr(attr) for attr in _DATA_ATTRIBUTES)
    ):
        for attr in _DATA_ATTRIBUTES:
            value = element.get(attr)
            if not value:
                continue
            # data-src is the generic lazy-load attribute, so it needs a media URL
            if _is_media_url(value) or (
                attr != "data-src" and _ABSOLUTE_URL.match(value)
            ):
                yield value, None


def scan_page(html: str, page_url: str) -> list[StreamDescriptor]:
    """
    Extracts candidate streams from a page's HTML.

    Args:
        html: The page markup.
        page_url: The page's URL, used to resolve relative references.

    Returns:
        One descriptor per distinct absolute URL, in discovery order.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None

    seen: set[str] = set()
    descriptors = []
    for raw_url, forced_type in _candidates(soup):
        raw_url = raw_url.strip()
        if not raw_url or raw_url.startswith(("blob:", "data:", "javascript:")):
            continue
        url = resolve_url(page_url, raw_url)
        if url in seen or AD_PATTERNS.search(url):
            continue
        seen.add(url)
        descriptors.append(
            StreamDescriptor(
                url=url,
                type=forced_type or classify_type(url),
                quality=guess_quality(url),
                filename=extract_filename(url),
                page_url=page_url,
                page_title=title or None,
            )
        )

    log.debug(f"Found {len(descriptors)} candidate streams on {page_url}")
    return descriptors


async def fetch_and_scan(
    session: aiohttp.ClientSession, page_url: str
) -> list[StreamDescriptor]:
    """
    Downloads a page and scans it.

    Raises:
        CaptureImportError: If the page cannot be downloaded.
    """
    try:
        async with session.get(page_url) as response:
            response.raise_for_status()
            html = await response.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise CaptureImportError(f"Could not fetch page {page_url}: {e}") from e
    return scan_page(html, page_url)
