"""
Imports a browser HAR export as if its requests had been observed live.

Every request is offered to `AuthStore.capture`, and every response that
looks like media is registered as a StreamDescriptor, so a session recorded
in the browser's devtools can be replayed from the command line.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from streamgrab.auth.store import AuthStore, ObservedRequest
from streamgrab.exceptions import CaptureImportError
from streamgrab.models.stream import StreamDescriptor, StreamType
from streamgrab.storage.registry import StreamRegistry
from streamgrab.utils.detect import (
    AD_PATTERNS,
    classify_type,
    guess_quality,
    is_media_resource,
)
from streamgrab.utils.path import extract_filename

log = logging.getLogger(__name__)

DEFAULT_CONTEXT_ID = "har"


@dataclass
class HarImportResult:
    """Summary of one HAR import."""

    context_id: str
    entries: int = 0
    captured: int = 0
    streams: list[StreamDescriptor] = field(default_factory=list)


def _header_map(headers: list[dict[str, Any]]) -> dict[str, str]:
    """HAR header lists to a dict; later duplicates win, cookies are joined."""
    result: dict[str, str] = {}
    for header in headers or []:
        name = str(header.get("name", "")).lower()
        value = str(header.get("value", ""))
        # HTTP/2 pseudo-headers (":authority", ...) are not real headers
        if not name or name.startswith(":"):
            continue
        if name == "cookie" and result.get("cookie"):
            result["cookie"] = f"{result['cookie']}; {value}"
        else:
            result[name] = value
    return result


def _page_titles(har_log: dict[str, Any]) -> dict[str, str]:
    return {
        page.get("id", ""): page.get("title", "")
        for page in har_log.get("pages") or []
        if page.get("id")
    }


def load_har(path: Path) -> dict[str, Any]:
    """
    Reads the `log` object of a HAR file.

    Raises:
        CaptureImportError: If the file is missing or not a HAR document.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except OSError as e:
        raise CaptureImportError(f"Could not read HAR file '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise CaptureImportError(f"'{path}' is not valid JSON: {e}") from e

    har_log = document.get("log") if isinstance(document, dict) else None
    if not isinstance(har_log, dict) or not isinstance(har_log.get("entries"), list):
        raise CaptureImportError(f"'{path}' is not a HAR file (no log.entries).")
    return har_log


def _descriptor_for(
    entry: dict[str, Any],
    request_headers: dict[str, str],
    page_title: Optional[str],
) -> Optional[StreamDescriptor]:
    request = entry.get("request") or {}
    response = entry.get("response") or {}
    url = request.get("url", "")
    if not url or url.startswith("data:"):
        return None

    status = response.get("status", 0) or 0
    if status >= 400:
        return None

    response_headers = _header_map(response.get("headers") or [])
    content_type = response_headers.get("content-type") or (
        (response.get("content") or {}).get("mimeType", "")
    )
    if not is_media_resource(url, content_type):
        return None

    stream_type = classify_type(url, content_type)
    # Generic octet-stream responses are only media when the URL says so
    if stream_type is StreamType.DIRECT and "octet-stream" in content_type.lower():
        if not is_media_resource(url):
            return None

    try:
        size = int(response_headers.get("content-length", "0"))
    except ValueError:
        size = 0

    page_url = request_headers.get("referer")
    if not page_url and page_title and page_title.startswith("http"):
        page_url = page_title

    return StreamDescriptor(
        url=url,
        type=stream_type,
        quality=guess_quality(url),
        filename=extract_filename(url),
        page_url=page_url,
        page_title=page_title or None,
        content_type=content_type or None,
        size=size,
    )


def import_har(
    path: Path,
    auth_store: AuthStore,
    registry: StreamRegistry,
    context_id: str = DEFAULT_CONTEXT_ID,
) -> HarImportResult:
    """
    Replays a HAR export into the credential store and the stream registry.

    Args:
        path: The `.har` file exported from the browser.
        auth_store: Receives the credentials of streaming requests.
        registry: Receives the detected streams.
        context_id: Key under which both stores file this session.

    Returns:
        Counts of processed entries and captured requests, plus the newly
        registered streams in capture order.

    Raises:
        CaptureImportError: If the file cannot be read as HAR.
    """
    har_log = load_har(path)
    titles = _page_titles(har_log)
    result = HarImportResult(context_id=context_id)

    for entry in har_log["entries"]:
        if not isinstance(entry, dict):
            continue
        result.entries += 1
        request = entry.get("request") or {}
        url = request.get("url", "")
        if not url or AD_PATTERNS.search(url):
            continue

        headers = _header_map(request.get("headers") or [])
        page_title = titles.get(entry.get("pageref", ""))
        page_url = headers.get("referer")

        if auth_store.capture(
            context_id, ObservedRequest(url=url, headers=headers, page_url=page_url)
        ):
            result.captured += 1

        descriptor = _descriptor_for(entry, headers, page_title)
        if descriptor is not None and registry.register(context_id, descriptor):
            result.streams.append(descriptor)

    log.info(
        f"Imported {result.entries} HAR entries: {result.captured} with "
        f"credentials, {len(result.streams)} streams."
    )
    return result
