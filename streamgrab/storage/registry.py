"""
Per-context registry of detected streams.

Each browsing context keeps its own ordered set of StreamDescriptors. Manifest
URLs are de-duplicated without their query string, since players often
re-request the same playlist with rotating tokens.
"""

import logging
from typing import Iterator, Optional

from streamgrab.models.stream import StreamDescriptor
from streamgrab.utils.detect import is_blacklisted

log = logging.getLogger(__name__)


def normalized_url(descriptor: StreamDescriptor) -> str:
    if descriptor.is_adaptive:
        return descriptor.url.split("?", 1)[0]
    return descriptor.url


class StreamRegistry:
    """Keyed store of detected streams, created on first registration."""

    def __init__(
        self, blacklisted_domains: list[str] | None = None, min_size: int = 0
    ):
        """
        Args:
            blacklisted_domains: Hosts whose streams are never registered.
            min_size: Direct media with a known size below this is ignored.
        """
        self._streams: dict[str, dict[str, StreamDescriptor]] = {}
        self.blacklisted_domains = blacklisted_domains or []
        self.min_size = min_size

    def register(
        self, context_id: str, descriptor: StreamDescriptor
    ) -> Optional[StreamDescriptor]:
        """
        Adds a stream to a context.

        Returns:
            The registered descriptor, or None if it was blacklisted, too
            small, or a duplicate of an already registered stream.
        """
        if is_blacklisted(descriptor.url, self.blacklisted_domains):
            log.debug(f"Ignoring blacklisted stream: {descriptor.url}")
            return None
        if not descriptor.is_adaptive and 0 < descriptor.size < self.min_size:
            log.debug(
                f"Ignoring small media ({descriptor.size} bytes): {descriptor.url}"
            )
            return None

        streams = self._streams.setdefault(context_id, {})
        key = normalized_url(descriptor)
        if any(normalized_url(existing) == key for existing in streams.values()):
            return None

        streams[descriptor.id] = descriptor
        log.debug(
            f"Registered {descriptor.type.value} stream {descriptor.id} "
            f"in context '{context_id}'."
        )
        return descriptor

    def list(self, context_id: str) -> list[StreamDescriptor]:
        """Streams of a context, in detection order."""
        return list(self._streams.get(context_id, {}).values())

    def get(self, context_id: str, stream_id: str) -> Optional[StreamDescriptor]:
        return self._streams.get(context_id, {}).get(stream_id)

    def remove(self, context_id: str, stream_id: str) -> None:
        self._streams.get(context_id, {}).pop(stream_id, None)

    def discard(self, context_id: str) -> None:
        """Drops every stream of a context when its browsing session ends."""
        self._streams.pop(context_id, None)

    def contexts(self) -> Iterator[str]:
        return iter(list(self._streams))
