"""
Per-session keyed store of captured credentials.

Each browsing context (a tab, a CLI run, a HAR import) gets its own
AuthContext, created on first observation and destroyed with `discard`.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

from streamgrab.utils.detect import is_streaming_resource

from .context import AuthContext
from .credentials import CredentialStore

log = logging.getLogger(__name__)

_FIELD_HEADERS = {
    "cookie": "cookie",
    "authorization": "authorization",
    "referer": "referer",
    "origin": "origin",
}


@dataclass(frozen=True)
class ObservedRequest:
    """An outgoing request seen by the network observer."""

    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    page_url: Optional[str] = None


def extract_context(request: ObservedRequest) -> AuthContext:
    """
    Pulls cookie, authorization, referer, origin, `x-*` headers and `range`
    out of an observed request.
    """
    values: dict[str, Optional[str]] = {}
    custom: dict[str, str] = {}
    for name, value in request.headers.items():
        lowered = name.lower()
        if not value:
            continue
        if lowered in _FIELD_HEADERS:
            values[_FIELD_HEADERS[lowered]] = value
        elif lowered.startswith("x-") or lowered == "range":
            custom[lowered] = value
    return AuthContext(custom_headers=custom, page_url=request.page_url, **values)


class AuthStore:
    """Keyed store of AuthContext snapshots, one per browsing context."""

    def __init__(self):
        self._contexts: dict[str, AuthContext] = {}

    def capture(self, context_id: str, request: ObservedRequest) -> bool:
        """
        Merges credentials from `request` into the context's snapshot when the
        URL looks like a streaming resource.

        Returns:
            True if the request was captured, False if it was ignored.
        """
        if not is_streaming_resource(request.url):
            return False

        observed = extract_context(request)
        if observed.is_empty and not observed.page_url:
            return False

        current = self._contexts.get(context_id, AuthContext())
        # Atomic replacement; readers keep whichever snapshot they already hold
        self._contexts[context_id] = current.merge(observed)
        log.debug(f"Captured credentials for context '{context_id}' from {request.url}")
        return True

    def update(self, context_id: str, context: AuthContext) -> AuthContext:
        """
        Applies an explicitly supplied context (e.g. CLI options). Its non-empty
        fields replace captured ones; captured values fill the gaps.
        """
        current = self._contexts.get(context_id, AuthContext())
        merged = context.merge(current)
        self._contexts[context_id] = merged
        return merged

    def get(self, context_id: str) -> AuthContext:
        """Returns the context's snapshot, or an empty context if none exists."""
        return self._contexts.get(context_id, AuthContext())

    def discard(self, context_id: str) -> None:
        """Destroys a context when its browsing session ends."""
        if self._contexts.pop(context_id, None) is not None:
            log.debug(f"Discarded credentials for context '{context_id}'.")

    def contexts(self) -> Iterator[str]:
        return iter(list(self._contexts))

    def __contains__(self, context_id: str) -> bool:
        return context_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)


def ensure(
    context: AuthContext,
    url: str,
    credential_store: Optional[CredentialStore] = None,
) -> AuthContext:
    """
    Fills gaps in a context before acquisition: cookies from the platform
    credential store when none were captured, and a referer derived from the
    last known page URL.
    """
    changes = {}
    if not context.cookie and credential_store is not None:
        cookie = credential_store.cookies_for(url)
        if cookie:
            changes["cookie"] = cookie
            log.debug("Using cookies from the credential store.")
    if not context.referer and context.page_url:
        changes["referer"] = context.page_url
    return context.with_values(**changes) if changes else context
