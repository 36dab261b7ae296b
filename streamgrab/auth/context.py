"""
Credential material captured from a browsing session and the outgoing headers
built from it.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional

# Headers never forwarded to segment requests; the engine sets its own ranges
EXCLUDED_FORWARD_HEADERS = frozenset({"range"})


def _freeze(headers: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(headers or {}))


@dataclass(frozen=True)
class AuthContext:
    """
    Immutable snapshot of a session's credentials. Stores replace the whole
    snapshot on every update, so concurrent readers never see a partial merge.
    """

    cookie: Optional[str] = None
    authorization: Optional[str] = None
    referer: Optional[str] = None
    origin: Optional[str] = None
    custom_headers: Mapping[str, str] = field(default_factory=lambda: _freeze({}))
    page_url: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.custom_headers, MappingProxyType):
            object.__setattr__(self, "custom_headers", _freeze(self.custom_headers))

    @property
    def is_empty(self) -> bool:
        return not (
            self.cookie
            or self.authorization
            or self.referer
            or self.origin
            or self.custom_headers
        )

    def merge(self, other: "AuthContext") -> "AuthContext":
        """
        Returns a new context combining `self` with newly observed values.
        Existing non-empty fields win; empty fields are filled from `other`.
        """
        headers = dict(other.custom_headers)
        headers.update({k: v for k, v in self.custom_headers.items() if v})
        return AuthContext(
            cookie=self.cookie or other.cookie,
            authorization=self.authorization or other.authorization,
            referer=self.referer or other.referer,
            origin=self.origin or other.origin,
            custom_headers=headers,
            page_url=other.page_url or self.page_url,
        )

    def with_values(self, **changes) -> "AuthContext":
        """Returns a copy with the given fields replaced."""
        return replace(self, **changes)


def build_headers(context: Optional[AuthContext], target_url: str) -> dict[str, str]:
    """
    Builds the outgoing header set for a request to `target_url`.

    Only captured values are emitted: a context holding just a cookie yields a
    mapping with `Cookie` alone. `Range` is never forwarded.
    """
    if context is None:
        return {}

    headers: dict[str, str] = {}
    for name, value in context.custom_headers.items():
        if value and name.lower() not in EXCLUDED_FORWARD_HEADERS:
            headers[_canonical(name)] = value

    if context.cookie:
        headers["Cookie"] = context.cookie
    if context.authorization:
        headers["Authorization"] = context.authorization
    if context.referer:
        headers["Referer"] = context.referer
    if context.origin:
        headers["Origin"] = context.origin
    return headers


def _canonical(name: str) -> str:
    """`x-auth-token` -> `X-Auth-Token`."""
    return "-".join(part.capitalize() for part in name.split("-"))
