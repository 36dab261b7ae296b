"""
Authentication Context Layer.

This package keeps the credentials captured from browsing sessions and turns
them into the header set that segment and key requests carry.
"""

from .context import AuthContext, build_headers
from .credentials import CookieFileStore, CredentialStore, StaticCredentialStore
from .store import AuthStore, ObservedRequest, ensure, extract_context

__all__ = [
    "AuthContext",
    "AuthStore",
    "CookieFileStore",
    "CredentialStore",
    "ObservedRequest",
    "StaticCredentialStore",
    "build_headers",
    "ensure",
    "extract_context",
]
