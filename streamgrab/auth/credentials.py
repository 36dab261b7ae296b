"""
Platform credential stores queried when a session has no captured cookie.
"""

import logging
from http.cookiejar import LoadError, MozillaCookieJar
from pathlib import Path
from typing import Optional, Protocol
from urllib.request import Request

from streamgrab.exceptions import ConfigurationError

log = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Anything that can produce a Cookie header value for a URL."""

    def cookies_for(self, url: str) -> Optional[str]: ...


class CookieFileStore:
    """
    Reads cookies from a Netscape/Mozilla `cookies.txt` export, the format
    written by browser extensions and `yt-dlp --cookies`.
    """

    def __init__(self, cookies_path: Path):
        """
        Args:
            cookies_path: Path to the cookies.txt file.

        Raises:
            ConfigurationError: If the file is missing or not in cookies.txt format.
        """
        self.cookies_path = Path(cookies_path)
        self._jar = MozillaCookieJar(str(self.cookies_path))
        try:
            self._jar.load(ignore_discard=True, ignore_expires=False)
        except FileNotFoundError as e:
            raise ConfigurationError(
                f"Cookies file not found at '{self.cookies_path}'."
            ) from e
        except (LoadError, OSError) as e:
            raise ConfigurationError(f"Could not read cookies file: {e}") from e
        log.debug(f"Loaded {len(self._jar)} cookies from {self.cookies_path}.")

    def cookies_for(self, url: str) -> Optional[str]:
        """Returns the Cookie header the jar would send to `url`, if any."""
        request = Request(url)
        self._jar.add_cookie_header(request)
        return request.get_header("Cookie")

    def __len__(self) -> int:
        return len(self._jar)


class StaticCredentialStore:
    """Fixed cookie headers per host, matched on the domain and its subdomains."""

    def __init__(self, cookies_by_host: dict[str, str] | None = None):
        self._cookies = {k.lower(): v for k, v in (cookies_by_host or {}).items()}

    def cookies_for(self, url: str) -> Optional[str]:
        host = Request(url).host.split(":", 1)[0].lower()
        for domain, cookie in self._cookies.items():
            if host == domain or host.endswith("." + domain):
                return cookie
        return None
