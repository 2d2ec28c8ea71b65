from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

DASHBOARD_BASE_URL = "https://www.whatnot.com"
CANONICAL_PATH_TEMPLATE = "/dashboard/live/{stream_id}"

# /dashboard/live/<id>, /live/<id>, with or without trailing path segments.
SESSION_PATH_RE = re.compile(r"/(?:dashboard/)?live/([A-Za-z0-9][A-Za-z0-9_-]*)")


def parse_stream_id(url: Optional[str]) -> Optional[str]:
    """Return the session id embedded in a live-dashboard URL."""
    if not url:
        return None
    try:
        path = urlsplit(url).path
    except ValueError:
        return None
    match = SESSION_PATH_RE.search(path)
    return match.group(1) if match else None


def canonical_stream_url(stream_id: str, base_url: str = DASHBOARD_BASE_URL) -> str:
    return base_url.rstrip("/") + CANONICAL_PATH_TEMPLATE.format(stream_id=stream_id)


@dataclass(frozen=True)
class PageSnapshot:
    """A parsed copy of the rendered dashboard at one instant."""

    url: str
    soup: BeautifulSoup
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_html(cls, html: str, url: str, captured_at: Optional[datetime] = None) -> "PageSnapshot":
        soup = BeautifulSoup(html or "", "html.parser")
        if captured_at is None:
            return cls(url=url, soup=soup)
        return cls(url=url, soup=soup, captured_at=captured_at)

    @property
    def stream_id(self) -> Optional[str]:
        return parse_stream_id(self.url)


class PageSource(Protocol):
    def current_url(self) -> str:
        ...

    def snapshot(self) -> PageSnapshot:
        ...


class CookieProvider(Protocol):
    def get_auth_headers(self) -> Any:
        ...


class StaticPageSource:
    """In-memory page source. The document can be swapped at any time."""

    def __init__(self, html: str = "", url: str = "") -> None:
        self._lock = threading.Lock()
        self._html = html
        self._url = url

    def load(self, html: str, url: Optional[str] = None) -> None:
        with self._lock:
            self._html = html
            if url is not None:
                self._url = url

    def navigate(self, url: str) -> bool:
        with self._lock:
            self._url = url
        return True

    def current_url(self) -> str:
        with self._lock:
            return self._url

    def snapshot(self) -> PageSnapshot:
        with self._lock:
            html, url = self._html, self._url
        return PageSnapshot.from_html(html, url)


class HttpPageSource:
    """Fetches dashboard HTML with browser impersonation and the browser's cookies.

    The cookie provider supplies the header map and cookie mapping for the
    target domain; they are re-read on every fetch so refreshed sessions are
    picked up."""

    def __init__(
        self,
        cookie_provider: CookieProvider,
        url: str = "",
        timeout: int = 20,
        impersonate: str = "chrome120",
    ) -> None:
        self._cookie_provider = cookie_provider
        self._url = url
        self._timeout = timeout
        self._impersonate = impersonate
        self._lock = threading.Lock()

    def navigate(self, url: str) -> bool:
        with self._lock:
            self._url = url
        return True

    def current_url(self) -> str:
        with self._lock:
            return self._url

    def snapshot(self) -> PageSnapshot:
        url = self.current_url()
        auth = self._cookie_provider.get_auth_headers()
        headers: Dict[str, str] = {
            k: v for k, v in dict(getattr(auth, "headers", {}) or {}).items() if k.lower() != "cookie"
        }
        cookies = dict(getattr(auth, "cookies", {}) or {})

        session = curl_requests.Session()
        try:
            response = session.get(
                url,
                headers=headers or None,
                cookies=cookies or None,
                impersonate=self._impersonate,
                timeout=self._timeout,
            )
        finally:
            session.close()
        status_code = getattr(response, "status_code", None)
        if status_code is None or not 200 <= int(status_code) < 300:
            raise ConnectionError(f"HTTP_{status_code} fetching {url}")
        final_url = str(getattr(response, "url", "") or url)
        return PageSnapshot.from_html(response.text, final_url)
