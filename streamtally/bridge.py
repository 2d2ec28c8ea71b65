from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthHeaders:
    """Browser session credentials for the dashboard domain."""

    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    cookie_header: str = ""


class BridgeClient:
    """Client for the local browser bridge.

    The bridge exposes the controlling browser's cookies and can point that
    browser at a URL. Both calls are a JSON POST with an "action" field."""

    def __init__(self, bridge_url: str, timeout: int = 20, session: Optional[requests.Session] = None) -> None:
        self._bridge_url = bridge_url
        self._timeout = timeout
        self._session = session or requests.Session()

    def get_auth_headers(self) -> AuthHeaders:
        resp = self._session.post(
            self._bridge_url,
            json={"action": "get-auth-headers"},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        data = payload.get("headers", payload) if isinstance(payload, dict) else {}
        return _auth_from_payload(data if isinstance(data, dict) else {})

    def navigate(self, url: str) -> bool:
        """Point the browser at url. Safe to repeat; returns False instead of raising."""
        try:
            resp = self._session.post(
                self._bridge_url,
                json={"action": "scrape-url", "url": url},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            log_event(logger, logging.WARNING, "navigate_failed", url=url, error=type(exc).__name__)
            return False
        if not 200 <= resp.status_code < 300:
            log_event(logger, logging.WARNING, "navigate_failed", url=url, status_code=resp.status_code)
            return False
        try:
            body = resp.json()
        except ValueError:
            return True
        return bool(body.get("success", True)) if isinstance(body, dict) else True


def _auth_from_payload(data: Dict[str, Any]) -> AuthHeaders:
    headers = {str(k): str(v) for k, v in (data.get("headers") or {}).items()}
    cookie_header = str(data.get("cookieHeader") or headers.get("Cookie") or "")
    cookies = {str(k): str(v) for k, v in (data.get("cookies") or {}).items()}
    if not cookies and cookie_header:
        cookies = _parse_cookie_str(cookie_header)
    return AuthHeaders(headers=headers, cookies=cookies, cookie_header=cookie_header)


def _parse_cookie_str(raw: str) -> Dict[str, str]:
    cookies: Dict[str, str] = {}
    for pair in raw.split(";"):
        part = pair.strip()
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        cookies[k.strip()] = v.strip()
    return cookies
