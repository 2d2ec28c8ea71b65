from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import requests

from .config import SinkSettings
from .errors import TransmissionFailure
from .logging_utils import log_event

logger = logging.getLogger(__name__)


class RecordSink(Protocol):
    def lookup_scheduled_session(self, stream_url: str) -> Optional[str]:
        ...

    def send(self, payload: Dict[str, Any]) -> None:
        ...


class HttpSink:
    """JSON-over-HTTP datastore client (PostgREST-style endpoints).

    One record per POST. Any 2xx is success; everything else, including
    network exceptions, surfaces as TransmissionFailure."""

    def __init__(self, settings: SinkSettings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._settings.api_key:
            headers["apikey"] = self._settings.api_key
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        return headers

    def lookup_scheduled_session(self, stream_url: str) -> Optional[str]:
        """Id of the scheduled session whose stream_url matches exactly, or None."""
        if not self._settings.lookup_url or not stream_url:
            return None
        try:
            resp = self._session.get(
                self._settings.lookup_url,
                params={"stream_url": f"eq.{stream_url}", "select": "id", "limit": 1},
                headers=self._headers(),
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            log_event(logger, logging.WARNING, "schedule_lookup_failed", stream_url=stream_url, error=type(exc).__name__)
            return None

        if not 200 <= resp.status_code < 300:
            log_event(logger, logging.WARNING, "schedule_lookup_failed", stream_url=stream_url, status_code=resp.status_code)
            return None
        try:
            data = resp.json()
        except ValueError:
            log_event(logger, logging.WARNING, "schedule_lookup_failed", stream_url=stream_url, error="invalid_json")
            return None

        row = data[0] if isinstance(data, list) and data else data
        if isinstance(row, dict) and row.get("id") is not None:
            return str(row["id"])
        return None

    def send(self, payload: Dict[str, Any]) -> None:
        try:
            resp = self._session.post(
                self._settings.records_url,
                json=payload,
                headers={**self._headers(), "Prefer": "return=minimal"},
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise TransmissionFailure(f"{type(exc).__name__}: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            body = (resp.text or "")[:500]
            raise TransmissionFailure(f"HTTP_{resp.status_code}: {body}", status_code=resp.status_code)

    def close(self) -> None:
        self._session.close()
