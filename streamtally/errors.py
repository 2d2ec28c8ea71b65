from __future__ import annotations

from typing import Optional


class StreamTallyError(Exception):
    """Base class for all monitoring failures."""


class ExtractionMiss(StreamTallyError):
    """A field's locator or parser found nothing on the page."""

    def __init__(self, field: str, detail: str = "") -> None:
        super().__init__(f"{field}: {detail}" if detail else field)
        self.field = field
        self.detail = detail


class ValidationFailure(StreamTallyError):
    """A record failed required-field or wire-type checks; it is dropped, never retried."""


class TransmissionFailure(StreamTallyError):
    """Network error or non-2xx response from the data sink."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionDrift(StreamTallyError):
    """The session under observation changed while a record was being retried."""

    def __init__(self, record_stream_id: str, current_stream_id: Optional[str]) -> None:
        super().__init__(f"record={record_stream_id} current={current_stream_id}")
        self.record_stream_id = record_stream_id
        self.current_stream_id = current_stream_id
