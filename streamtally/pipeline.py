from __future__ import annotations

import logging
import math
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .backoff import BackoffStrategy
from .errors import SessionDrift, TransmissionFailure, ValidationFailure
from .logging_utils import log_event
from .metrics import MetricsCollector
from .models import ScrapedRecord
from .sink import RecordSink

logger = logging.getLogger(__name__)

# Wire fields that must be numbers, and whether null is allowed.
NUMERIC_WIRE_FIELDS = {
    "units_sold": (int, True),
    "gross_sales": (float, True),
    "runtime_hours": (float, False),
    "tips": (float, False),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat()


def validate_record(record: ScrapedRecord) -> None:
    """Raise ValidationFailure when the record must not be transmitted."""
    if not record.stream_id:
        raise ValidationFailure("stream_id is required")
    if not record.stream_url:
        raise ValidationFailure("stream_url is required")
    if not record.stream_ended and not record.has_primary_metric:
        raise ValidationFailure("live record needs gross_sales or estimated_orders")


def to_wire(
    record: ScrapedRecord,
    scheduled_session_id: Optional[str] = None,
    scraped_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Serialize a record for the sink. tips and runtime_hours are never null on the wire."""
    return {
        "stream_id": record.stream_id,
        "stream_url": record.stream_url,
        "units_sold": record.estimated_orders,
        "gross_sales": record.gross_sales,
        "runtime_hours": record.hours_streamed if record.hours_streamed is not None else 0.0,
        "scheduled_start_time": _iso(record.scheduled_start_time),
        "scheduled_session_id": scheduled_session_id,
        "streamer_username": record.streamer_username,
        "captured_at": _iso(record.timestamp),
        "scraped_at": _iso(scraped_at or _utcnow()),
        "tips": record.tips if record.tips is not None else 0.0,
        "status": "ended" if record.stream_ended else "live",
    }


def check_wire_types(payload: Dict[str, Any]) -> None:
    """Fail closed on any numeric field that is not a finite number of the expected kind."""
    for name, (kind, nullable) in NUMERIC_WIRE_FIELDS.items():
        value = payload.get(name)
        if value is None:
            if nullable:
                continue
            raise ValidationFailure(f"{name} must not be null")
        if isinstance(value, bool):
            raise ValidationFailure(f"{name} has type bool")
        if kind is int and not isinstance(value, int):
            raise ValidationFailure(f"{name} must be an integer, got {type(value).__name__}")
        if kind is float:
            if not isinstance(value, (int, float)):
                raise ValidationFailure(f"{name} must be a number, got {type(value).__name__}")
            if not math.isfinite(value):
                raise ValidationFailure(f"{name} is not finite")
        if value < 0:
            raise ValidationFailure(f"{name} is negative")
    if payload.get("status") not in ("live", "ended"):
        raise ValidationFailure("status must be 'live' or 'ended'")


class TransmissionPipeline:
    """Validates, enriches and delivers records with bounded retries.

    Delivery runs on a small worker pool so a slow sink never delays the next
    extraction. Before every attempt the current session id is re-read; a
    record for a session no longer being watched is abandoned."""

    def __init__(
        self,
        sink: RecordSink,
        current_session_id: Callable[[], Optional[str]],
        backoff: Optional[BackoffStrategy] = None,
        max_attempts: int = 3,
        metrics: Optional[MetricsCollector] = None,
        max_workers: int = 2,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sink = sink
        self._current_session_id = current_session_id
        self._backoff = backoff or BackoffStrategy()
        self._max_attempts = max(1, max_attempts)
        self._metrics = metrics
        self._sleep = sleep
        self._clock = clock
        self._max_workers = max_workers
        self._executor = self._new_executor()
        self._shut_down = False

    def submit(self, record: ScrapedRecord) -> Optional[Future]:
        """Queue a record for delivery; invalid records are dropped here and never queued."""
        try:
            validate_record(record)
        except ValidationFailure as exc:
            self._drop(record, str(exc))
            return None
        self._count("record_emitted", record)
        return self._executor.submit(self.deliver, record)

    def deliver(self, record: ScrapedRecord) -> bool:
        """Send one record, retrying transient failures. Returns True once delivered."""
        scheduled_session_id = self._sink.lookup_scheduled_session(record.stream_url or "")

        attempt = 0
        while True:
            attempt += 1
            try:
                self._check_session(record)
                payload = to_wire(record, scheduled_session_id, scraped_at=self._clock())
                check_wire_types(payload)
                self._count("attempt", record)
                self._sink.send(payload)
            except SessionDrift as drift:
                self._count("session_drift", record)
                log_event(
                    logger,
                    logging.DEBUG,
                    "session_drift",
                    stream_id=drift.record_stream_id,
                    current_stream_id=drift.current_stream_id,
                    attempt=attempt,
                )
                return False
            except ValidationFailure as exc:
                self._drop(record, str(exc))
                return False
            except TransmissionFailure as exc:
                if attempt >= self._max_attempts:
                    self._count("transmission_failed", record)
                    log_event(
                        logger,
                        logging.ERROR,
                        "transmission_exhausted",
                        stream_id=record.stream_id,
                        stream_ended=record.stream_ended,
                        attempts=attempt,
                        status_code=exc.status_code,
                        error=str(exc),
                    )
                    return False
                sleep_s = self._backoff.get_sleep(attempt, "HTTP" if exc.status_code else "network")
                log_event(
                    logger,
                    logging.WARNING,
                    "transmission_retry",
                    stream_id=record.stream_id,
                    attempt=attempt,
                    status_code=exc.status_code,
                    sleep_secs=sleep_s,
                )
                self._sleep(sleep_s)
                continue

            self._count("delivered", record)
            log_event(
                logger,
                logging.INFO,
                "transmission_delivered",
                stream_id=record.stream_id,
                status=payload["status"],
                attempts=attempt,
                scheduled_session_id=scheduled_session_id,
            )
            return True

    def start(self) -> None:
        """Reopen the worker pool after shutdown(); a no-op while it is running."""
        if self._shut_down:
            self._executor = self._new_executor()
            self._shut_down = False

    def shutdown(self, wait: bool = True) -> None:
        self._shut_down = True
        self._executor.shutdown(wait=wait)

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="transmit")

    def _check_session(self, record: ScrapedRecord) -> None:
        current = self._current_session_id()
        if current != record.stream_id:
            raise SessionDrift(record.stream_id or "", current)

    def _drop(self, record: ScrapedRecord, reason: str) -> None:
        self._count("dropped_invalid", record)
        log_event(logger, logging.WARNING, "record_dropped", stream_id=record.stream_id, reason=reason)

    def _count(self, event: str, record: ScrapedRecord) -> None:
        if self._metrics:
            self._metrics.record(event, record.stream_id)
