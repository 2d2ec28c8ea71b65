from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .backoff import BackoffStrategy
from .config import MonitorSettings
from .lifecycle import StreamLifecycle
from .locators import recover_end_instant
from .logging_utils import log_event
from .metrics import MetricsCollector
from .models import CycleResult, ExtractNowResult, ScrapedRecord
from .page import PageSnapshot, PageSource, parse_stream_id
from .pipeline import TransmissionPipeline
from .scraper import DashboardScraper
from .sink import RecordSink

logger = logging.getLogger(__name__)


class SessionMonitor:
    """Extraction state for one monitored session.

    Owns the session's lifecycle; run_cycle() is the only place it changes.
    Once the final record has been handed to the pipeline the session is
    finished and further cycles do nothing."""

    def __init__(
        self,
        session_id: str,
        scraper: DashboardScraper,
        pipeline: TransmissionPipeline,
        settings: MonitorSettings,
        fetch_snapshot: Callable[[], PageSnapshot],
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session_id = session_id
        self.lifecycle = StreamLifecycle(
            session_id,
            stale_threshold=settings.stale_threshold,
            miss_escalation_threshold=settings.miss_escalation_threshold,
            stale_run_confirms_banner=settings.end_signal_policy.stale_run_confirms_banner,
        )
        self.last_record: Optional[ScrapedRecord] = None
        self._scraper = scraper
        self._pipeline = pipeline
        self._settings = settings
        self._fetch_snapshot = fetch_snapshot
        self._metrics = metrics
        self._sleep = sleep

    @property
    def finished(self) -> bool:
        return self.lifecycle.final_record_sent

    def run_cycle(self, snapshot: PageSnapshot) -> CycleResult:
        if self.finished:
            return CycleResult(self.session_id, self.lifecycle.phase, None, False, reason="session_finished")
        self._count("cycle")

        record = self._scraper.scrape(snapshot)
        phase = self.lifecycle.observe(
            record.gross_sales,
            record.estimated_orders,
            lambda: self._scraper.end_signal(snapshot),
        )
        if self.lifecycle.ended:
            return self._finalize(snapshot, record)

        if not record.has_primary_metric:
            self._count("extraction_miss")
            if self.lifecycle.record_miss():
                log_event(
                    logger,
                    logging.ERROR,
                    "extraction_miss_escalated",
                    stream_id=self.session_id,
                    consecutive_misses=self.lifecycle.consecutive_misses,
                    hint="page structure may have changed",
                )
            else:
                log_event(
                    logger,
                    logging.WARNING,
                    "extraction_miss",
                    stream_id=self.session_id,
                    consecutive_misses=self.lifecycle.consecutive_misses,
                )
            return CycleResult(self.session_id, phase, None, False, reason="metrics_not_found")

        self.lifecycle.record_hit()
        self.last_record = record
        log_event(
            logger,
            logging.INFO,
            "cycle_scraped",
            stream_id=self.session_id,
            phase=phase.value,
            gross_sales=record.gross_sales,
            estimated_orders=record.estimated_orders,
            tips=record.tips,
            hours_streamed=record.hours_streamed,
            stale_run_length=self.lifecycle.stale_run_length,
        )
        submitted = self._pipeline.submit(record) is not None
        return CycleResult(self.session_id, phase, record, submitted)

    def _finalize(self, snapshot: PageSnapshot, record: ScrapedRecord) -> CycleResult:
        if not self.lifecycle.claim_final():
            return CycleResult(self.session_id, self.lifecycle.phase, None, False, reason="final_already_sent")

        snapshot, record = self._rescrape(snapshot, record)
        if not record.has_primary_metric:
            self._sleep(self._settings.final_retry_delay_secs)
            snapshot, record = self._rescrape(snapshot, record)

        end_instant = recover_end_instant(snapshot.soup, now=snapshot.captured_at)
        final = record.as_final(end_instant or snapshot.captured_at)
        self.last_record = final
        log_event(
            logger,
            logging.INFO,
            "final_record_built",
            stream_id=self.session_id,
            gross_sales=final.gross_sales,
            estimated_orders=final.estimated_orders,
            timestamp=final.timestamp.isoformat(),
            end_from_activity_feed=end_instant is not None,
        )
        submitted = self._pipeline.submit(final) is not None
        return CycleResult(self.session_id, self.lifecycle.phase, final, submitted)

    def _rescrape(self, snapshot: PageSnapshot, record: ScrapedRecord) -> tuple[PageSnapshot, ScrapedRecord]:
        """Fresh snapshot and record for this session, or the given ones if that fails."""
        try:
            fresh = self._fetch_snapshot()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.WARNING, "final_rescrape_failed", stream_id=self.session_id, error=type(exc).__name__)
            return snapshot, record
        if fresh.stream_id != self.session_id:
            return snapshot, record
        fresh_record = self._scraper.scrape(fresh)
        if not fresh_record.has_primary_metric and record.has_primary_metric:
            return snapshot, record
        return fresh, fresh_record

    def _count(self, event: str) -> None:
        if self._metrics:
            self._metrics.record(event, self.session_id)


class MonitorLoop:
    """Periodic extraction driver for one page source.

    A timer thread ticks every scrape interval. Each tick reads the page URL;
    when it names a different session the old SessionMonitor is discarded
    (its in-flight deliveries are left alone) and a fresh one starts.
    extract_now() runs a cycle on demand; ticks and on-demand cycles never
    overlap."""

    def __init__(
        self,
        page_source: PageSource,
        sink: RecordSink,
        settings: Optional[MonitorSettings] = None,
        metrics: Optional[MetricsCollector] = None,
        scraper: Optional[DashboardScraper] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or MonitorSettings()
        self._page_source = page_source
        self._metrics = metrics or MetricsCollector()
        self._scraper = scraper or DashboardScraper(
            dashboard_base_url=self._settings.dashboard_base_url,
            end_signal_policy=self._settings.end_signal_policy,
        )
        self._sleep = sleep
        self._pipeline = TransmissionPipeline(
            sink,
            current_session_id=self.current_session_id,
            backoff=BackoffStrategy(
                base_seconds=self._settings.backoff_base_secs,
                max_seconds=self._settings.backoff_max_secs,
            ),
            max_attempts=self._settings.max_attempts,
            metrics=self._metrics,
            max_workers=self._settings.transmit_workers,
            sleep=sleep,
        )
        self._session: Optional[SessionMonitor] = None
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def pipeline(self) -> TransmissionPipeline:
        return self._pipeline

    @property
    def session(self) -> Optional[SessionMonitor]:
        return self._session

    def current_session_id(self) -> Optional[str]:
        return parse_stream_id(self._page_source.current_url())

    def tick(self) -> Optional[CycleResult]:
        """Run one extraction cycle for whatever session the page currently shows."""
        with self._cycle_lock:
            session_id = self.current_session_id()
            session = self._switch_session(session_id)
            if session is None:
                return None
            if session.finished:
                return CycleResult(session_id, session.lifecycle.phase, None, False, reason="session_finished")

            snapshot = self._page_source.snapshot()
            if snapshot.stream_id != session_id:
                return CycleResult(session_id, session.lifecycle.phase, None, False, reason="navigation_in_progress")
            return session.run_cycle(snapshot)

    def extract_now(self) -> ExtractNowResult:
        """On-demand cycle; returns the newest record for the current session or why there is none."""
        if self.current_session_id() is None:
            return ExtractNowResult(None, reason="not_on_live_dashboard")
        try:
            result = self.tick()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.WARNING, "extract_now_failed", error=type(exc).__name__)
            return ExtractNowResult(None, reason=f"{type(exc).__name__}: {exc}")

        if result is not None and result.record is not None:
            return ExtractNowResult(result.record)
        session = self._session
        if session is not None and session.last_record is not None:
            return ExtractNowResult(session.last_record)
        return ExtractNowResult(None, reason=(result.reason if result else None) or "no_record")

    def notify_navigation(self) -> None:
        """Cut the current wait short so a URL change is picked up immediately."""
        self._wake.set()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._pipeline.start()
        self._thread = threading.Thread(target=self._run, name="monitor-loop", daemon=True)
        self._thread.start()

    def stop(self, wait: bool = True) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None and wait:
            self._thread.join(timeout=self._settings.scrape_interval_secs + 5)
        self._pipeline.shutdown(wait=wait)
        log_event(logger, logging.INFO, "monitor_stopped", stream_id=self.current_session_id())

    def _run(self) -> None:
        log_event(
            logger,
            logging.INFO,
            "monitor_started",
            interval_secs=self._settings.scrape_interval_secs,
            url=self._page_source.current_url(),
        )
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Extraction cycle failed; continuing")
            self._wake.wait(self._settings.scrape_interval_secs)
            self._wake.clear()

    def _switch_session(self, session_id: Optional[str]) -> Optional[SessionMonitor]:
        current = self._session
        if current is not None and current.session_id == session_id:
            return current
        if current is not None or session_id is not None:
            log_event(
                logger,
                logging.INFO,
                "session_changed",
                old_stream_id=current.session_id if current else None,
                new_stream_id=session_id,
            )
        if session_id is None:
            self._session = None
            return None
        self._session = SessionMonitor(
            session_id,
            scraper=self._scraper,
            pipeline=self._pipeline,
            settings=self._settings,
            fetch_snapshot=self._page_source.snapshot,
            metrics=self._metrics,
            sleep=self._sleep,
        )
        return self._session
