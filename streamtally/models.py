from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional


class Phase(str, enum.Enum):
    LIVE = "live"
    STALE_SUSPECT = "stale_suspect"
    ENDED = "ended"


@dataclass(frozen=True)
class ScrapedRecord:
    """One cycle's measurements for a monitored session.

    Numeric fields may be None here; the wire serializer decides how each
    absent value is sent."""

    timestamp: datetime
    stream_id: Optional[str]
    stream_url: Optional[str]
    gross_sales: Optional[float] = None
    estimated_orders: Optional[int] = None
    tips: Optional[float] = None
    scheduled_start_label: Optional[str] = None
    scheduled_start_time: Optional[datetime] = None
    hours_streamed: Optional[float] = None
    streamer_username: Optional[str] = None
    stream_ended: bool = False

    @property
    def has_primary_metric(self) -> bool:
        return self.gross_sales is not None or self.estimated_orders is not None

    def as_final(self, timestamp: Optional[datetime] = None) -> "ScrapedRecord":
        return replace(self, stream_ended=True, timestamp=timestamp or self.timestamp)


@dataclass(frozen=True)
class EndSignal:
    """What the page currently says about whether the session has ended."""

    banner_visible: bool = False
    live_indicator_visible: bool = False
    elapsed_counter_visible: bool = False
    live_indicators_take_precedence: bool = True

    @property
    def live_evidence(self) -> bool:
        return self.live_indicator_visible or self.elapsed_counter_visible

    @property
    def accepted(self) -> bool:
        if not self.banner_visible:
            return False
        if self.live_indicators_take_precedence and self.live_evidence:
            return False
        return True


@dataclass(frozen=True)
class CycleResult:
    session_id: Optional[str]
    phase: Optional[Phase]
    record: Optional[ScrapedRecord]
    submitted: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ExtractNowResult:
    record: Optional[ScrapedRecord]
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    cycles: int
    extraction_misses: int
    records_emitted: int
    attempts: int
    delivered: int
    transmission_failed: int
    dropped_invalid: int
    session_drifts: int
    timestamp: float
