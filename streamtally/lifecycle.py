from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

from .logging_utils import log_event
from .models import EndSignal, Phase

logger = logging.getLogger(__name__)

DEFAULT_STALE_THRESHOLD = 10
DEFAULT_MISS_ESCALATION = 5


class StreamLifecycle:
    """Per-session state machine: LIVE -> STALE_SUSPECT -> ENDED.

    ENDED is terminal. Unchanged metrics alone never end a session; they only
    trigger an independent re-check of the "ended" banner. Instances are
    owned by one session monitor and mutated only inside its extraction
    phase."""

    def __init__(
        self,
        session_id: str,
        stale_threshold: int = DEFAULT_STALE_THRESHOLD,
        miss_escalation_threshold: int = DEFAULT_MISS_ESCALATION,
        stale_run_confirms_banner: bool = False,
    ) -> None:
        self.session_id = session_id
        self.phase = Phase.LIVE
        self.stale_run_length = 0
        self.final_record_sent = False
        self.consecutive_misses = 0
        self.last_pair: Optional[Tuple[float, int]] = None
        self._stale_threshold = stale_threshold
        self._miss_escalation = miss_escalation_threshold
        self._stale_run_confirms_banner = stale_run_confirms_banner

    @property
    def ended(self) -> bool:
        return self.phase is Phase.ENDED

    def observe(
        self,
        gross_sales: Optional[float],
        estimated_orders: Optional[int],
        end_signal: Callable[[], EndSignal],
    ) -> Phase:
        """Feed one cycle's primary metrics and return the resulting phase."""
        if self.ended:
            return self.phase

        if end_signal().accepted:
            self._transition(Phase.ENDED, reason="end_banner")
            return self.phase

        pair = None
        if gross_sales is not None and estimated_orders is not None and gross_sales > 0 and estimated_orders > 0:
            pair = (gross_sales, estimated_orders)

        if pair is not None and pair == self.last_pair:
            self.stale_run_length += 1
            self._transition(Phase.STALE_SUSPECT, reason="unchanged_metrics")
        else:
            self.stale_run_length = 0
            self._transition(Phase.LIVE, reason="metrics_changed")
        self.last_pair = pair

        if self.stale_run_length >= self._stale_threshold:
            if self._end_confirmed(end_signal()):
                self._transition(Phase.ENDED, reason="stale_and_banner")
            else:
                log_event(
                    logger,
                    logging.INFO,
                    "stale_run_reset",
                    stream_id=self.session_id,
                    stale_run_length=self.stale_run_length,
                )
                self.stale_run_length = 0
                self._transition(Phase.LIVE, reason="stale_unconfirmed")
        return self.phase

    def record_hit(self) -> None:
        self.consecutive_misses = 0

    def record_miss(self) -> bool:
        """Count a cycle with both primary metrics absent; True when it should be escalated."""
        self.consecutive_misses += 1
        return self.consecutive_misses >= self._miss_escalation

    def claim_final(self) -> bool:
        """True exactly once, after the session has ended."""
        if not self.ended or self.final_record_sent:
            return False
        self.final_record_sent = True
        return True

    def _end_confirmed(self, signal: EndSignal) -> bool:
        if self._stale_run_confirms_banner:
            return signal.banner_visible
        return signal.accepted

    def _transition(self, phase: Phase, reason: str) -> None:
        if phase is self.phase:
            return
        log_event(
            logger,
            logging.INFO,
            "lifecycle_transition",
            stream_id=self.session_id,
            old_phase=self.phase.value,
            new_phase=phase.value,
            reason=reason,
            stale_run_length=self.stale_run_length,
        )
        self.phase = phase
