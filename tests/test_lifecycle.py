"""Tests for the per-session lifecycle state machine."""

import unittest

from streamtally.models import EndSignal, Phase
from streamtally.lifecycle import StreamLifecycle

NO_SIGNAL = EndSignal()
BANNER = EndSignal(banner_visible=True)
BANNER_WITH_BADGE = EndSignal(banner_visible=True, live_indicator_visible=True)


class SignalScript:
    """Helper returning a fixed end signal and counting how often it is read."""

    def __init__(self, signal=NO_SIGNAL):
        self.signal = signal
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.signal


class TestStreamLifecycle(unittest.TestCase):
    """Verify transitions, stale handling and the final-record claim."""

    def setUp(self):
        self.lifecycle = StreamLifecycle("abc")

    def test_starts_live(self):
        self.assertEqual(self.lifecycle.phase, Phase.LIVE)
        self.assertFalse(self.lifecycle.final_record_sent)

    def test_explicit_banner_ends_immediately(self):
        phase = self.lifecycle.observe(100.0, 3, SignalScript(BANNER))
        self.assertEqual(phase, Phase.ENDED)
        self.assertEqual(self.lifecycle.stale_run_length, 0)

    def test_live_badge_suppresses_banner(self):
        phase = self.lifecycle.observe(100.0, 3, SignalScript(BANNER_WITH_BADGE))
        self.assertEqual(phase, Phase.LIVE)

    def test_nine_identical_then_banner(self):
        signal = SignalScript()
        for _ in range(9):
            self.assertNotEqual(self.lifecycle.observe(250.0, 5, signal), Phase.ENDED)
        signal.signal = BANNER
        self.assertEqual(self.lifecycle.observe(250.0, 5, signal), Phase.ENDED)

    def test_staleness_alone_never_ends(self):
        signal = SignalScript()
        for _ in range(50):
            self.assertNotEqual(self.lifecycle.observe(250.0, 5, signal), Phase.ENDED)
        self.assertLess(self.lifecycle.stale_run_length, 10)

    def test_stale_run_reaches_threshold_and_resets(self):
        signal = SignalScript()
        self.lifecycle.observe(250.0, 5, signal)
        for _ in range(9):
            self.lifecycle.observe(250.0, 5, signal)
        self.assertEqual(self.lifecycle.phase, Phase.STALE_SUSPECT)
        self.assertEqual(self.lifecycle.stale_run_length, 9)

        with self.assertLogs("streamtally.lifecycle", "INFO") as logs:
            phase = self.lifecycle.observe(250.0, 5, signal)
        self.assertEqual(phase, Phase.LIVE)
        self.assertEqual(self.lifecycle.stale_run_length, 0)
        self.assertTrue(any("stale_run_reset" in line for line in logs.output))

    def test_stale_recheck_honours_live_badge(self):
        """A leftover banner next to a live badge never ends the session, however quiet it is."""
        signal = SignalScript(BANNER_WITH_BADGE)
        phases = [self.lifecycle.observe(250.0, 5, signal) for _ in range(30)]
        self.assertNotIn(Phase.ENDED, phases)
        self.assertEqual(phases[10], Phase.LIVE)
        self.assertFalse(self.lifecycle.claim_final())

    def test_stale_recheck_honours_running_counter(self):
        signal = SignalScript(EndSignal(banner_visible=True, elapsed_counter_visible=True))
        for _ in range(11):
            self.lifecycle.observe(250.0, 5, signal)
        self.assertEqual(self.lifecycle.phase, Phase.LIVE)

    def test_stale_run_can_be_allowed_to_confirm_banner(self):
        lifecycle = StreamLifecycle("abc", stale_run_confirms_banner=True)
        signal = SignalScript(BANNER_WITH_BADGE)
        for _ in range(10):
            lifecycle.observe(250.0, 5, signal)
        self.assertEqual(lifecycle.phase, Phase.STALE_SUSPECT)
        self.assertEqual(lifecycle.observe(250.0, 5, signal), Phase.ENDED)

    def test_change_resets_run(self):
        signal = SignalScript()
        for _ in range(5):
            self.lifecycle.observe(250.0, 5, signal)
        self.assertEqual(self.lifecycle.stale_run_length, 4)
        self.lifecycle.observe(260.0, 5, signal)
        self.assertEqual(self.lifecycle.stale_run_length, 0)
        self.assertEqual(self.lifecycle.phase, Phase.LIVE)

    def test_zero_or_missing_values_are_not_stale(self):
        signal = SignalScript()
        for _ in range(5):
            self.lifecycle.observe(0.0, 0, signal)
            self.lifecycle.observe(None, 3, signal)
        self.assertEqual(self.lifecycle.stale_run_length, 0)

    def test_ended_is_terminal(self):
        self.lifecycle.observe(1.0, 1, SignalScript(BANNER))
        signal = SignalScript()
        self.assertEqual(self.lifecycle.observe(2.0, 2, signal), Phase.ENDED)
        self.assertEqual(signal.calls, 0)

    def test_claim_final_once(self):
        self.assertFalse(self.lifecycle.claim_final())
        self.lifecycle.observe(1.0, 1, SignalScript(BANNER))
        self.assertTrue(self.lifecycle.claim_final())
        self.assertTrue(self.lifecycle.final_record_sent)
        self.assertFalse(self.lifecycle.claim_final())

    def test_miss_escalation(self):
        lifecycle = StreamLifecycle("abc", miss_escalation_threshold=3)
        self.assertFalse(lifecycle.record_miss())
        self.assertFalse(lifecycle.record_miss())
        self.assertTrue(lifecycle.record_miss())
        lifecycle.record_hit()
        self.assertEqual(lifecycle.consecutive_misses, 0)
        self.assertFalse(lifecycle.record_miss())


if __name__ == "__main__":
    unittest.main()
