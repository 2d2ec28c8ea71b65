"""Tests for the MetricsCollector class."""

import unittest

from streamtally.metrics import MetricsCollector


class TestMetricsCollector(unittest.TestCase):
    """Verify metrics recording and snapshot aggregation."""

    def test_empty_snapshot(self):
        """Snapshot with no events should have all zeros."""
        snap = MetricsCollector().snapshot(window_secs=30)
        self.assertEqual(snap.cycles, 0)
        self.assertEqual(snap.delivered, 0)
        self.assertEqual(snap.window_secs, 30)

    def test_counts_per_event(self):
        metrics = MetricsCollector()
        metrics.record("attempt", "a")
        metrics.record("attempt", "a")
        metrics.record("delivered", "a")
        metrics.record("attempt", "b")
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.attempts, 3)
        self.assertEqual(snap.delivered, 1)
        self.assertEqual(metrics.count("attempt", "a"), 2)
        self.assertEqual(metrics.count("attempt"), 3)

    def test_unknown_event_rejected(self):
        with self.assertRaises(ValueError):
            MetricsCollector().record("bogus")

    def test_bounded_history(self):
        metrics = MetricsCollector(maxlen=3)
        for _ in range(5):
            metrics.record("cycle")
        self.assertEqual(metrics.count("cycle"), 3)

    def test_export_rows(self):
        """export_rows should yield all recorded events as dicts."""
        metrics = MetricsCollector()
        metrics.record("session_drift", "x")
        rows = list(metrics.export_rows())
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["event"], "session_drift")
        self.assertEqual(rows[0]["stream_id"], "x")


if __name__ == "__main__":
    unittest.main()
