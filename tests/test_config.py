"""Tests for settings loading and the persisted scrape interval."""

import json
import os
import tempfile
import unittest

from streamtally.config import (
    MonitorSettings,
    coerce_scrape_interval,
    load_monitor_settings,
    load_scrape_interval,
    load_sink_settings,
    save_scrape_interval,
)


class TestScrapeInterval(unittest.TestCase):
    """Verify range checks and file persistence."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "streamtally.json")

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, data):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(data)

    def test_coerce(self):
        self.assertEqual(coerce_scrape_interval(15), 15.0)
        self.assertEqual(coerce_scrape_interval("60"), 60.0)
        for raw in (4, 3601, "soon", None, True, float("nan")):
            self.assertEqual(coerce_scrape_interval(raw), 30, raw)

    def test_missing_file(self):
        self.assertEqual(load_scrape_interval(self.path), 30)
        self.assertEqual(load_scrape_interval(None), 30)

    def test_round_trip(self):
        self.assertEqual(save_scrape_interval(self.path, 45), 45.0)
        self.assertEqual(load_scrape_interval(self.path), 45.0)

    def test_out_of_range_value(self):
        self._write(json.dumps({"scrape_interval_secs": 1}))
        with self.assertLogs("streamtally.config", "WARNING"):
            self.assertEqual(load_scrape_interval(self.path), 30)

    def test_corrupt_file(self):
        self._write("{not json")
        with self.assertLogs("streamtally.config", "WARNING"):
            self.assertEqual(load_scrape_interval(self.path), 30)


class TestEnvironmentSettings(unittest.TestCase):
    def test_sink_requires_url(self):
        self.assertIsNone(load_sink_settings({}))
        settings = load_sink_settings(
            {"STREAMTALLY_SINK_URL": " https://db.test/records ", "STREAMTALLY_API_KEY": "k"}
        )
        self.assertEqual(settings.records_url, "https://db.test/records")
        self.assertIsNone(settings.lookup_url)
        self.assertEqual(settings.api_key, "k")

    def test_monitor_settings(self):
        settings = load_monitor_settings({"STREAMTALLY_LIVE_PRECEDENCE": "false"})
        self.assertFalse(settings.end_signal_policy.live_indicators_take_precedence)
        self.assertEqual(settings.scrape_interval_secs, 30)
        self.assertTrue(load_monitor_settings({}).end_signal_policy.live_indicators_take_precedence)
        self.assertFalse(load_monitor_settings({}).end_signal_policy.stale_run_confirms_banner)
        opted_in = load_monitor_settings({"STREAMTALLY_STALE_CONFIRMS_BANNER": "1"})
        self.assertTrue(opted_in.end_signal_policy.stale_run_confirms_banner)

    def test_invalid_settings(self):
        with self.assertRaises(ValueError):
            MonitorSettings(stale_threshold=0)
        with self.assertRaises(ValueError):
            MonitorSettings(max_attempts=0)


if __name__ == "__main__":
    unittest.main()
