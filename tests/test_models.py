"""Tests for data model classes."""

import unittest
from datetime import datetime, timezone

from streamtally.models import EndSignal, ExtractNowResult, ScrapedRecord


def _record(**overrides) -> ScrapedRecord:
    """Helper to build a ScrapedRecord with sensible defaults."""
    defaults = dict(
        timestamp=datetime(2025, 11, 23, 18, 0, tzinfo=timezone.utc),
        stream_id="abc",
        stream_url="https://www.whatnot.com/dashboard/live/abc",
        gross_sales=10.0,
        estimated_orders=2,
    )
    defaults.update(overrides)
    return ScrapedRecord(**defaults)


class TestScrapedRecord(unittest.TestCase):
    """Verify ScrapedRecord creation and immutability."""

    def test_record_is_immutable(self):
        """Frozen dataclass should raise on attribute assignment."""
        record = _record()
        with self.assertRaises(AttributeError):
            record.gross_sales = 5.0

    def test_primary_metric(self):
        self.assertTrue(_record(gross_sales=None).has_primary_metric)
        self.assertFalse(_record(gross_sales=None, estimated_orders=None).has_primary_metric)

    def test_as_final(self):
        end = datetime(2025, 11, 23, 17, 0, tzinfo=timezone.utc)
        final = _record().as_final(end)
        self.assertTrue(final.stream_ended)
        self.assertEqual(final.timestamp, end)
        self.assertEqual(final.gross_sales, 10.0)
        self.assertEqual(_record().as_final().timestamp, _record().timestamp)


class TestEndSignal(unittest.TestCase):
    """Verify the banner acceptance rule."""

    def test_no_banner(self):
        self.assertFalse(EndSignal(live_indicator_visible=True).accepted)

    def test_live_evidence_vetoes(self):
        self.assertFalse(EndSignal(banner_visible=True, elapsed_counter_visible=True).accepted)
        self.assertTrue(
            EndSignal(banner_visible=True, elapsed_counter_visible=True, live_indicators_take_precedence=False).accepted
        )


class TestExtractNowResult(unittest.TestCase):
    def test_ok(self):
        self.assertTrue(ExtractNowResult(_record()).ok)
        self.assertFalse(ExtractNowResult(None, "not_on_live_dashboard").ok)


if __name__ == "__main__":
    unittest.main()
