from __future__ import annotations

import logging
import re
from typing import Callable, Optional, TypeVar

from bs4 import Tag

from .config import EndSignalPolicy
from .errors import ExtractionMiss
from .extractors import (
    ESTIMATED_ORDERS_LABEL,
    GROSS_SALES_LABEL,
    SHOW_TIME_LABEL_RE,
    TIPS_LABEL,
    find_scheduled_label,
    parse_count,
    parse_currency_amount,
    parse_elapsed_duration,
    parse_scheduled_time,
    parse_tips,
)
from .locators import (
    detect_end_signal,
    find_label_element,
    find_metrics_container,
    find_value_candidates,
    looks_like_count,
    looks_like_currency,
    text_of,
)
from .logging_utils import log_event
from .models import EndSignal, ScrapedRecord
from .page import DASHBOARD_BASE_URL, PageSnapshot, canonical_stream_url

logger = logging.getLogger(__name__)

USER_HREF_RE = re.compile(r"^(?:https?://[^/]+)?/user/([A-Za-z0-9_.-]+)/?$")
SHOW_TIME_WINDOW = 40

T = TypeVar("T")


class DashboardScraper:
    """Builds a ScrapedRecord out of one page snapshot.

    Each field is located and parsed independently; a miss on one field never
    prevents the others from being read."""

    def __init__(
        self,
        dashboard_base_url: str = DASHBOARD_BASE_URL,
        end_signal_policy: Optional[EndSignalPolicy] = None,
    ) -> None:
        self._base_url = dashboard_base_url
        self._policy = end_signal_policy or EndSignalPolicy()

    def scrape(self, snapshot: PageSnapshot) -> ScrapedRecord:
        soup = snapshot.soup
        stream_id = snapshot.stream_id
        scheduled_label = self._field("scheduled_start_time", self.extract_scheduled_label, soup, stream_id)
        reference_year = snapshot.captured_at.astimezone().year

        return ScrapedRecord(
            timestamp=snapshot.captured_at,
            stream_id=stream_id,
            stream_url=canonical_stream_url(stream_id, self._base_url) if stream_id else None,
            gross_sales=self._field("gross_sales", self.extract_gross_sales, soup, stream_id),
            estimated_orders=self._field("estimated_orders", self.extract_estimated_orders, soup, stream_id),
            tips=self._field("tips", self.extract_tips, soup, stream_id),
            scheduled_start_label=scheduled_label,
            scheduled_start_time=parse_scheduled_time(scheduled_label, reference_year),
            hours_streamed=self._field("hours_streamed", self.extract_hours_streamed, soup, stream_id),
            streamer_username=self._field("streamer_username", self.extract_streamer_username, soup, stream_id),
        )

    def end_signal(self, snapshot: PageSnapshot) -> EndSignal:
        return detect_end_signal(snapshot.soup, self._policy)

    def extract_gross_sales(self, soup: Tag) -> float:
        label = self._require_label(soup, GROSS_SALES_LABEL, "gross_sales")
        for candidate in find_value_candidates(label, looks_like_currency):
            text = text_of(candidate)
            amount = parse_currency_amount(_after_label(text, GROSS_SALES_LABEL))
            if amount is None:
                amount = parse_currency_amount(text)
            if amount is not None:
                return amount
        raise ExtractionMiss("gross_sales", "label found but no amount nearby")

    def extract_estimated_orders(self, soup: Tag) -> int:
        label = self._require_label(soup, ESTIMATED_ORDERS_LABEL, "estimated_orders")
        for candidate in find_value_candidates(label, looks_like_count):
            text = text_of(candidate)
            count = parse_count(_after_label(text, ESTIMATED_ORDERS_LABEL))
            if count is None:
                count = parse_count(text.replace(ESTIMATED_ORDERS_LABEL, " "))
            if count is not None:
                return count
        raise ExtractionMiss("estimated_orders", "label found but no count nearby")

    def extract_tips(self, soup: Tag) -> float:
        container = None
        tips_label = find_label_element(soup, TIPS_LABEL)
        if tips_label is not None:
            container = find_metrics_container(tips_label, (GROSS_SALES_LABEL, ESTIMATED_ORDERS_LABEL))
        if container is None:
            sales_label = find_label_element(soup, GROSS_SALES_LABEL)
            container = find_metrics_container(sales_label, (ESTIMATED_ORDERS_LABEL, TIPS_LABEL))
        if container is None:
            raise ExtractionMiss("tips", "no container holding all metric labels")
        amount = parse_tips(text_of(container))
        if amount is None:
            raise ExtractionMiss("tips", "no amount next to label")
        return amount

    def extract_hours_streamed(self, soup: Tag) -> float:
        text = text_of(soup)
        for match in SHOW_TIME_LABEL_RE.finditer(text):
            hours = parse_elapsed_duration(text[match.start():match.end() + SHOW_TIME_WINDOW])
            if hours is not None:
                return hours
        raise ExtractionMiss("hours_streamed")

    def extract_scheduled_label(self, soup: Tag) -> str:
        label = find_scheduled_label(text_of(soup))
        if label is None:
            raise ExtractionMiss("scheduled_start_time")
        return label

    def extract_streamer_username(self, soup: Tag) -> str:
        for anchor in soup.find_all("a", href=True):
            match = USER_HREF_RE.match(str(anchor["href"]).strip())
            if match:
                return match.group(1)
        raise ExtractionMiss("streamer_username")

    def _require_label(self, soup: Tag, label: str, field: str) -> Tag:
        element = find_label_element(soup, label)
        if element is None:
            raise ExtractionMiss(field, f"label {label!r} not on page")
        return element

    @staticmethod
    def _field(
        name: str,
        extract: Callable[[Tag], T],
        soup: Tag,
        stream_id: Optional[str],
    ) -> Optional[T]:
        try:
            return extract(soup)
        except ExtractionMiss as miss:
            log_event(logger, logging.DEBUG, "extraction_miss", field=name, detail=miss.detail, stream_id=stream_id)
            return None


def _after_label(text: str, label: str) -> str:
    if label in text:
        return text.split(label, 1)[1]
    return text
