"""
Pure text parsers for live-dashboard metrics.

Every function takes plain text (possibly None or garbage) and returns a
parsed value or None. None of them raise on malformed input.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta
from typing import List, Optional

GROSS_SALES_LABEL = "Gross Sales"
ESTIMATED_ORDERS_LABEL = "Estimated Orders"
TIPS_LABEL = "Tips"

# Integer part is plain digits or comma-grouped thousands; cents are mandatory.
CURRENCY_PATTERN = r"\$(?:\d{1,3}(?:,\d{3})+|\d+)\.\d{2}(?!\d)"
CURRENCY_RE = re.compile(CURRENCY_PATTERN)
ZERO_AMOUNT_RE = re.compile(r"\$0(?:\.00)?(?![\d.,])")
COUNT_RE = re.compile(r"\d+")

SHOW_TIME_LABEL_RE = re.compile(r"(?:show\s*time|live\s*for|streaming\s*for)\s*:?", re.IGNORECASE)
HMS_RE = re.compile(r"(?<![\d:])(\d{1,3}):([0-5]\d):([0-5]\d)(?![\d:])")
HM_RE = re.compile(r"(?<![\d:])(\d{1,3}):([0-5]\d)(?![\d:])")

SCHEDULED_RE = re.compile(
    r"(?<!\d)(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{2})\s*([AaPp][Mm])\b"
)

GROSS_SALES_LABEL_RE = re.compile(r"\bgross\s+sales\b", re.IGNORECASE)
ESTIMATED_ORDERS_LABEL_RE = re.compile(r"\bestimated\s+orders\b", re.IGNORECASE)
LEADING_COUNT_RE = re.compile(r"\s*:?\s*\d")
TIPS_LABEL_RE = re.compile(r"\btips\b", re.IGNORECASE)
TIPS_WINDOW = 40

TRANSACTION_RE = re.compile(r"\b(?:bought|purchased|won|tipped|ordered)\b", re.IGNORECASE)
RELATIVE_TIME_RE = re.compile(
    r"\b(\d+|an?|one)\s*"
    r"(seconds?|secs?|s|minutes?|mins?|m|hours?|hrs?|h|days?|d|weeks?|wks?|w)"
    r"\s+ago\b",
    re.IGNORECASE,
)
JUST_NOW_RE = re.compile(r"\bjust\s+now\b", re.IGNORECASE)

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
}


def parse_currency_amount(text: Optional[str]) -> Optional[float]:
    """Return the first "$1,234.56"-style amount in text as a float."""
    if not text:
        return None
    match = CURRENCY_RE.search(text)
    if not match:
        return None
    try:
        value = float(match.group(0).replace("$", "").replace(",", ""))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_count(text: Optional[str]) -> Optional[int]:
    """Return the first run of digits in text as an integer."""
    if not text:
        return None
    match = COUNT_RE.search(text)
    if not match:
        return None
    return int(match.group(0))


def parse_elapsed_duration(label_text: Optional[str]) -> Optional[float]:
    """Parse an elapsed show time into hours, rounded to two decimals.

    The token follows a show-time label when one is present ("Show Time:
    02:15:30"), otherwise it is read from the text itself ("0:45"). The
    three-part H:MM:SS form wins over the two-part H:MM form.
    """
    if not label_text:
        return None
    label = SHOW_TIME_LABEL_RE.search(label_text)
    text = label_text[label.end():] if label else label_text
    text = text.strip()

    match = HMS_RE.match(text)
    if match:
        hours, minutes, seconds = (int(g) for g in match.groups())
        return round(hours + minutes / 60 + seconds / 3600, 2)

    match = HM_RE.match(text)
    if match:
        hours, minutes = (int(g) for g in match.groups())
        return round(hours + minutes / 60, 2)
    return None


def find_scheduled_label(text: Optional[str]) -> Optional[str]:
    """Return the first raw "M/D H:MMAM" label found in text."""
    if not text:
        return None
    match = SCHEDULED_RE.search(text)
    return match.group(0) if match else None


def parse_scheduled_time(raw_label: Optional[str], reference_year: int) -> Optional[datetime]:
    """Turn "11/23 10:00AM" into an aware local datetime in reference_year.

    The label carries no year, so the caller supplies one. Invalid dates
    (2/30, 13/1) and hours outside 1..12 give None.
    """
    if not raw_label:
        return None
    match = SCHEDULED_RE.search(raw_label)
    if not match:
        return None
    month, day, hour, minute = (int(g) for g in match.groups()[:4])
    meridiem = match.group(5).upper()
    if not 1 <= hour <= 12:
        return None
    hour = hour % 12
    if meridiem == "PM":
        hour += 12
    try:
        local = datetime(reference_year, month, day, hour, minute)
        return local.astimezone()
    except (ValueError, OverflowError, OSError):
        return None


def parse_tips(container_text: Optional[str]) -> Optional[float]:
    """Read the tips amount next to a "Tips" label inside a metrics container.

    The container has to mention both other metric labels; otherwise a random
    dollar amount elsewhere on the page (quick-tip buttons) could be picked up.
    An explicit "$0" or "$0.00" is a real zero.

    The amount before the label is only read when the other metrics show
    their values before their labels; in a label-then-value layout that
    amount belongs to the previous metric.
    """
    if not container_text:
        return None
    lowered = container_text.lower()
    if GROSS_SALES_LABEL.lower() not in lowered or ESTIMATED_ORDERS_LABEL.lower() not in lowered:
        return None

    look_back = not _values_follow_labels(container_text)
    for label in TIPS_LABEL_RE.finditer(container_text):
        after = container_text[label.end():label.end() + TIPS_WINDOW]
        amount = _leading_amount(after)
        if amount is not None:
            return amount
        if not look_back:
            continue
        before = container_text[max(0, label.start() - TIPS_WINDOW):label.start()]
        amount = _trailing_amount(before)
        if amount is not None:
            return amount
    return None


def parse_activity_ages(text: Optional[str]) -> List[timedelta]:
    """Ages of every "<user> bought ... 5m ago" style entry in a feed's text."""
    if not text:
        return []
    starts = [m.end() for m in TRANSACTION_RE.finditer(text)]
    ends = [m.start() for m in TRANSACTION_RE.finditer(text)][1:] + [len(text)]

    ages: List[timedelta] = []
    for start, end in zip(starts, ends):
        segment = text[start:end]
        age = _relative_age(segment)
        if age is not None:
            ages.append(age)
    return ages


def _leading_amount(text: str) -> Optional[float]:
    stripped = text.lstrip(" \t\r\n:")
    if ZERO_AMOUNT_RE.match(stripped):
        return 0.0
    match = CURRENCY_RE.match(stripped)
    return parse_currency_amount(match.group(0)) if match else None


def _values_follow_labels(text: str) -> bool:
    """True when "Gross Sales" or "Estimated Orders" is directly followed by its value."""
    for match in GROSS_SALES_LABEL_RE.finditer(text):
        if _leading_amount(text[match.end():match.end() + TIPS_WINDOW]) is not None:
            return True
    for match in ESTIMATED_ORDERS_LABEL_RE.finditer(text):
        if LEADING_COUNT_RE.match(text, match.end()):
            return True
    return False


def _trailing_amount(text: str) -> Optional[float]:
    stripped = text.rstrip(" \t\r\n:")
    match = re.search(rf"({CURRENCY_PATTERN}|\$0(?:\.00)?)$", stripped)
    if not match:
        return None
    if ZERO_AMOUNT_RE.fullmatch(match.group(0)):
        return 0.0
    return parse_currency_amount(match.group(0))


def _relative_age(segment: str) -> Optional[timedelta]:
    match = RELATIVE_TIME_RE.search(segment)
    if match:
        raw_amount, unit = match.group(1).lower(), match.group(2).lower()
        amount = 1 if raw_amount in ("a", "an", "one") else int(raw_amount)
        return timedelta(seconds=amount * _UNIT_SECONDS[unit[0]])
    if JUST_NOW_RE.search(segment):
        return timedelta(0)
    return None
