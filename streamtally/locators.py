"""
DOM search heuristics over a parsed dashboard page.

The dashboard markup is not under our control and changes without notice,
so every lookup is an ordered list of fallbacks rather than a selector.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .config import EndSignalPolicy
from .extractors import (
    ESTIMATED_ORDERS_LABEL,
    GROSS_SALES_LABEL,
    SHOW_TIME_LABEL_RE,
    TIPS_LABEL,
    parse_activity_ages,
    parse_elapsed_duration,
)
from .logging_utils import log_event
from .models import EndSignal

logger = logging.getLogger(__name__)

SKIP_TAGS = frozenset({"script", "style", "noscript", "template", "head", "title", "meta"})
HIDING_CLASSES = frozenset({"hidden", "invisible", "sr-only", "d-none", "visually-hidden"})
MEDIA_TAGS = ["img", "svg", "video", "canvas", "picture"]

METRIC_LABELS = (GROSS_SALES_LABEL, ESTIMATED_ORDERS_LABEL, TIPS_LABEL)

CURRENCY_HINT_RE = re.compile(r"\$[\d,]+\.?\d*")
BARE_COUNT_RE = re.compile(r"\d+")

ENDED_BANNER_RE = re.compile(
    r"\b(?:show|stream|live|livestream)\s+(?:has\s+)?ended\b|\bshow\s+is\s+over\b",
    re.IGNORECASE,
)
LIVE_INDICATOR_TEXTS = frozenset({"live now", "you're live", "you’re live", "you are live"})
# A bare "Live" only counts outside links, buttons, tabs and navigation.
BARE_LIVE_TEXT = "live"
NAVIGATION_TAGS = frozenset({"a", "button", "nav", "select", "option"})
NAVIGATION_ROLES = frozenset({"tab", "tablist", "link", "button", "menu", "menuitem", "navigation"})
BANNER_MAX_CHARS = 80
COUNTER_MAX_CHARS = 40

MIN_FEED_ENTRIES = 2
MAX_ACTIVITY_AGE = timedelta(days=7)

_ZERO_SIZE_RE = re.compile(r"^0(?:\.0+)?(?:px|em|rem|%)?$")


def text_of(node) -> str:
    """Whitespace-collapsed text of a node, ignoring script/style contents and comments."""
    if node is None:
        return ""
    if isinstance(node, NavigableString):
        return "" if isinstance(node, Comment) else " ".join(str(node).split())
    parts = [
        str(s)
        for s in node.find_all(string=True)
        if not isinstance(s, Comment) and getattr(s.parent, "name", None) not in SKIP_TAGS
    ]
    return " ".join(" ".join(parts).split())


def looks_like_currency(text: str) -> bool:
    return bool(CURRENCY_HINT_RE.search(text or ""))


def looks_like_count(text: str) -> bool:
    return bool(BARE_COUNT_RE.fullmatch((text or "").strip()))


def looks_like_value(text: str) -> bool:
    return looks_like_currency(text) or looks_like_count(text)


def _is_element(node) -> bool:
    return isinstance(node, Tag) and not isinstance(node, BeautifulSoup)


def _short_ancestors(soup: Tag, max_chars: int) -> Iterator[tuple[Tag, str]]:
    """Yield (element, text) for every element whose text fits in max_chars, in document order."""
    seen: set[int] = set()
    for string in soup.find_all(string=True):
        if isinstance(string, Comment) or getattr(string.parent, "name", None) in SKIP_TAGS:
            continue
        if not str(string).strip():
            continue
        node = string.parent
        chain: List[tuple[Tag, str]] = []
        while _is_element(node) and node.name not in SKIP_TAGS:
            text = text_of(node)
            if len(text) > max_chars:
                break
            chain.append((node, text))
            node = node.parent
        # outermost first so ancestors precede descendants
        for element, text in reversed(chain):
            if id(element) in seen:
                continue
            seen.add(id(element))
            yield element, text


def find_label_element(soup: Tag, label: str) -> Optional[Tag]:
    """First element (document order) whose trimmed text is exactly label."""
    target = " ".join(label.split())
    for element, text in _short_ancestors(soup, len(target)):
        if text == target and not _inside_skipped(element):
            return element
    return None


def find_value_candidates(
    label_element: Optional[Tag],
    plausible: Callable[[str], bool] = looks_like_value,
    exclude_labels: Sequence[str] = METRIC_LABELS,
) -> List[Tag]:
    """Ranked elements that may hold the value shown next to a label.

    Order: the label's container when it holds more than the label, the best
    sibling (plausible value first, then any non-label text), the label's next
    non-empty sibling, then the container's next non-empty sibling.
    """
    if label_element is None:
        return []
    label_text = text_of(label_element)
    parent = label_element.parent if _is_element(label_element.parent) else None
    ranked: List[Tag] = []

    if parent is not None and text_of(parent) != label_text:
        ranked.append(parent)

    if parent is not None:
        siblings = [c for c in parent.find_all(True, recursive=False) if c is not label_element]
        preferred = next((s for s in siblings if plausible(text_of(s))), None)
        if preferred is None:
            preferred = next(
                (
                    s
                    for s in siblings
                    if text_of(s) and not any(lbl in text_of(s) for lbl in exclude_labels)
                ),
                None,
            )
        if preferred is not None:
            ranked.append(preferred)

    nxt = _next_non_empty_sibling(label_element)
    if nxt is not None:
        ranked.append(nxt)

    if parent is not None:
        nxt = _next_non_empty_sibling(parent)
        if nxt is not None:
            ranked.append(nxt)

    unique: List[Tag] = []
    for element in ranked:
        if all(element is not u for u in unique):
            unique.append(element)
    return unique


def find_value_near(
    label_element: Optional[Tag],
    plausible: Callable[[str], bool] = looks_like_value,
    exclude_labels: Sequence[str] = METRIC_LABELS,
) -> Optional[Tag]:
    candidates = find_value_candidates(label_element, plausible, exclude_labels)
    return candidates[0] if candidates else None


def find_metrics_container(label_element: Optional[Tag], labels: Iterable[str]) -> Optional[Tag]:
    """Closest ancestor of label_element whose text mentions every label."""
    wanted = [lbl.lower() for lbl in labels]
    node = label_element
    while _is_element(node):
        lowered = text_of(node).lower()
        if all(lbl in lowered for lbl in wanted):
            return node
        node = node.parent
    return None


def is_visible(tag: Optional[Tag]) -> bool:
    """Best static approximation of "rendered and on screen".

    Checks the element and all ancestors for the hidden attribute,
    aria-hidden, hiding utility classes and inline display/visibility/opacity
    or zero width/height, then requires a layout box (text or media).
    """
    if not _is_element(tag) or _chain_hidden(tag):
        return False
    if visible_text(tag):
        return True
    return any(not _chain_hidden(m, stop=tag) for m in tag.find_all(MEDIA_TAGS))


def visible_text(tag: Optional[Tag]) -> str:
    """Text of tag that is not hidden by tag itself, its ancestors or the descendants in between."""
    if not _is_element(tag) or _chain_hidden(tag):
        return ""
    parts = [
        str(s)
        for s in tag.find_all(string=True)
        if not isinstance(s, Comment) and str(s).strip() and not _chain_hidden(s.parent, stop=tag)
    ]
    return " ".join(" ".join(parts).split())


def detect_end_signal(soup: Tag, policy: Optional[EndSignalPolicy] = None) -> EndSignal:
    """Look for a visible "show ended" banner and competing live indicators."""
    policy = policy or EndSignalPolicy()
    banner = live = counter = False
    for element, _ in _short_ancestors(soup, BANNER_MAX_CHARS):
        text = visible_text(element)
        if not text:
            continue
        if not banner and ENDED_BANNER_RE.search(text):
            banner = True
        elif not live and _is_live_indicator(element, text):
            live = True
            log_event(
                logger,
                logging.DEBUG,
                "live_indicator_seen",
                tag=element.name,
                classes=" ".join(element.get("class") or []),
                text=text,
            )
        elif (
            not counter
            and len(text) <= COUNTER_MAX_CHARS
            and SHOW_TIME_LABEL_RE.search(text)
            and parse_elapsed_duration(text) is not None
        ):
            counter = True
        if banner and live and counter:
            break
    return EndSignal(
        banner_visible=banner,
        live_indicator_visible=live,
        elapsed_counter_visible=counter,
        live_indicators_take_precedence=policy.live_indicators_take_precedence,
    )


def _is_live_indicator(element: Tag, text: str) -> bool:
    lowered = text.lower()
    if lowered in LIVE_INDICATOR_TEXTS:
        return True
    if lowered != BARE_LIVE_TEXT:
        return False
    # a "Live" tab or link is navigation, not a status badge
    if element.find(list(NAVIGATION_TAGS)) is not None:
        return False
    node = element
    while _is_element(node):
        if node.name in NAVIGATION_TAGS or (node.get("role") or "").lower() in NAVIGATION_ROLES:
            return False
        node = node.parent
    return True


def find_activity_feed_container(soup: Tag) -> Optional[Tag]:
    """Region of the page listing recent transactions ("x bought y 3m ago")."""
    for tab in _activity_tabs(soup):
        panel_id = tab.get("aria-controls")
        if panel_id:
            panel = soup.find(id=panel_id)
            if panel is not None and _feed_entry_count(panel) >= MIN_FEED_ENTRIES:
                return panel
        container = tab.parent if _is_element(tab.parent) else None
        while container is not None:
            for region in container.find_next_siblings(True):
                if _feed_entry_count(region) >= MIN_FEED_ENTRIES:
                    return region
            container = container.parent if _is_element(container.parent) else None

    best: Optional[Tag] = None
    best_key: Optional[tuple[int, int]] = None
    for element in soup.find_all(True):
        if element.name in SKIP_TAGS:
            continue
        text = text_of(element)
        count = len(parse_activity_ages(text))
        if count < MIN_FEED_ENTRIES:
            continue
        key = (count, -len(text))
        if best_key is None or key > best_key:
            best, best_key = element, key
    return best


def recover_end_instant(soup: Tag, now: datetime) -> Optional[datetime]:
    """Estimate when activity stopped from the oldest plausible feed entry."""
    container = find_activity_feed_container(soup)
    if container is None:
        return None
    ages = [a for a in parse_activity_ages(text_of(container)) if timedelta(0) < a < MAX_ACTIVITY_AGE]
    if not ages:
        return None
    return now - max(ages)


def _activity_tabs(soup: Tag) -> List[Tag]:
    tabs: List[Tag] = []
    for element in soup.find_all(["button", "a"]) + soup.find_all(attrs={"role": "tab"}):
        if text_of(element).lower() == "activity" and all(element is not t for t in tabs):
            tabs.append(element)
    return tabs


def _feed_entry_count(element: Tag) -> int:
    return len(parse_activity_ages(text_of(element)))


def _next_non_empty_sibling(element: Tag) -> Optional[Tag]:
    for sibling in element.find_next_siblings(True):
        if text_of(sibling):
            return sibling
    return None


def _inside_skipped(element: Tag) -> bool:
    return any(getattr(p, "name", None) in SKIP_TAGS for p in element.parents)


def _node_hides(node: Tag) -> bool:
    if node.name in SKIP_TAGS:
        return True
    if node.has_attr("hidden"):
        return True
    if str(node.get("aria-hidden", "")).lower() == "true":
        return True
    classes = node.get("class") or []
    if any(c in HIDING_CLASSES for c in classes):
        return True
    return _style_hides(_parse_style(node.get("style")))


def _chain_hidden(node, stop: Optional[Tag] = None) -> bool:
    """True if node or any ancestor below stop hides its subtree."""
    while _is_element(node) and node is not stop:
        if _node_hides(node):
            return True
        node = node.parent
    return False


def _parse_style(raw) -> Dict[str, str]:
    style: Dict[str, str] = {}
    if not raw:
        return style
    for decl in str(raw).split(";"):
        if ":" not in decl:
            continue
        key, value = decl.split(":", 1)
        style[key.strip().lower()] = value.replace("!important", "").strip().lower()
    return style


def _style_hides(style: Dict[str, str]) -> bool:
    if style.get("display") == "none":
        return True
    if style.get("visibility") in ("hidden", "collapse"):
        return True
    opacity = style.get("opacity")
    if opacity:
        try:
            if float(opacity) <= 0:
                return True
        except ValueError:
            pass
    for dimension in ("width", "height"):
        if _ZERO_SIZE_RE.match(style.get(dimension, "")):
            return True
    return False
