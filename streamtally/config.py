"""
Runtime configuration for the monitor.

Values come from environment variables and a small persisted JSON file;
command-line flags in main.py override both.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .logging_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_SCRAPE_INTERVAL_SECS = 30
MIN_SCRAPE_INTERVAL_SECS = 5
MAX_SCRAPE_INTERVAL_SECS = 3600
SCRAPE_INTERVAL_KEY = "scrape_interval_secs"


@dataclass(frozen=True)
class EndSignalPolicy:
    """
    Tie-break between an "ended" banner and live indicators shown at the same time.

    With precedence on, a visible live badge or show-time counter suppresses
    the banner (it may be a leftover from an earlier show).

    stale_run_confirms_banner lets a full run of unchanged metrics accept a
    visible banner even while live indicators are showing. Off by default.
    """

    live_indicators_take_precedence: bool = True
    stale_run_confirms_banner: bool = False


@dataclass(frozen=True)
class SinkSettings:
    """
    Where records are delivered.
    """

    records_url: str
    lookup_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class MonitorSettings:
    """
    Per-monitor tuning.
    """

    scrape_interval_secs: float = DEFAULT_SCRAPE_INTERVAL_SECS
    stale_threshold: int = 10
    miss_escalation_threshold: int = 5
    final_retry_delay_secs: float = 2.0
    max_attempts: int = 3
    backoff_base_secs: float = 1.0
    backoff_max_secs: float = 4.0
    transmit_workers: int = 2
    dashboard_base_url: str = "https://www.whatnot.com"
    bridge_url: str = "http://localhost:3001"
    end_signal_policy: EndSignalPolicy = field(default_factory=EndSignalPolicy)

    def __post_init__(self) -> None:
        if self.stale_threshold < 1:
            raise ValueError("stale_threshold must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.transmit_workers < 1:
            raise ValueError("transmit_workers must be >= 1")


def coerce_scrape_interval(raw: Any, default: float = DEFAULT_SCRAPE_INTERVAL_SECS) -> float:
    """Validate an interval value, falling back to default when it is unusable."""
    if isinstance(raw, bool):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if value != value or not MIN_SCRAPE_INTERVAL_SECS <= value <= MAX_SCRAPE_INTERVAL_SECS:
        return default
    return value


def load_scrape_interval(path: Optional[str], default: float = DEFAULT_SCRAPE_INTERVAL_SECS) -> float:
    """
    Read the persisted scrape interval (seconds) from a JSON file.

    Missing file, unreadable JSON and out-of-range values all give the default.
    """

    if not path:
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, json.JSONDecodeError) as exc:
        log_event(logger, logging.WARNING, "config_unreadable", path=path, error=type(exc).__name__)
        return default

    raw = data.get(SCRAPE_INTERVAL_KEY) if isinstance(data, dict) else None
    value = coerce_scrape_interval(raw, default)
    if raw is not None and value == default and raw != default:
        log_event(logger, logging.WARNING, "config_interval_rejected", path=path, value=raw, fallback=default)
    return value


def save_scrape_interval(path: str, seconds: float) -> float:
    """Persist a validated interval and return the value actually stored."""
    value = coerce_scrape_interval(seconds)
    with open(path, "w", encoding="utf-8") as f:
        json.dump({SCRAPE_INTERVAL_KEY: value}, f)
    return value


def load_sink_settings(env: Optional[Mapping[str, str]] = None) -> Optional[SinkSettings]:
    """Build sink settings from STREAMTALLY_* variables; None when no sink URL is set."""
    env = os.environ if env is None else env
    records_url = (env.get("STREAMTALLY_SINK_URL") or "").strip()
    if not records_url:
        return None
    return SinkSettings(
        records_url=records_url,
        lookup_url=(env.get("STREAMTALLY_LOOKUP_URL") or "").strip() or None,
        api_key=(env.get("STREAMTALLY_API_KEY") or "").strip() or None,
    )


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = (env.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in ("0", "false", "no")


def load_monitor_settings(env: Optional[Mapping[str, str]] = None) -> MonitorSettings:
    env = os.environ if env is None else env
    return MonitorSettings(
        scrape_interval_secs=load_scrape_interval(env.get("STREAMTALLY_CONFIG")),
        bridge_url=(env.get("STREAMTALLY_BRIDGE_URL") or "http://localhost:3001").strip(),
        end_signal_policy=EndSignalPolicy(
            live_indicators_take_precedence=_env_flag(env, "STREAMTALLY_LIVE_PRECEDENCE", True),
            stale_run_confirms_banner=_env_flag(env, "STREAMTALLY_STALE_CONFIRMS_BANNER", False),
        ),
    )
