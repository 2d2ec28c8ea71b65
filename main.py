from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import asdict, replace
from typing import Optional

from streamtally.bridge import BridgeClient
from streamtally.config import (
    SinkSettings,
    coerce_scrape_interval,
    load_monitor_settings,
    load_sink_settings,
    save_scrape_interval,
)
from streamtally.monitor import MonitorLoop
from streamtally.page import HttpPageSource, PageSnapshot, canonical_stream_url, parse_stream_id
from streamtally.pipeline import to_wire
from streamtally.scraper import DashboardScraper
from streamtally.sink import HttpSink


def _load_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def run_extract(html_path: str, url: str) -> int:
    """Scrape a saved dashboard page once and print the wire payload."""
    snapshot = PageSnapshot.from_html(_load_text(html_path), url)
    scraper = DashboardScraper()
    record = scraper.scrape(snapshot)
    signal = scraper.end_signal(snapshot)
    out = {
        "record": to_wire(record),
        "end_signal": {**asdict(signal), "accepted": signal.accepted},
    }
    print(json.dumps(out, ensure_ascii=False, indent=2, default=str))
    return 0 if record.has_primary_metric else 1


def run_monitor(url: str, sink_settings: SinkSettings, interval: Optional[float], navigate: bool) -> int:
    settings = load_monitor_settings()
    if interval is not None:
        settings = replace(settings, scrape_interval_secs=coerce_scrape_interval(interval))

    bridge = BridgeClient(settings.bridge_url)
    if navigate and not bridge.navigate(url):
        print(f"navigate failed: {url}", file=sys.stderr)

    page_source = HttpPageSource(bridge, url)
    sink = HttpSink(sink_settings)
    loop = MonitorLoop(page_source, sink, settings)
    loop.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        loop.stop(wait=True)
        sink.close()

    snap = loop.metrics.snapshot(window_secs=24 * 3600)
    print(json.dumps(asdict(snap), ensure_ascii=False))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Live dashboard metrics monitor")
    parser.add_argument("--run-monitor", action="store_true", help="Monitor a live dashboard until the show ends")
    parser.add_argument("--extract-file", help="Scrape a saved dashboard HTML file once and print the record")
    parser.add_argument("--url", default="", help="Dashboard URL or bare stream id")
    parser.add_argument("--navigate", action="store_true", help="Ask the browser bridge to open --url first")

    parser.add_argument("--interval", type=float, default=None, help="Scrape interval seconds (overrides config)")
    parser.add_argument("--save-interval", help="Persist --interval to this JSON config file and exit")
    parser.add_argument("--sink-url", default=None, help="Records endpoint (default: STREAMTALLY_SINK_URL)")
    parser.add_argument("--lookup-url", default=None, help="Scheduled-session lookup endpoint")
    parser.add_argument("--api-key", default=None, help="Datastore API key")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    url = args.url
    if url and parse_stream_id(url) is None and "/" not in url:
        url = canonical_stream_url(url)

    if args.save_interval:
        if args.interval is None:
            parser.error("--save-interval needs --interval")
        stored = save_scrape_interval(args.save_interval, args.interval)
        print(json.dumps({"scrape_interval_secs": stored}))
        return 0

    if args.extract_file:
        return run_extract(args.extract_file, url)

    if args.run_monitor:
        if parse_stream_id(url) is None:
            parser.error("--run-monitor needs a live dashboard --url")
        sink_settings = load_sink_settings()
        if args.sink_url:
            sink_settings = SinkSettings(
                records_url=args.sink_url,
                lookup_url=args.lookup_url or (sink_settings.lookup_url if sink_settings else None),
                api_key=args.api_key or (sink_settings.api_key if sink_settings else None),
            )
        if sink_settings is None:
            parser.error("no sink configured: pass --sink-url or set STREAMTALLY_SINK_URL")
        return run_monitor(url, sink_settings, args.interval, args.navigate)

    print("Nothing to do. Use --run-monitor or --extract-file.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
