"""Live-commerce dashboard monitor.

Extracts sales metrics from a live show's dashboard page, follows the show
through its lifecycle until it ends, and delivers periodic and final records
to a remote datastore with bounded retries.

Key modules:
    extractors      -- pure text parsers (currency, counts, durations, schedule labels)
    locators        -- label/value DOM heuristics, visibility, end-signal and activity feed lookup
    page            -- PageSnapshot, page sources, session id / canonical URL helpers
    scraper         -- DashboardScraper assembling a ScrapedRecord from a snapshot
    lifecycle       -- StreamLifecycle state machine (live, stale suspect, ended)
    pipeline        -- validation, wire serialization and retrying delivery
    sink            -- HttpSink datastore client
    bridge          -- BridgeClient for browser cookies and navigation
    monitor         -- SessionMonitor and the timer-driven MonitorLoop
    backoff         -- BackoffStrategy for retry delays
    metrics         -- MetricsCollector for outcome counters
    models          -- ScrapedRecord, EndSignal, CycleResult and friends
    config          -- MonitorSettings, SinkSettings, persisted interval
    errors          -- failure taxonomy
"""

__version__ = "0.1.0"
