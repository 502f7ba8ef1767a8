# modules/portal_watch/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience.
# Importing `extractors` registers the built-in variants.
from . import extractors
from .config import ConfigError, Settings
from .engine import CycleResult, run_cycle, run_once, scrape_sources
from .models import PageRun, Posting, Source, SourceOutcome, SourceStatus, StopReason, Subscriber, Variant

__all__ = [
    "ConfigError",
    "CycleResult",
    "PageRun",
    "Posting",
    "Settings",
    "Source",
    "SourceOutcome",
    "SourceStatus",
    "StopReason",
    "Subscriber",
    "Variant",
    "extractors",
    "run_cycle",
    "run_once",
    "scrape_sources",
]
