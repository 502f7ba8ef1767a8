from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import getenv_str, split_csv, truthy

_DEFAULT_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class DelayWindow:
    """Inclusive [min_ms, max_ms] window for randomized courtesy delays."""

    min_ms: int
    max_ms: int


@dataclass(frozen=True)
class SourceSeed:
    """One entry of the optional sources file, upserted by name before a cycle."""

    name: str
    url: str
    structured: bool = True


@dataclass
class Settings:
    """
    Canonical configuration for a 'portal_watch' cycle.

    Values come from scheduler/CLI kwargs first, then environment variables,
    then the defaults below.
    """

    sqlite_path: str = "/app/local/state/portalwatch.db"
    sources_path: str | None = None

    # Crawl tuning
    max_pages: int = 5
    wait_timeout_sec: float = 20.0
    page_delay: DelayWindow = field(default_factory=lambda: DelayWindow(2000, 5000))
    source_delay: DelayWindow = field(default_factory=lambda: DelayWindow(3000, 6000))
    nav_delay: DelayWindow = field(default_factory=lambda: DelayWindow(2500, 4500))

    # Browser
    headless: bool = True
    user_agent: str = _DEFAULT_UA

    # Notification
    email_to: list[str] = field(default_factory=list)

    # Dry runs: serve recorded pages instead of a live browser
    replay_dir: str | None = None

    # Special-run flags
    skip_network: bool = False
    ingest_only_no_email: bool = False

    _seeds: list[SourceSeed] | None = field(default=None, repr=False)

    # ------------- convenience -------------
    def source_seeds(self) -> list[SourceSeed]:
        """
        Load the sources file (if configured). Cached after the first read.
        Expected shape: [{"name": "...", "url": "...", "structured": true}, ...]
        """
        if self._seeds is not None:
            return self._seeds
        if not self.sources_path:
            self._seeds = []
            return self._seeds

        try:
            with open(self.sources_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"portal_watch sources file not found: {self.sources_path}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"portal_watch sources file is invalid JSON: {self.sources_path}") from e

        self._seeds = _parse_sources_list(data)
        return self._seeds

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with env fallbacks and validation.

        Recognized kwargs (env fallback in brackets):
            sqlite_path [SQLITE_PATH]
            sources_path [PORTAL_WATCH_SOURCES]
            max_pages [MAX_PAGES]
            wait_timeout_sec [WAIT_TIMEOUT_SEC]
            page_delay_min_ms / page_delay_max_ms [PAGE_DELAY_MIN_MS / PAGE_DELAY_MAX_MS]
            source_delay_min_ms / source_delay_max_ms [SOURCE_DELAY_MIN_MS / SOURCE_DELAY_MAX_MS]
            nav_delay_min_ms / nav_delay_max_ms [NAV_DELAY_MIN_MS / NAV_DELAY_MAX_MS]
            headless [HEADLESS_BROWSER]
            user_agent [BROWSER_USER_AGENT]
            email_to [PORTAL_WATCH_EMAIL_TO]  # list or comma-separated
            replay_dir [PORTAL_WATCH_REPLAY_DIR]  # directory with manifest.json
            skip_network: bool = false
            ingest_only_no_email: bool = false
        """
        kw = dict(kwargs or {})

        def pick(key: str, env: str | None, default: Any) -> Any:
            val = kw.get(key)
            if val is None or (isinstance(val, str) and not val.strip()):
                val = getenv_str(env) if env else None
            return default if val is None else val

        try:
            settings = cls(
                sqlite_path=str(pick("sqlite_path", "SQLITE_PATH", cls.sqlite_path)).strip(),
                sources_path=(str(pick("sources_path", "PORTAL_WATCH_SOURCES", "")).strip() or None),
                max_pages=int(pick("max_pages", "MAX_PAGES", 5)),
                wait_timeout_sec=float(pick("wait_timeout_sec", "WAIT_TIMEOUT_SEC", 20.0)),
                page_delay=DelayWindow(
                    int(pick("page_delay_min_ms", "PAGE_DELAY_MIN_MS", 2000)),
                    int(pick("page_delay_max_ms", "PAGE_DELAY_MAX_MS", 5000)),
                ),
                source_delay=DelayWindow(
                    int(pick("source_delay_min_ms", "SOURCE_DELAY_MIN_MS", 3000)),
                    int(pick("source_delay_max_ms", "SOURCE_DELAY_MAX_MS", 6000)),
                ),
                nav_delay=DelayWindow(
                    int(pick("nav_delay_min_ms", "NAV_DELAY_MIN_MS", 2500)),
                    int(pick("nav_delay_max_ms", "NAV_DELAY_MAX_MS", 4500)),
                ),
                headless=truthy(pick("headless", "HEADLESS_BROWSER", True)),
                user_agent=str(pick("user_agent", "BROWSER_USER_AGENT", _DEFAULT_UA)),
                email_to=split_csv(pick("email_to", "PORTAL_WATCH_EMAIL_TO", [])),
                replay_dir=(str(pick("replay_dir", "PORTAL_WATCH_REPLAY_DIR", "")).strip() or None),
                skip_network=truthy(kw.get("skip_network")),
                ingest_only_no_email=truthy(kw.get("ingest_only_no_email")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid portal_watch setting: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _parse_sources_list(value: Any) -> list[SourceSeed]:
    """
    Parse a flat list into SourceSeed objects.
    Accepts: [{"name": "...", "url": "...", "structured": bool}, ...]
    """
    if not value:
        return []
    if not isinstance(value, list):
        raise ConfigError("Expected a list of source objects.")
    out: list[SourceSeed] = []
    for i, item in enumerate(value):
        if not isinstance(item, dict):
            raise ConfigError(f"Item[{i}] must be an object.")
        name = str(item.get("name") or "").strip()
        url = str(item.get("url") or "").strip()
        if not name or not url:
            raise ConfigError(f"Item[{i}] requires 'name' and 'url'.")
        structured = truthy(item["structured"]) if "structured" in item else True
        out.append(SourceSeed(name=name, url=url, structured=structured))
    return out


def _validate_settings(s: Settings) -> None:
    if not s.sqlite_path:
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.max_pages <= 0:
        raise ConfigError("'max_pages' must be >= 1.")
    if s.wait_timeout_sec <= 0:
        raise ConfigError("'wait_timeout_sec' must be > 0.")
    for label, window in (
        ("page_delay", s.page_delay),
        ("source_delay", s.source_delay),
        ("nav_delay", s.nav_delay),
    ):
        if window.min_ms < 0 or window.max_ms < window.min_ms:
            raise ConfigError(f"'{label}' window must satisfy 0 <= min <= max (got {window}).")

    if s.replay_dir and not os.path.isdir(s.replay_dir):
        raise ConfigError(f"replay_dir is not a directory: {s.replay_dir}")

    # Fail fast on a broken sources file rather than mid-cycle.
    s.source_seeds()
