from __future__ import annotations

from typing import Any

from .lib.browser import open_session
from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity
from .lib.replay import open_replay_session
from .lib.robots import AllowAllPolicy


def run(**kwargs: Any) -> dict:
    """
    Entry point for the 'portal_watch' module: one crawl cycle.

    Accepts kwargs (from scheduler/CLI), including:
      sqlite_path: str = "/app/local/state/portalwatch.db"
      sources_path: Optional[str]  # JSON list of {"name", "url", "structured"?}
      max_pages: int = 5
      headless: bool = True
      email_to: list[str] | "a@x,b@y"
      replay_dir: Optional[str]  # recorded pages + manifest.json; no browser, no robots.txt

      # Special-run flags:
      skip_network: bool = False
      ingest_only_no_email: bool = False

    Returns the cycle summary dict (new_total, by_source, outcomes, durations_us).
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "portal_watch.main",
        "op": "start",
        "sqlite_path": settings.sqlite_path,
        "sources_path": settings.sources_path,
        "replay_dir": settings.replay_dir,
        "flags": {
            "ingest_only_no_email": settings.ingest_only_no_email,
            "skip_network": settings.skip_network,
            "headless": settings.headless,
        },
    })

    if settings.replay_dir:
        return _run_engine(settings, session_factory=open_replay_session, policy=AllowAllPolicy())
    return _run_engine(settings, session_factory=open_session)
