# service/cli.py
"""
User-facing command-line entrypoints (`portal-watch` console script).

Subcommands
-----------
run [--no-email] [--sources PATH] [--max-pages N] [--headed] [--print-summary] [--replay DIR]
    - Runs one portal_watch cycle now and prints a concise per-source summary

serve
    - Starts the APScheduler service loop via service.scheduler.start()
    - Registers signal handlers for graceful shutdown

add-source NAME URL [--free-text]
    - Inserts or updates a source (by name); its cursor is preserved

list-sources
    - Prints configured sources with their variant flag and cursor

add-subscriber EMAIL [--name NAME]
    - Adds a notification recipient
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from types import SimpleNamespace
from typing import Any

from service import logging_utils as L
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _print_table(rows: Iterable[tuple[str, ...]], headers: tuple[str, ...]) -> None:
    """Very simple column table printer."""
    rows = [tuple(str(c) for c in r) for r in rows]
    widths = [max(len(h), *(len(r[i]) for r in rows)) if rows else len(h) for i, h in enumerate(headers)]
    sep = "+-" + "-+-".join("-" * w for w in widths) + "-+"
    print(sep)
    print("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    print(sep)
    for r in rows:
        print("| " + " | ".join(c.ljust(w) for c, w in zip(r, widths)) + " |")
    print(sep)


def _sqlite_path(args: argparse.Namespace) -> str:
    from modules.portal_watch.lib.config import Settings

    return Settings.from_env_and_kwargs({"sqlite_path": args.sqlite_path}).sqlite_path


def _run_kwargs(args: argparse.Namespace) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if getattr(args, "sqlite_path", None):
        kwargs["sqlite_path"] = args.sqlite_path
    if getattr(args, "sources", None):
        kwargs["sources_path"] = args.sources
    if getattr(args, "max_pages", None):
        kwargs["max_pages"] = args.max_pages
    if getattr(args, "headed", False):
        kwargs["headless"] = False
    if getattr(args, "no_email", False):
        kwargs["ingest_only_no_email"] = True
    if getattr(args, "replay", None):
        kwargs["replay_dir"] = args.replay
    return kwargs


# ------------------------------ Subcommands ----------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    from modules.portal_watch.main import run

    start_time = time.monotonic()
    kwargs = _run_kwargs(args)
    LOG.debug("Run portal_watch with kwargs=%s", kwargs)

    try:
        summary = run(**kwargs)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "component": "service.cli",
            "op": "run",
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })
        return 1

    L.write_activity_log({
        "component": "service.cli",
        "op": "run",
        "kwargs": kwargs,
        "new_total": summary.get("new_total"),
        "duration_ms": int((time.monotonic() - start_time) * 1000),
    })

    rows = [
        (o["source"], o["status"], o["stop_reason"] or "-", o["new"], o["inserted"], o["cursor"] or "-")
        for o in summary.get("outcomes", [])
    ]
    if rows:
        _print_table(rows, headers=("SOURCE", "STATUS", "STOP", "NEW", "INSERTED", "CURSOR"))
    if args.print_summary:
        print(json.dumps(summary, indent=2, default=str))
    print(f"DONE: {summary.get('new_total', 0)} new posting(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the scheduler loop until a termination signal is received."""
    L.write_activity_log({"component": "service.cli", "op": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()
        _safe_stop("scheduler", running.sched)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        running.sched = _scheduler.start(_run_kwargs(args))
        LOG.info("Scheduler started: %r", running.sched)

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        _safe_stop("scheduler", running.sched)
        L.write_activity_log({"component": "service.cli", "op": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        _graceful_shutdown("KeyboardInterrupt")
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        _graceful_shutdown("UnhandledException")
        return 1


def cmd_add_source(args: argparse.Namespace) -> int:
    from modules.portal_watch.lib import db

    path = _sqlite_path(args)
    db.init_db(path)
    source_id = db.upsert_source(path, args.name, args.url, structured=not args.free_text)
    print(f"OK: source {args.name!r} saved (id={source_id}).")
    return 0


def cmd_list_sources(args: argparse.Namespace) -> int:
    from modules.portal_watch.lib import db

    path = _sqlite_path(args)
    db.init_db(path)
    sources = db.fetch_sources(path)
    if not sources:
        print("No sources configured.")
        return 0
    _print_table(
        ((str(s.id), s.name, "structured" if s.structured else "free_text", s.cursor_id or "-", s.url) for s in sources),
        headers=("ID", "NAME", "FLAG", "CURSOR", "URL"),
    )
    return 0


def cmd_add_subscriber(args: argparse.Namespace) -> int:
    from modules.portal_watch.lib import db

    path = _sqlite_path(args)
    db.init_db(path)
    if db.add_subscriber(path, args.email, args.name):
        print(f"OK: {args.email} subscribed.")
    else:
        print(f"{args.email} is already subscribed.")
    return 0


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a scheduler-like controller."""
    if handle is None:
        return
    try:
        handle.stop()
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)
    try:
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error joining %s", name)


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portal-watch",
        description="Incremental job-portal watcher",
    )
    p.add_argument(
        "--sqlite-path",
        help="SQLite database file (fallbacks to SQLITE_PATH env or the module default).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # run
    sp = sub.add_parser("run", help="Run one crawl cycle now.")
    sp.add_argument("--no-email", action="store_true", help="Ingest only; do not send notifications.")
    sp.add_argument("--sources", help="JSON file of sources to upsert before the cycle.")
    sp.add_argument("--max-pages", type=int, help="Page ceiling per source.")
    sp.add_argument("--headed", action="store_true", help="Show the browser window.")
    sp.add_argument("--print-summary", action="store_true", help="Print the full cycle summary as JSON.")
    sp.add_argument("--replay", metavar="DIR", help="Dry run against recorded pages (DIR/manifest.json).")
    sp.set_defaults(func=cmd_run)

    # serve
    sp = sub.add_parser("serve", help="Run cycles on the configured schedule.")
    sp.add_argument("--sources", help="JSON file of sources to upsert before each cycle.")
    sp.set_defaults(func=cmd_serve)

    # add-source
    sp = sub.add_parser("add-source", help="Add or update a source by name.")
    sp.add_argument("name")
    sp.add_argument("url")
    sp.add_argument("--free-text", action="store_true", help="Source is not a structured-attribute portal.")
    sp.set_defaults(func=cmd_add_source)

    # list-sources
    sp = sub.add_parser("list-sources", help="Print configured sources.")
    sp.set_defaults(func=cmd_list_sources)

    # add-subscriber
    sp = sub.add_parser("add-subscriber", help="Add a notification recipient.")
    sp.add_argument("email")
    sp.add_argument("--name")
    sp.set_defaults(func=cmd_add_subscriber)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
