"""
Cycle orchestration: sources → policy gate → router → page loop → store → cursor.

Features:
  - Strictly sequential: one source is fully scraped before the next begins
  - One browser session per cycle, released on every exit path
  - Typed per-source outcome; one source's failure never aborts the cycle
  - Cursor re-anchored only after the source's postings were inserted
  - Special modes: `skip_network`, `ingest_only_no_email`
  - Collaborators injectable for tests (session factory, store, policy, notifier)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from typing import Any, Protocol

from . import extractors, logging_bridge, router
from .browser import BrowserSession, open_session
from .config import DelayWindow, Settings
from .cursor import CursorTracker
from .db import SqliteStore
from .errors import PersistenceFailure, PolicyDenied
from .models import Posting, Source, SourceOutcome, SourceStatus, StopReason
from .notify import EmailNotifier
from .pagination import PaginationController
from .politeness import Politeness
from .robots import RobotsPolicy

log = logging.getLogger(__name__)


class Store(Protocol):
    def fetch_sources(self) -> list[Source]: ...

    def exists(self, external_id: str, source_id: int) -> bool: ...

    def insert_batch(self, postings: Iterable[Posting]) -> int: ...

    def update_cursor(self, source_id: int, external_id: str) -> None: ...


class PolicyGate(Protocol):
    def is_allowed(self, url: str) -> bool: ...


class CycleResult(list):
    """New postings of one cycle (a plain list), plus each source's outcome."""

    def __init__(self, postings: Iterable[Posting] = (), outcomes: Iterable[SourceOutcome] = ()) -> None:
        super().__init__(postings)
        self.outcomes: list[SourceOutcome] = list(outcomes)


def _elapsed_us(t0: int) -> int:
    return int((time.perf_counter_ns() - t0) // 1000)


# =============================================================================
# PER-SOURCE LOOP
# =============================================================================
def scrape_sources(
    sources: Iterable[Source],
    *,
    session: BrowserSession,
    store: Store,
    policy: PolicyGate,
    controller: PaginationController,
    politeness: Politeness | None = None,
    source_delay: DelayWindow = DelayWindow(0, 0),
) -> list[SourceOutcome]:
    """Scrape each source in order and return one outcome per source."""
    politeness = politeness or Politeness()
    tracker = CursorTracker(store)
    outcomes: list[SourceOutcome] = []

    for i, source in enumerate(sources):
        if i > 0:
            politeness.pause(source_delay)

        t0 = time.perf_counter_ns()
        outcome = _scrape_one(source, session=session, store=store, policy=policy, controller=controller, tracker=tracker)
        outcome.duration_us = _elapsed_us(t0)
        _log_outcome(outcome)
        outcomes.append(outcome)

    return outcomes


def _scrape_one(
    source: Source,
    *,
    session: BrowserSession,
    store: Store,
    policy: PolicyGate,
    controller: PaginationController,
    tracker: CursorTracker,
) -> SourceOutcome:
    try:
        try:
            allowed = policy.is_allowed(source.url)
        except PolicyDenied as e:
            return _policy_skip(source, str(e))
        if not allowed:
            return _policy_skip(source, f"robots.txt disallows {source.url}")

        variant = router.classify(source)
        if variant is None:
            return SourceOutcome(source=source, status=SourceStatus.SKIPPED, reason="no compatible scraper")

        run = controller.run(source, extractors.for_variant(variant), session)
        if run.stop_reason is StopReason.ABORTED:
            return SourceOutcome(
                source=source,
                status=SourceStatus.ERROR,
                stop_reason=run.stop_reason,
                reason="navigation timeout",
            )

        inserted = store.insert_batch(run.postings) if run.postings else 0
        tracker.commit(source, run.new_cursor)

        partial = run.stop_reason is StopReason.PAGE_LIMIT or run.dropped > 0
        return SourceOutcome(
            source=source,
            status=SourceStatus.PARTIAL if partial else SourceStatus.SUCCESS,
            postings=list(run.postings),
            inserted=inserted,
            new_cursor=run.new_cursor,
            stop_reason=run.stop_reason,
            dropped=run.dropped,
        )

    except PersistenceFailure as e:
        log.error("Persistence failed for %r; cursor left at %r: %s", source.name, source.cursor_id, e)
        return SourceOutcome(source=source, status=SourceStatus.ERROR, reason="persistence failure", error=repr(e))

    except Exception as e:
        log.exception("Unexpected failure scraping %r", source.name)
        return SourceOutcome(source=source, status=SourceStatus.ERROR, reason="unexpected failure", error=repr(e))


def _policy_skip(source: Source, detail: str) -> SourceOutcome:
    log.warning("Skipping %r: %s", source.name, detail)
    logging_bridge.activity({
        "component": "portal_watch.engine",
        "op": "policy_denied",
        "source": source.name,
        "url": source.url,
        "detail": detail,
    })
    return SourceOutcome(source=source, status=SourceStatus.SKIPPED, reason="policy denied")


def _log_outcome(o: SourceOutcome) -> None:
    record: dict[str, Any] = {
        "component": "portal_watch.engine",
        "op": "source_outcome",
        "source": o.source.name,
        "status": o.status.value,
        "stop_reason": o.stop_reason.value if o.stop_reason else None,
        "new": len(o.postings),
        "inserted": o.inserted,
        "dropped": o.dropped,
        "cursor": o.source.cursor_id,
        "reason": o.reason or None,
        "duration_us": o.duration_us,
    }
    if o.status is SourceStatus.ERROR:
        record["error"] = o.error
        logging_bridge.error(record)
    else:
        logging_bridge.activity(record)


# =============================================================================
# CYCLE
# =============================================================================
def run_cycle(
    sources: Iterable[Source],
    *,
    session: BrowserSession,
    store: Store,
    policy: PolicyGate,
    settings: Settings,
    politeness: Politeness | None = None,
) -> CycleResult:
    """
    All newly detected postings across all sources, in source then document
    order. Persistence and cursor updates are applied before this returns.
    The per-source outcomes ride along on `.outcomes`.
    """
    outcomes = scrape_sources(
        sources,
        session=session,
        store=store,
        policy=policy,
        controller=_controller(settings, store, politeness),
        politeness=politeness,
        source_delay=settings.source_delay,
    )
    return CycleResult(_new_postings(outcomes), outcomes)


def _controller(settings: Settings, store: Store, politeness: Politeness | None) -> PaginationController:
    return PaginationController.from_settings(
        settings,
        politeness=politeness,
        is_known=lambda p: store.exists(p.external_id, p.source_id),
    )


def _new_postings(outcomes: Iterable[SourceOutcome]) -> list[Posting]:
    out: list[Posting] = []
    for o in outcomes:
        if o.status in (SourceStatus.SUCCESS, SourceStatus.PARTIAL):
            out.extend(o.postings)
    return out


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    session_factory: Callable[[Settings], AbstractContextManager[BrowserSession]] = open_session,
    store: SqliteStore | None = None,
    policy: PolicyGate | None = None,
    notifier: EmailNotifier | None = None,
    politeness: Politeness | None = None,
) -> dict:
    """
    Run one complete cycle: seed sources, scrape, persist, re-anchor cursors,
    notify.

    Returns a summary dict:
        new_total, by_source, outcomes, durations_us, message_id
    """
    start_ns = time.perf_counter_ns()
    store = store or SqliteStore(settings.sqlite_path)
    store.init()
    for seed in settings.source_seeds():
        store.upsert_source(seed.name, seed.url, seed.structured)
    sources = store.fetch_sources()

    logging_bridge.activity({
        "component": "portal_watch.engine",
        "op": "cycle_start",
        "sources": [s.name for s in sources],
        "max_pages": settings.max_pages,
        "skip_network": settings.skip_network,
        "ingest_only_no_email": settings.ingest_only_no_email,
    })

    outcomes: list[SourceOutcome] = []
    if settings.skip_network:
        log.info("skip_network set; not opening a browser session.")
    elif sources:
        owns_policy = policy is None
        gate = policy or RobotsPolicy()
        try:
            with session_factory(settings) as session:
                cycle = run_cycle(
                    sources,
                    session=session,
                    store=store,
                    policy=gate,
                    settings=settings,
                    politeness=politeness,
                )
            outcomes = cycle.outcomes
        except Exception as e:
            logging_bridge.error({
                "component": "portal_watch.engine",
                "op": "session",
                "error": repr(e),
            })
            raise
        finally:
            if owns_policy and isinstance(gate, RobotsPolicy):
                gate.close()
    else:
        log.warning("No sources configured.")

    new_postings = _new_postings(outcomes)

    message_id = None
    if settings.ingest_only_no_email:
        log.info("ingest_only_no_email set; not notifying.")
    elif new_postings:
        recipients = [s.email for s in store.fetch_subscribers()] + list(settings.email_to)
        message_id = (notifier or EmailNotifier()).notify(recipients, new_postings)

    total_us = _elapsed_us(start_ns)
    by_source = {o.source.name: len(o.postings) for o in outcomes}
    durations_us = {o.source.name: o.duration_us for o in outcomes}

    logging_bridge.activity({
        "component": "portal_watch.engine",
        "op": "summary",
        "new_by_source": by_source,
        "inserted_by_source": {o.source.name: o.inserted for o in outcomes},
        "status_by_source": {o.source.name: o.status.value for o in outcomes},
        "new_total": len(new_postings),
        "notified": message_id is not None,
        "durations_us": durations_us,
        "total_us": total_us,
    })

    return {
        "new_total": len(new_postings),
        "by_source": by_source,
        "outcomes": [
            {
                "source": o.source.name,
                "status": o.status.value,
                "stop_reason": o.stop_reason.value if o.stop_reason else None,
                "new": len(o.postings),
                "inserted": o.inserted,
                "dropped": o.dropped,
                "cursor": o.source.cursor_id,
                "reason": o.reason,
                "error": o.error,
            }
            for o in outcomes
        ],
        "durations_us": {**durations_us, "_total_us": total_us},
        "message_id": message_id,
    }
