# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

JOB_ID = "portal_watch"
DEFAULT_CRON = "0 */6 * * *"


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """
    A small façade around APScheduler so the CLI can manage lifecycle cleanly.
    """

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        """Promptly shut down APScheduler; an in-flight cycle is allowed to finish."""
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until the scheduler is fully stopped (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def start(
    run_kwargs: dict[str, Any] | None = None,
    *,
    job: Callable[..., Any] | None = None,
) -> SchedulerController:
    """
    Build a BackgroundScheduler with a single portal_watch job and start it.

    Schedule from env: PORTAL_WATCH_INTERVAL_MIN (minutes) wins over
    PORTAL_WATCH_CRON (crontab, default every six hours). One instance at a
    time; missed runs are coalesced.

    Notes:
      * APScheduler 3.x prefers a pytz scheduler timezone (TZ env, else UTC).
    """
    tz = _resolve_timezone()
    trigger = build_trigger(tz)

    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )
    _add_job(scheduler, trigger, dict(run_kwargs or {}), job)
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def build_trigger(tz, env: dict[str, str] | None = None) -> Any:
    """
    Translate the schedule env vars into an APScheduler trigger.

      PORTAL_WATCH_INTERVAL_MIN=30       → IntervalTrigger(minutes=30)
      PORTAL_WATCH_CRON="0 */6 * * *"    → CronTrigger.from_crontab(...)
    """
    env = os.environ if env is None else env

    interval = (env.get("PORTAL_WATCH_INTERVAL_MIN") or "").strip()
    if interval:
        try:
            minutes = int(interval)
        except ValueError as err:
            raise ValueError(f"PORTAL_WATCH_INTERVAL_MIN must be an integer (got {interval!r})") from err
        if minutes <= 0:
            raise ValueError("PORTAL_WATCH_INTERVAL_MIN must be > 0")
        return IntervalTrigger(minutes=minutes, timezone=tz)

    cron = (env.get("PORTAL_WATCH_CRON") or "").strip() or DEFAULT_CRON
    fields = cron.split()
    if len(fields) != 5:
        raise ValueError(f"PORTAL_WATCH_CRON must have 5 fields (got {len(fields)}): {cron!r}")
    return CronTrigger.from_crontab(cron, timezone=tz)


# ---- Helpers ----------------------------------------------------------------


def preview_trigger(trigger, tz, count: int = 6, start: datetime | None = None) -> list[datetime]:
    """
    Return next `count` fire times for visibility in logs.
    Seeds previous_fire_time = now = `start` (or "now" in tz), then advances
    `now` by 1µs after each hit so the next lookup moves forward.
    """
    now = start or datetime.now(tz=tz)
    prev = now
    times = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def _resolve_timezone():
    tz_name = os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _default_job(**kwargs: Any) -> dict:
    from modules.portal_watch.main import run

    return run(**kwargs)


def _add_job(
    scheduler: BackgroundScheduler,
    trigger: Any,
    run_kwargs: dict[str, Any],
    job: Callable[..., Any] | None,
) -> None:
    func = job or _default_job

    def _job_wrapper():
        started = _time.monotonic()
        LOG.info("Job[%s] starting", JOB_ID)
        try:
            result = func(**run_kwargs)
        except Exception:
            LOG.exception("Job[%s] raised an exception.", JOB_ID)
            _write_activity(status="error", duration_s=_time.monotonic() - started)
            return

        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", JOB_ID, duration)
        new_total = result.get("new_total") if isinstance(result, dict) else None
        _write_activity(status="ok", duration_s=duration, new_total=new_total)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=trigger,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    upcoming = preview_trigger(trigger, scheduler.timezone, count=3)
    LOG.info("Registered job[%s] trigger=%s next=%s", JOB_ID, trigger, [t.isoformat() for t in upcoming])


def _write_activity(status: str, duration_s: float, new_total: int | None = None) -> None:
    """Best-effort activity record; non-fatal on errors."""
    try:
        write_activity_log({
            "component": "service.scheduler",
            "op": "job_run",
            "job_id": JOB_ID,
            "status": status,
            "duration_ms": int(duration_s * 1000),
            "new_total": new_total,
        })
    except Exception:
        LOG.debug("write_activity_log failed for job[%s]", JOB_ID, exc_info=True)
