from datetime import datetime, timedelta, timezone

import pytest
import pytz

from service import scheduler


def test_interval_env_wins_over_cron():
    trig = scheduler.build_trigger(pytz.UTC, {"PORTAL_WATCH_INTERVAL_MIN": "30", "PORTAL_WATCH_CRON": "0 3 * * *"})

    assert hasattr(trig, "interval")
    assert trig.interval.total_seconds() == 1800

    ts = datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    times = scheduler.preview_trigger(trig, pytz.UTC, count=2, start=ts)
    assert times[0] == ts + timedelta(minutes=30)
    assert times[1] == ts + timedelta(minutes=60)


def test_default_cron_fires_every_six_hours():
    trig = scheduler.build_trigger(pytz.UTC, {})

    start = datetime(2099, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    times = scheduler.preview_trigger(trig, pytz.UTC, count=3, start=start)

    assert [t.hour for t in times] == [6, 12, 18]
    assert all(t.minute == 0 and t.second == 0 for t in times)


def test_custom_cron_expression():
    trig = scheduler.build_trigger(pytz.UTC, {"PORTAL_WATCH_CRON": "30 8 * * mon-fri"})

    # 2099-01-02 is a Friday
    start = datetime(2099, 1, 2, 9, 0, 0, tzinfo=timezone.utc)
    (nxt,) = scheduler.preview_trigger(trig, pytz.UTC, count=1, start=start)

    assert nxt.weekday() == 0
    assert (nxt.hour, nxt.minute) == (8, 30)


@pytest.mark.parametrize("cron", ["0 */6 * *", "0 0 */6 * * *"])
def test_cron_with_wrong_field_count_is_rejected(cron):
    with pytest.raises(ValueError):
        scheduler.build_trigger(pytz.UTC, {"PORTAL_WATCH_CRON": cron})


@pytest.mark.parametrize("interval", ["soon", "0", "-5"])
def test_invalid_interval_is_rejected(interval):
    with pytest.raises(ValueError):
        scheduler.build_trigger(pytz.UTC, {"PORTAL_WATCH_INTERVAL_MIN": interval})


def test_unknown_timezone_falls_back_to_utc(monkeypatch):
    monkeypatch.setenv("TZ", "Mars/Olympus_Mons")
    assert scheduler._resolve_timezone() is pytz.UTC


def test_start_registers_single_job_and_stops():
    calls = []
    ctl = scheduler.start({"skip_network": True}, job=lambda **kw: calls.append(kw))
    try:
        assert list(ctl.get_job_ids()) == [scheduler.JOB_ID]
    finally:
        ctl.stop()
    assert ctl.join(timeout=1.0)
