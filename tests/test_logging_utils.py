import json
import os

from freezegun import freeze_time

from modules.portal_watch.lib import logging_bridge
from service import logging_utils


def _lines(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_log_file_is_named_by_prefix_and_day(frozen_utc):
    path = logging_utils.get_activity_log_path()
    assert os.path.basename(path) == "activity-test-2025-01-01.jsonl"
    assert os.path.basename(logging_utils.get_error_log_path()) == "error-test-2025-01-01.jsonl"


def test_day_rollover_starts_a_new_file():
    with freeze_time("2025-03-01 23:59:59"):
        logging_utils.write_activity_log({"op": "a"})
        first = logging_utils.get_activity_log_path()
    with freeze_time("2025-03-02 00:00:01"):
        logging_utils.write_activity_log({"op": "b"})
        second = logging_utils.get_activity_log_path()

    assert first != second
    assert [r["op"] for r in _lines(first)] == ["a"]
    assert [r["op"] for r in _lines(second)] == ["b"]


def test_records_are_redacted_and_enriched():
    logging_utils.write_error_log({"op": "send", "smtp_password": "hunter2", "nested": {"api_token": "x"}})
    (rec,) = _lines(logging_utils.get_error_log_path())

    assert rec["smtp_password"] == "***REDACTED***"
    assert rec["nested"]["api_token"] == "***REDACTED***"
    assert "host" in rec["_meta"] and "pid" in rec["_meta"]


def test_bearer_values_are_scrubbed():
    out = logging_utils.redact({"header": "Bearer abc.def"})
    assert out["header"] == "Bearer ***REDACTED***"


def test_bridge_writes_through_to_sink():
    logging_bridge.activity({"component": "portal_watch.test", "op": "ping", "password": "p"})
    (rec,) = _lines(logging_utils.get_activity_log_path())
    assert rec["op"] == "ping"
    assert rec["password"] == "***REDACTED***"


def test_bridge_falls_back_to_stdlib_logging(monkeypatch, caplog):
    def broken(_record):
        raise OSError("read-only")

    monkeypatch.setattr(logging_utils, "write_error_log", broken)
    with caplog.at_level("ERROR", logger="portal_watch.error"):
        logging_bridge.error({"op": "x"})
    assert any("'op': 'x'" in r.getMessage() for r in caplog.records)
