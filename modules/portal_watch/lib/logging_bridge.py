from __future__ import annotations

import copy
import logging
from typing import Any

from service import logging_utils as _sink

# Keys that should be redacted from structured logs
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "smtp_password",
    "smtp_token",
    "bridge_password",
    "authorization",
    "auth",
    "bearer",
    "cookie",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact obvious secret-like fields at top level.
    The JSONL sink performs a deep pass as well.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.startswith("smtp_") or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record to the JSONL sink.
    Falls back to stdlib logging as structured info if the sink fails.
    """
    payload = _redact_record(record)
    try:
        _sink.write_activity_log(payload)
        return
    except Exception:
        logging.getLogger("portal_watch.bridge").debug("activity sink failed", exc_info=True)
    logging.getLogger("portal_watch.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write an error record to the JSONL sink.
    Falls back to stdlib logging as structured error if the sink fails.
    """
    payload = _redact_record(record)
    try:
        _sink.write_error_log(payload)
        return
    except Exception:
        logging.getLogger("portal_watch.bridge").debug("error sink failed", exc_info=True)
    logging.getLogger("portal_watch.error").error(payload)
