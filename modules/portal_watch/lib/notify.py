from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from . import logging_bridge, render
from .models import Posting

log = logging.getLogger(__name__)

SUBJECT = "New job postings detected"


def _default_send(**kwargs) -> str:
    from service.emailer import send_html

    return send_html(**kwargs)


def _dedupe_recipients(recipients: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for r in recipients:
        addr = (r or "").strip()
        if addr and addr.lower() not in seen:
            seen.add(addr.lower())
            out.append(addr)
    return out


class EmailNotifier:
    """
    Best-effort HTML email of newly detected postings.

    `send` has the signature of `service.emailer.send_html` and is injectable
    for tests. Failures are logged and never raised to the caller.
    """

    def __init__(self, send: Callable[..., str] | None = None) -> None:
        self._send = send or _default_send

    def notify(self, recipients: Iterable[str], postings: list[Posting]) -> str | None:
        """Send one email to all recipients; returns the Message-ID, or None if nothing was sent."""
        to = _dedupe_recipients(recipients)
        if not postings:
            log.info("No new postings; nothing to notify.")
            return None
        if not to:
            log.warning("%d new postings but no recipients configured.", len(postings))
            return None

        intro = render.summary_message(postings)
        html = render.wrap_document(render.build_table(postings), heading="Portal Watch", intro=intro)
        try:
            message_id = self._send(subject=SUBJECT, html=html, to=to)
        except Exception as e:
            log.error("Failed to send notification: %r", e)
            logging_bridge.error({
                "component": "portal_watch.notify",
                "op": "send",
                "recipients": len(to),
                "postings": len(postings),
                "error": repr(e),
            })
            return None

        logging_bridge.activity({
            "component": "portal_watch.notify",
            "op": "sent",
            "recipients": len(to),
            "postings": len(postings),
            "message_id": message_id,
        })
        return message_id
