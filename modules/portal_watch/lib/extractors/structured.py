# portal_watch/extractors/structured.py
"""
Structured-attribute extractor (Workday-style portals).

Listing items expose stable `data-automation-id` hooks:

  <li>
    <h3><a data-automation-id="jobTitle" href="...">Title</a></h3>
    <div data-automation-id="locations"><dl><dd>City, ST</dd></dl></div>
    <ul data-automation-id="subtitle"><li>R0012345</li></ul>
  </li>
"""

from __future__ import annotations

import logging
import re

from ..browser import BrowserSession, Element
from ..errors import ExtractionFailure, SessionError
from ..models import Posting, Source, Variant
from .base import JobExtractor
from .registry import register

log = logging.getLogger(__name__)

SEL_JOB_RESULTS = "[data-automation-id='jobResults']"
SEL_JOB_LIST_ITEMS = "[data-automation-id='jobResults'] ul:not([data-automation-id='subtitle']) > li"
SEL_JOB_TITLE_LINK = "h3 a[data-automation-id='jobTitle']"
SEL_LOCATION_DD = "[data-automation-id='locations'] dl dd"
SEL_REQ_ID = "ul[data-automation-id='subtitle'] li"
SEL_NEXT_BTN = "[data-uxi-widget-type='stepToNextButton']"
SEL_PAGE_ARIA = "[aria-current='page']"

_NON_DIGITS = re.compile(r"[^0-9]")


def parse_req_id_from_url(url: str | None) -> str | None:
    """
    Workday job URLs usually end with `_<reqId>`, e.g. /job/Store1046/Title_202603061.
    Take what follows the last underscore and keep its digits.
    """
    if not url:
        return None
    idx = url.rfind("_")
    if idx < 0 or idx == len(url) - 1:
        return None
    candidate = _NON_DIGITS.sub("", url[idx + 1 :])
    return candidate or None


def _first_text(item: Element, selector: str) -> str | None:
    """Trimmed text of the first match; None if absent. '' if present but blank."""
    found = item.query(selector)
    if not found:
        return None
    return (found[0].text() or "").strip()


@register
class StructuredExtractor(JobExtractor):
    variant = Variant.STRUCTURED
    results_selector = SEL_JOB_RESULTS
    item_selector = SEL_JOB_LIST_ITEMS
    next_selectors = (SEL_NEXT_BTN,)

    def extract(self, item: Element, source: Source) -> Posting | None:
        # --- Title & URL (required) ---
        anchors = item.query(SEL_JOB_TITLE_LINK)
        if not anchors:
            log.debug("  No title/link found in list item, skipping.")
            return None
        anchor = anchors[0]
        title = (anchor.text() or "").strip()
        url = (anchor.attribute("href") or "").strip()
        if not url:
            raise ExtractionFailure(f"title link for {title!r} has no href")

        # --- Location (optional) ---
        location = _first_text(item, SEL_LOCATION_DD) or None
        if location is None:
            log.debug("  No location element found for job %r", title)

        # --- Req ID: subtitle element, else URL suffix ---
        req_id = _first_text(item, SEL_REQ_ID)
        if not req_id:
            req_id = parse_req_id_from_url(url)

        if not req_id:
            log.warning("  Could not determine req_id for job %r, skipping.", title)
            return None

        return Posting(
            external_id=req_id,
            source_id=source.id,
            title=title,
            location=location,
            url=url,
            source_name=source.name,
        )

    def page_marker(self, session: BrowserSession) -> str | None:
        # The pager label can flip before the list re-renders; only trust it
        # while no item is present.
        marker = super().page_marker(session)
        if marker is not None:
            return marker
        try:
            current = session.query(SEL_PAGE_ARIA)
            label = (current[0].text() or "").strip() if current else ""
        except SessionError:
            return None
        return f"page:{label}" if label else None
