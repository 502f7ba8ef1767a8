# portal_watch/extractors/free_text.py
"""
Free-text heuristic extractor (Akkodis-style portals).

Listing items only carry a generic job link and loosely structured text, e.g.

    Senior Engineer
    Reference Number 55512345
    place Paris, France calendar_today 2 days ago

(`place` / `calendar_today` / `work_outline` are Material icon ligatures that
leak into the text content.)

All string heuristics live in pure functions (`parse_free_text` and helpers)
so they can be tested against fixed text without a browser. The extractor
only gathers raw strings from the item; any lookup failure there counts as
"field not found" and never escapes the item.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlparse

from ..browser import Element
from ..errors import SessionError
from ..models import Posting, Source, Variant
from ..utils import collapse_ws
from .base import JobExtractor
from .registry import register

log = logging.getLogger(__name__)

SEL_JOB_CONTAINER = "ul[class*='JobSearchResults_filter-results-container']"
SEL_JOB_ITEMS = "ul[class*='JobSearchResults_filter-results-container'] > li"
SEL_JOB_LINK = "a[href*='/job']"
SEL_NEXT_CONTROLS = (
    "a:has(span[class*='pagination_pagination-right-arrow'])",
    "button:has(span[class*='pagination_pagination-right-arrow'])",
    "span[class*='pagination_pagination-right-arrow']",
    "span[class*='pagination-right-arrow']",
)

REF_SELECTORS = (
    "[class*='reference']",
    "[class*='ref']",
    "[class*='req']",
    "[class*='job-id']",
    "[data-automation-id*='req']",
    "[data-automation-id*='reference']",
)
LOCATION_SELECTORS = (
    "[class*='location']",
    "[class*='Location']",
    "[data-automation-id*='location']",
    "[class*='address']",
)

# Title cut markers, in priority order (line break is tried last).
TITLE_MARKERS = ("Reference Number", "work_outline")

_DIGITS_5 = re.compile(r"\d{5,}")
_REFERENCE_PHRASE = re.compile(r"reference\s*(?:number|no\.?|#)?\s*:?\s*(\d{5,})", re.I)
_URL_ID_8 = re.compile(r"/(\d{8,})\b")
_URL_ID_5 = re.compile(r"/(\d{5,})\b")
_PLACE_PHRASE = re.compile(r"\bplace\s+(.+?)(?:\s+calendar_today\b|$)", re.I)
_CITY_REGION = re.compile(r"\b([A-Za-z][A-Za-z .'-]+,\s*[A-Za-z][A-Za-z .'-]+)\b")


@dataclass(frozen=True)
class FreeTextFields:
    """Posting fields recovered from unstructured item text."""

    external_id: str
    title: str | None
    location: str | None


# =============================================================================
# PURE HEURISTICS
# =============================================================================
def extract_title(text: str | None) -> str | None:
    """
    Cut the title at the first known marker phrase, else at the first line
    break; otherwise return the text as-is. Returns None for blank input.
    """
    candidate = (text or "").strip()
    if not candidate:
        return None

    lowered = candidate.lower()
    for marker in TITLE_MARKERS:
        idx = lowered.find(marker.lower())
        if idx > 0:
            title = collapse_ws(candidate[:idx])
            if title:
                return title

    idx = candidate.find("\n")
    if idx > 0:
        title = candidate[:idx].strip()
        if title:
            return title

    return collapse_ws(candidate)


def extract_location(text: str | None) -> str | None:
    """
    Find a location in item text: a "place <location> calendar_today" phrase
    first, then a generic "City, Region" phrase.
    """
    normalized = collapse_ws(text)
    if not normalized:
        return None

    m = _PLACE_PHRASE.search(normalized)
    if m:
        location = m.group(1).strip()
        if location:
            return location

    m = _CITY_REGION.search(normalized)
    if m:
        return m.group(1).strip()
    return None


def parse_id_from_url(url: str | None) -> str | None:
    """Numeric id from URL path segments: an 8+ digit run wins over a 5+ digit run."""
    if not url:
        return None
    path = urlparse(url).path or url
    for pattern in (_URL_ID_8, _URL_ID_5):
        m = pattern.search(path)
        if m:
            return m.group(1)
    return None


def find_external_id(raw_text: str | None, raw_url: str | None, ref_texts: Iterable[str] = ()) -> str | None:
    """
    Resolve the external id, first hit wins:
      1. a 5+ digit run inside a reference-like element's text
      2. a "Reference Number 12345678" phrase in the item text
      3. an 8+ then 5+ digit path segment of the job URL
    """
    for text in ref_texts:
        m = _DIGITS_5.search(text or "")
        if m:
            return m.group(0)

    m = _REFERENCE_PHRASE.search(raw_text or "")
    if m:
        return m.group(1)

    return parse_id_from_url(raw_url)


def parse_free_text(
    raw_text: str | None,
    raw_url: str | None,
    *,
    anchor_text: str | None = None,
    ref_texts: Iterable[str] = (),
    location_texts: Iterable[str] = (),
) -> FreeTextFields | None:
    """
    Map an item's raw strings to posting fields.

    `raw_text` is the whole item's text, `raw_url` the job link target.
    Optional hints gathered from the item: the link's own text and the texts
    of reference-like and location-like elements.

    Returns None when no external id can be resolved (the item is dropped).
    """
    external_id = find_external_id(raw_text, raw_url, ref_texts)
    if not external_id:
        return None

    title = extract_title(anchor_text if (anchor_text or "").strip() else raw_text)

    location = None
    for text in location_texts:
        location = extract_location(text) or collapse_ws(text) or None
        if location:
            break
    if not location:
        location = extract_location(raw_text)

    return FreeTextFields(external_id=external_id, title=title, location=location)


# =============================================================================
# EXTRACTOR
# =============================================================================
def _safe_text(el: Element) -> str:
    try:
        return el.text() or ""
    except SessionError:
        return ""


def _texts(item: Element, selectors: Iterable[str]) -> list[str]:
    """Texts of all elements matching any selector; lookup failures yield nothing."""
    out: list[str] = []
    for sel in selectors:
        try:
            found = item.query(sel)
        except Exception as e:
            log.debug("  Lookup %r failed: %r", sel, e)
            continue
        for el in found:
            text = _safe_text(el).strip()
            if text:
                out.append(text)
    return out


@register
class FreeTextExtractor(JobExtractor):
    variant = Variant.FREE_TEXT
    results_selector = SEL_JOB_CONTAINER
    item_selector = SEL_JOB_ITEMS
    next_selectors = SEL_NEXT_CONTROLS

    def extract(self, item: Element, source: Source) -> Posting | None:
        try:
            links = item.query(SEL_JOB_LINK)
        except Exception as e:
            log.debug("  Job link lookup failed: %r", e)
            links = []
        if not links:
            log.debug("  No job link in item, skipping.")
            return None

        link = links[0]
        try:
            href = (link.attribute("href") or "").strip()
        except Exception:
            href = ""

        fields = parse_free_text(
            _safe_text(item),
            href,
            anchor_text=_safe_text(link),
            ref_texts=_texts(item, REF_SELECTORS),
            location_texts=_texts(item, LOCATION_SELECTORS),
        )
        if fields is None:
            log.warning("  Could not determine req_id for item at %r, skipping.", href)
            return None

        return Posting(
            external_id=fields.external_id,
            source_id=source.id,
            title=fields.title or "",
            location=fields.location,
            url=href,
            source_name=source.name,
        )
