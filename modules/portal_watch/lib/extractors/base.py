from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ..browser import BrowserSession, Element
from ..errors import SessionError
from ..models import Posting, Source, Variant

log = logging.getLogger(__name__)


class JobExtractor(ABC):
    """
    Per-variant extraction strategy.

    Besides mapping one listing item to a Posting, an extractor describes the
    page shape the pagination controller drives:
      - results_selector: section whose presence means the listing has loaded
      - item_selector: listing items, in document order
      - next_selectors: candidates for the "next page" control, tried in order
      - page_marker(): a value that changes when the page content changes

    Contract for extract():
      - return a Posting, or None when the item is unextractable (logged, skipped)
      - may raise SessionError/ExtractionFailure; the controller treats that as
        an unextractable item and keeps going
    """

    # Concrete subclasses MUST set these.
    variant: Variant
    results_selector: str = ""
    item_selector: str = ""
    next_selectors: tuple[str, ...] = ()

    @abstractmethod
    def extract(self, item: Element, source: Source) -> Posting | None:
        raise NotImplementedError

    def page_marker(self, session: BrowserSession) -> str | None:
        """
        Identify the current page by its first item's link target (or text).
        None when no item is present.
        """
        try:
            items = session.query(self.item_selector)
            if not items:
                return None
            first = items[0]
            links = first.query("a[href]")
            if links:
                href = links[0].attribute("href")
                if href:
                    return href
            return first.text() or None
        except SessionError:
            return None
