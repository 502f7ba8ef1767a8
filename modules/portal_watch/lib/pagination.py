"""
Shared page loop for every extractor variant.

    navigate → wait for results ─┬─ timeout ────────────────► ABORTED
                                 └─ ready → page loop:
        items? ── none ──────────────────────────────────────► EMPTY_PAGE
        classify in document order:
            external_id == cursor ───────────────────────────► CURSOR_HIT
            unknown to the store → accumulate
        page == max_pages ───────────────────────────────────► PAGE_LIMIT
        advance (click next, wait for change) ── fails ──────► NO_MORE_PAGES
                                              └─ ok → next page

Items are extracted lazily, one at a time, so nothing at or after the cursor
match is ever examined. Every terminal state returns the postings gathered so
far together with the new cursor (page 1's first extracted item).
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .browser import BrowserSession, Element
from .config import DelayWindow, Settings
from .errors import NavigationTimeout, PaginationFailure, SessionError
from .extractors.base import JobExtractor
from .models import PageRun, Posting, Source, StopReason
from .politeness import Politeness

log = logging.getLogger(__name__)

_SCROLL_JS = "arguments[0].scrollIntoView({block: 'center'});"
_CLICK_JS = "arguments[0].click();"


def _never_known(_posting: Posting) -> bool:
    return False


class PaginationController:
    """
    Drives one source's listing to a terminal state.

    `is_known(posting)` answers "already persisted?"; known postings are not
    accumulated but still count for the cursor and the early stop.
    """

    def __init__(
        self,
        *,
        max_pages: int = 5,
        wait_timeout: float = 20.0,
        politeness: Politeness | None = None,
        page_delay: DelayWindow = DelayWindow(0, 0),
        nav_delay: DelayWindow = DelayWindow(0, 0),
        is_known: Callable[[Posting], bool] | None = None,
    ) -> None:
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.max_pages = max_pages
        self.wait_timeout = wait_timeout
        self.politeness = politeness or Politeness()
        self.page_delay = page_delay
        self.nav_delay = nav_delay
        self.is_known = is_known or _never_known

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        politeness: Politeness | None = None,
        is_known: Callable[[Posting], bool] | None = None,
    ) -> PaginationController:
        return cls(
            max_pages=settings.max_pages,
            wait_timeout=settings.wait_timeout_sec,
            politeness=politeness,
            page_delay=settings.page_delay,
            nav_delay=settings.nav_delay,
            is_known=is_known,
        )

    # =========================================================================
    # RUN
    # =========================================================================
    def run(self, source: Source, extractor: JobExtractor, session: BrowserSession) -> PageRun:
        result = PageRun()
        log.info("Scraping %r (%s), cursor=%r", source.name, source.url, source.cursor_id)

        try:
            self._open(source, extractor, session)
        except NavigationTimeout as e:
            log.error("Aborting %r: %s", source.name, e)
            result.stop_reason = StopReason.ABORTED
            return result

        seen: set[str] = set()
        page = 1
        while True:
            result.pages_visited = page
            log.info("Page %d of %r", page, source.name)

            stop = self._classify_page(source, extractor, session, page, result, seen)
            if stop is not None:
                result.stop_reason = stop
                break

            if page >= self.max_pages:
                log.info("Reached page limit (%d) for %r.", self.max_pages, source.name)
                result.stop_reason = StopReason.PAGE_LIMIT
                break

            try:
                self._advance(extractor, session)
            except PaginationFailure as e:
                log.info("No more pages for %r: %s", source.name, e)
                result.stop_reason = StopReason.NO_MORE_PAGES
                break

            page += 1
            self.politeness.pause(self.page_delay)

        log.info(
            "Finished %r: %d new, stop=%s, pages=%d, dropped=%d, new_cursor=%r",
            source.name,
            len(result.postings),
            result.stop_reason.value,
            result.pages_visited,
            result.dropped,
            result.new_cursor,
        )
        return result

    # =========================================================================
    # STEPS
    # =========================================================================
    def _open(self, source: Source, extractor: JobExtractor, session: BrowserSession) -> None:
        try:
            session.navigate(source.url)
        except SessionError as e:
            raise NavigationTimeout(f"could not load {source.url}: {e}") from e
        self.politeness.pause(self.nav_delay)

        ready = session.wait_until(lambda: bool(session.query(extractor.results_selector)), self.wait_timeout)
        if not ready:
            raise NavigationTimeout(f"results did not appear within {self.wait_timeout:g}s at {source.url}")

    def _classify_page(
        self,
        source: Source,
        extractor: JobExtractor,
        session: BrowserSession,
        page: int,
        result: PageRun,
        seen: set[str],
    ) -> StopReason | None:
        """Walk one page in document order. Returns a stop reason, or None to keep paging."""
        items = session.query(extractor.item_selector)
        if not items:
            log.info("Page %d of %r has no listing items.", page, source.name)
            return StopReason.EMPTY_PAGE

        extracted = 0
        for position, item in enumerate(items):
            posting = self._extract(extractor, item, source, page, position)
            if posting is None:
                result.dropped += 1
                continue
            extracted += 1

            if page == 1 and result.new_cursor is None:
                result.new_cursor = posting.external_id

            if source.cursor_id and posting.external_id == source.cursor_id:
                log.info(
                    "Cursor %r hit on page %d, position %d; stopping.",
                    source.cursor_id,
                    page,
                    position,
                )
                return StopReason.CURSOR_HIT

            if posting.external_id in seen:
                continue
            seen.add(posting.external_id)

            if self.is_known(posting):
                log.debug("  Already stored: %s", posting.external_id)
                continue
            result.postings.append(posting)

        if not extracted:
            log.info("Page %d of %r yielded no extractable items.", page, source.name)
            return StopReason.EMPTY_PAGE
        return None

    def _extract(
        self,
        extractor: JobExtractor,
        item: Element,
        source: Source,
        page: int,
        position: int,
    ) -> Posting | None:
        try:
            return extractor.extract(item, source)
        except Exception as e:
            log.warning("  Item %d on page %d of %r unextractable: %r", position, page, source.name, e)
            return None

    def _advance(self, extractor: JobExtractor, session: BrowserSession) -> None:
        """Click the next-page control and wait for the listing to change."""
        control = _find_next_control(session, extractor.next_selectors)
        if control is None:
            raise PaginationFailure("no enabled next-page control")

        before = extractor.page_marker(session)
        items = session.query(extractor.item_selector)
        first = items[0] if items else None

        try:
            session.run_script(_SCROLL_JS, control)
        except SessionError as e:
            log.debug("Scroll to next control failed: %r", e)

        try:
            control.click()
        except SessionError:
            try:
                session.run_script(_CLICK_JS, control)
            except SessionError as e:
                raise PaginationFailure(f"next-page click failed: {e}") from e

        def changed() -> bool:
            if first is not None and first.is_stale():
                return True
            after = extractor.page_marker(session)
            return after is not None and after != before

        if not session.wait_until(changed, self.wait_timeout):
            raise PaginationFailure("listing did not change after clicking next")

        session.wait_until(lambda: bool(session.query(extractor.item_selector)), self.wait_timeout)


def _is_disabled(el: Element) -> bool:
    try:
        disabled = el.attribute("disabled")
        if disabled is not None and disabled.strip().lower() != "false":
            return True
        if (el.attribute("aria-disabled") or "").strip().lower() == "true":
            return True
        return "disabled" in (el.attribute("class") or "").lower()
    except SessionError:
        return True


def _find_next_control(session: BrowserSession, selectors: tuple[str, ...]) -> Element | None:
    for selector in selectors:
        for el in session.query(selector):
            if not _is_disabled(el):
                return el
    return None
