# tests/test_pagination.py
from modules.portal_watch.lib.extractors.free_text import FreeTextExtractor
from modules.portal_watch.lib.extractors.structured import StructuredExtractor
from modules.portal_watch.lib.models import StopReason
from modules.portal_watch.lib.pagination import PaginationController
from modules.portal_watch.lib.replay import ReplaySession

URL = "https://acme.wd1.example/en-US/careers"
AKKODIS_URL = "https://jobs.akkodis.example/en/jobs"


class RecordingExtractor(StructuredExtractor):
    """Structured extractor that remembers which items it was asked to extract."""

    def __init__(self):
        self.examined = []

    def extract(self, item, source):
        posting = super().extract(item, source)
        if posting is not None:
            self.examined.append(posting.external_id)
        return posting


def _controller(politeness, **kw):
    kw.setdefault("max_pages", 5)
    kw.setdefault("wait_timeout", 1)
    return PaginationController(politeness=politeness, **kw)


def _ids(run):
    return [p.external_id for p in run.postings]


# ----------------------------------------------------------------------
# Early stop / cursor anchoring
# ----------------------------------------------------------------------
def test_cursor_hit_stops_before_older_items(pages, politeness, make_source):
    session = ReplaySession({URL: [pages.workday_page(["103", "102", "101", "100", "099"])]})
    ext = RecordingExtractor()
    source = make_source(url=URL, cursor_id="100")

    run = _controller(politeness).run(source, ext, session)

    assert _ids(run) == ["103", "102", "101"]
    assert run.new_cursor == "103"
    assert run.stop_reason is StopReason.CURSOR_HIT
    assert ext.examined == ["103", "102", "101", "100"]  # "099" never looked at
    assert session.clicks == []


def test_cursor_hit_on_second_page(pages, politeness, make_source):
    session = ReplaySession({
        URL: [
            pages.workday_page(["205", "204"], page=1),
            pages.workday_page(["203", "200", "199"], page=2),
        ]
    })
    run = _controller(politeness).run(make_source(url=URL, cursor_id="200"), StructuredExtractor(), session)

    assert _ids(run) == ["205", "204", "203"]
    assert run.new_cursor == "205"
    assert run.pages_visited == 2
    assert run.stop_reason is StopReason.CURSOR_HIT


def test_cursor_at_top_of_list_yields_nothing_new(pages, politeness, make_source):
    session = ReplaySession({URL: [pages.workday_page(["103", "102"])]})
    run = _controller(politeness).run(make_source(url=URL, cursor_id="103"), StructuredExtractor(), session)

    assert run.postings == []
    assert run.new_cursor == "103"


def test_known_postings_are_skipped_but_cursor_still_anchors(pages, politeness, make_source):
    session = ReplaySession({URL: [pages.workday_page(["103", "102", "101"], has_next=False)]})
    ctl = _controller(politeness, is_known=lambda p: p.external_id in {"103", "101"})

    run = ctl.run(make_source(url=URL), StructuredExtractor(), session)

    assert _ids(run) == ["102"]
    assert run.new_cursor == "103"


def test_empty_first_page_leaves_cursor_untouched(pages, politeness, make_source):
    session = ReplaySession({URL: [pages.workday_page([])]})
    source = make_source(url=URL, cursor_id="100")

    run = _controller(politeness).run(source, StructuredExtractor(), session)

    assert run.postings == []
    assert run.new_cursor is None
    assert run.stop_reason is StopReason.EMPTY_PAGE
    assert source.cursor_id == "100"


# ----------------------------------------------------------------------
# Paging
# ----------------------------------------------------------------------
def test_walks_pages_until_no_next_control(pages, politeness, make_source):
    session = ReplaySession({
        URL: [
            pages.workday_page(["6", "5"], page=1),
            pages.workday_page(["4", "3"], page=2),
            pages.workday_page(["2", "1"], page=3, has_next=False),
        ]
    })
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert _ids(run) == ["6", "5", "4", "3", "2", "1"]
    assert run.pages_visited == 3
    assert run.stop_reason is StopReason.NO_MORE_PAGES
    assert len(session.clicks) == 2


def test_page_ceiling_checked_before_clicking(pages, politeness, make_source):
    session = ReplaySession({
        URL: [
            pages.workday_page(["6", "5"], page=1),
            pages.workday_page(["4", "3"], page=2),
            pages.workday_page(["2", "1"], page=3),
        ]
    })
    run = _controller(politeness, max_pages=2).run(make_source(url=URL), StructuredExtractor(), session)

    assert _ids(run) == ["6", "5", "4", "3"]
    assert run.stop_reason is StopReason.PAGE_LIMIT
    assert len(session.clicks) == 1


def test_disabled_next_control_ends_run(pages, politeness, make_source):
    session = ReplaySession({URL: [pages.workday_page(["2", "1"], next_disabled=True)]})
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert run.stop_reason is StopReason.NO_MORE_PAGES
    assert session.clicks == []


def test_click_without_content_change_ends_run(pages, politeness, make_source):
    # Next control is present but the listing never changes.
    session = ReplaySession({URL: [pages.workday_page(["2", "1"])]})
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert _ids(run) == ["2", "1"]
    assert run.stop_reason is StopReason.NO_MORE_PAGES
    assert len(session.clicks) == 1


def test_items_repeated_across_pages_are_emitted_once(pages, politeness, make_source):
    session = ReplaySession({
        URL: [
            pages.workday_page(["5", "4"], page=1),
            pages.workday_page(["4", "3"], page=2, has_next=False),
        ]
    })
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)
    assert _ids(run) == ["5", "4", "3"]


def test_page_delay_applied_between_pages(pages, make_source):
    from modules.portal_watch.lib.config import DelayWindow
    from modules.portal_watch.lib.politeness import Politeness

    slept = []
    polite = Politeness(sleep=slept.append)
    session = ReplaySession({
        URL: [
            pages.workday_page(["2"], page=1),
            pages.workday_page(["1"], page=2, has_next=False),
        ]
    })
    ctl = PaginationController(
        max_pages=5,
        wait_timeout=1,
        politeness=polite,
        page_delay=DelayWindow(250, 250),
        nav_delay=DelayWindow(100, 100),
    )
    ctl.run(make_source(url=URL), StructuredExtractor(), session)

    assert slept == [0.1, 0.25]


# ----------------------------------------------------------------------
# Resilience
# ----------------------------------------------------------------------
def test_unextractable_items_are_dropped_and_counted(pages, politeness, make_source):
    items = [
        pages.workday_item("30"),
        pages.workday_item("29", link=False),
        pages.workday_item("x", subtitle=False, href="/job/NoId"),
        pages.workday_item("28", location=None),
    ]
    session = ReplaySession({URL: [pages.workday_page(items, has_next=False)]})
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert _ids(run) == ["30", "28"]
    assert run.dropped == 2
    assert run.postings[1].location is None


def test_cursor_is_first_extracted_item_when_top_item_is_broken(pages, politeness, make_source):
    items = [pages.workday_item("99", link=False), pages.workday_item("98"), pages.workday_item("97")]
    session = ReplaySession({URL: [pages.workday_page(items, has_next=False)]})
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert run.new_cursor == "98"


def test_page_with_only_broken_items_counts_as_empty(pages, politeness, make_source):
    items = [pages.workday_item("1", link=False), pages.workday_item("2", link=False)]
    session = ReplaySession({URL: [pages.workday_page(items)]})
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert run.stop_reason is StopReason.EMPTY_PAGE
    assert run.new_cursor is None
    assert run.dropped == 2


def test_navigation_failure_aborts(politeness, make_source):
    session = ReplaySession({})
    run = _controller(politeness).run(make_source(url=URL), StructuredExtractor(), session)

    assert run.stop_reason is StopReason.ABORTED
    assert run.postings == []
    assert run.new_cursor is None


def test_results_never_appearing_aborts(politeness, make_source):
    session = ReplaySession({URL: ["<html><body><p>Maintenance</p></body></html>"]})
    run = _controller(politeness).run(make_source(url=URL, cursor_id="5"), StructuredExtractor(), session)

    assert run.stop_reason is StopReason.ABORTED
    assert run.new_cursor is None


# ----------------------------------------------------------------------
# Free-text variant through the same loop
# ----------------------------------------------------------------------
def test_free_text_portal_pages_with_arrow_control(pages, politeness, make_source):
    session = ReplaySession({
        AKKODIS_URL: [
            pages.akkodis_page(["55500003", "55500002"]),
            pages.akkodis_page(["55500001"], has_next=False),
        ]
    })
    source = make_source("Akkodis FR", AKKODIS_URL, structured=False)

    run = _controller(politeness).run(source, FreeTextExtractor(), session)

    assert _ids(run) == ["55500003", "55500002", "55500001"]
    assert run.new_cursor == "55500003"
    assert run.stop_reason is StopReason.NO_MORE_PAGES
    assert all(p.location == "Paris, France" for p in run.postings)


class SlowListingSession(ReplaySession):
    """
    The pager label flips as soon as "next" is clicked, but the listing is
    only re-rendered a few polls later, as on a busy client-side portal.
    """

    def __init__(self, pages, render_after=3):
        super().__init__(pages)
        self.render_after = render_after
        self._pending = 0

    def advance(self):
        label = self._soup.select_one("[aria-current='page']")
        label.string = str(int(label.get_text()) + 1)
        self._pending = self.render_after
        return True

    def wait_until(self, predicate, timeout):
        for _ in range(10):
            if self._pending:
                self._pending -= 1
                if not self._pending:
                    ReplaySession.advance(self)
            if super().wait_until(predicate, timeout):
                return True
        return False


def test_pager_label_alone_does_not_count_as_a_new_page(pages, politeness, make_source):
    session = SlowListingSession({
        URL: [
            pages.workday_page(["6", "5"], page=1),
            pages.workday_page(["4", "3"], page=2),
        ]
    })
    run = _controller(politeness, max_pages=2).run(make_source(url=URL), StructuredExtractor(), session)

    assert _ids(run) == ["6", "5", "4", "3"]
    assert run.stop_reason is StopReason.PAGE_LIMIT
