# tests/conftest.py
import os
import tempfile
import types
from contextlib import contextmanager

import pytest
from freezegun import freeze_time

from modules.portal_watch.lib import db
from modules.portal_watch.lib.config import Settings
from modules.portal_watch.lib.models import Source
from modules.portal_watch.lib.politeness import no_delay
from modules.portal_watch.lib.replay import ReplaySession


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (real browser / network).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that drive a real browser or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
_PORTAL_WATCH_ENV = (
    "SQLITE_PATH",
    "PORTAL_WATCH_SOURCES",
    "MAX_PAGES",
    "WAIT_TIMEOUT_SEC",
    "PAGE_DELAY_MIN_MS",
    "PAGE_DELAY_MAX_MS",
    "SOURCE_DELAY_MIN_MS",
    "SOURCE_DELAY_MAX_MS",
    "NAV_DELAY_MIN_MS",
    "NAV_DELAY_MAX_MS",
    "HEADLESS_BROWSER",
    "BROWSER_USER_AGENT",
    "PORTAL_WATCH_EMAIL_TO",
    "PORTAL_WATCH_CRON",
    "PORTAL_WATCH_INTERVAL_MIN",
    "PORTAL_WATCH_REPLAY_DIR",
)


@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="pw-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    for name in _PORTAL_WATCH_ENV:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Settings / DB
# ---------------------------------------------------------------------
@pytest.fixture
def sqlite_path(tmp_path) -> str:
    path = str(tmp_path / "portalwatch.db")
    db.init_db(path)
    return path


@pytest.fixture
def fresh_settings(sqlite_path):
    """
    A brand-new Settings per test: per-test SQLite file, no courtesy delays,
    short waits.
    """
    return Settings.from_env_and_kwargs({
        "sqlite_path": sqlite_path,
        "max_pages": 5,
        "wait_timeout_sec": 1,
        "page_delay_min_ms": 0,
        "page_delay_max_ms": 0,
        "source_delay_min_ms": 0,
        "source_delay_max_ms": 0,
        "nav_delay_min_ms": 0,
        "nav_delay_max_ms": 0,
    })


@pytest.fixture
def politeness():
    return no_delay()


@pytest.fixture
def make_source():
    def _make(name="Acme", url="https://acme.example/jobs", *, id=1, structured=True, cursor_id=None):
        return Source(id=id, name=name, url=url, structured=structured, cursor_id=cursor_id)

    return _make


# ---------------------------------------------------------------------
# HTML page builders (structured / free-text portals)
# ---------------------------------------------------------------------
def workday_item(req_id, *, title=None, location="Austin, TX", subtitle=True, subtitle_text=None, href=None, link=True):
    title = title or f"Engineer {req_id}"
    href = f"/en-US/careers/job/Austin/Engineer_{req_id}" if href is None else href
    parts = ["<li>"]
    if link:
        parts.append(f"<h3><a data-automation-id='jobTitle' href='{href}'>{title}</a></h3>")
    if location:
        parts.append(f"<div data-automation-id='locations'><dl><dt>Locations</dt><dd>{location}</dd></dl></div>")
    if subtitle:
        text = req_id if subtitle_text is None else subtitle_text
        parts.append(f"<ul data-automation-id='subtitle'><li>{text}</li></ul>")
    parts.append("</li>")
    return "".join(parts)


def workday_page(items, *, page=1, has_next=True, next_disabled=False):
    nxt = ""
    if has_next:
        disabled = " disabled" if next_disabled else ""
        nxt = f"<button data-uxi-widget-type='stepToNextButton' aria-label='next'{disabled}>&gt;</button>"
    rendered = "".join(i if i.startswith("<") else workday_item(i) for i in items)
    return (
        "<html><body>"
        f"<section data-automation-id='jobResults'><ul role='list'>{rendered}</ul></section>"
        f"<nav><button aria-current='page'>{page}</button>{nxt}</nav>"
        "</body></html>"
    )


def akkodis_item(ref, *, title="Senior Engineer", place="Paris, France", href=None, ref_element=True):
    href = f"/en/job/senior-engineer/{ref}" if href is None else href
    reference = f"<p class='JobCard_reference'>Reference Number {ref}</p>" if ref_element else ""
    return (
        "<li><div class='JobCard_card'>"
        f"<a href='{href}'><h3>{title}</h3></a>"
        "<p><span class='material-icons'>work_outline</span> Permanent</p>"
        f"{reference}"
        f"<p><span class='material-icons'>place</span> <span class='JobCard_location'>{place}</span></p>"
        "<p><span class='material-icons'>calendar_today</span> 2 days ago</p>"
        "</div></li>"
    )


def akkodis_page(items, *, has_next=True):
    nxt = "<a href='#'><span class='pagination_pagination-right-arrow__x1'></span></a>" if has_next else ""
    rendered = "".join(i if i.startswith("<") else akkodis_item(i) for i in items)
    return (
        "<html><body>"
        f"<ul class='JobSearchResults_filter-results-container__a1'>{rendered}</ul>"
        f"<div class='pagination'>{nxt}</div>"
        "</body></html>"
    )


@pytest.fixture
def pages():
    return types.SimpleNamespace(
        workday_item=workday_item,
        workday_page=workday_page,
        akkodis_item=akkodis_item,
        akkodis_page=akkodis_page,
    )


@pytest.fixture
def replay_factory():
    """
    Build a session factory over recorded pages that counts acquire/release,
    so tests can assert the session is released on every path.
    """

    def _make(recorded):
        state = types.SimpleNamespace(opened=0, closed=0, session=None)

        @contextmanager
        def factory(settings):
            state.opened += 1
            state.session = ReplaySession(recorded)
            try:
                yield state.session
            finally:
                state.closed += 1

        state.factory = factory
        return state

    return _make


@pytest.fixture
def stub_send():
    sent = {"messages": []}

    def send_html(**kwargs):
        sent["messages"].append(kwargs)
        return "<fake-message-id@example>"

    return types.SimpleNamespace(send_html=send_html, sent=sent)
