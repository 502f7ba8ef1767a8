from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Variant(str, Enum):
    """Extraction strategy for a source's markup style."""

    STRUCTURED = "structured"
    FREE_TEXT = "free_text"


class StopReason(str, Enum):
    """Why a pagination run ended. Everything but ABORTED is an 'exhausted' state."""

    ABORTED = "aborted"
    CURSOR_HIT = "cursor_hit"
    EMPTY_PAGE = "empty_page"
    NO_MORE_PAGES = "no_more_pages"
    PAGE_LIMIT = "page_limit"


class SourceStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class Source:
    """
    One configured job-listing endpoint (a row of the `sources` table).

    `cursor_id` is the external id of the top-of-list posting seen by the last
    successful run; only the cursor tracker mutates it.
    """

    id: int
    name: str
    url: str
    structured: bool = True  # explicit variant flag
    cursor_id: str | None = None


@dataclass(frozen=True)
class Posting:
    """
    A single posting extracted from a listing page.
    (external_id, source_id) identifies it; dedupe is enforced by the DB layer.
    """

    external_id: str
    source_id: int
    title: str
    location: str | None
    url: str
    source_name: str = ""  # display only


@dataclass(frozen=True)
class Subscriber:
    email: str
    name: str | None = None


@dataclass
class PageRun:
    """
    Result of one pagination run over a single source.
    - postings: new postings in document order (cursor and known items excluded)
    - new_cursor: external id of page 1's first item, or None if page 1 was empty
    - dropped: items skipped because they could not be extracted
    """

    postings: list[Posting] = field(default_factory=list)
    new_cursor: str | None = None
    stop_reason: StopReason = StopReason.NO_MORE_PAGES
    pages_visited: int = 0
    dropped: int = 0


@dataclass
class SourceOutcome:
    """Typed per-source result produced by the orchestrator."""

    source: Source
    status: SourceStatus
    postings: list[Posting] = field(default_factory=list)
    inserted: int = 0
    new_cursor: str | None = None
    stop_reason: StopReason | None = None
    dropped: int = 0
    reason: str = ""
    error: str | None = None
    duration_us: int = 0
