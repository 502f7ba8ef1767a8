from __future__ import annotations

from collections.abc import Iterable

from . import utils
from .models import Posting

COLUMNS = ("Portal", "Job Req ID", "Position", "Location", "Job Link")


def build_table(postings: Iterable[Posting]) -> str:
    """
    One table for the whole notification:

      Portal | Job Req ID | Position | Location | Job Link
    """
    header = "".join(f"<th>{utils.esc(c)}</th>" for c in COLUMNS)
    rows: list[str] = []
    for p in postings:
        url = p.url or ""
        # Escape the URL pieces and the text cells, NOT the <a> wrapper
        link_html = f'<a href="{utils.esc(url)}">View</a>' if url else ""
        cells = (
            utils.esc(p.source_name),
            utils.esc(p.external_id),
            utils.esc(p.title or "(no title)"),
            utils.esc(p.location or ""),
            link_html,
        )
        rows.append("<tr>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>")
    return (
        "<table border='1' cellspacing='0' cellpadding='6'>"
        f"<tr>{header}</tr>" + "".join(rows) + "</table>"
    )


def wrap_document(content_html: str, *, heading: str | None = None, intro: str | None = None) -> str:
    """Wrap the table in a minimal document with an optional heading and summary line."""
    parts: list[str] = ["<div>"]
    if heading:
        parts.append(f"<h2>{utils.esc(heading)}</h2>")
    if intro:
        parts.append(f"<p>{utils.esc(intro)}</p>")
    parts.append(content_html)
    parts.append("</div>")
    return "\n".join(parts)


def summary_message(postings: list[Posting]) -> str:
    """e.g. "3 new postings across 2 portals" """
    portals = {p.source_name for p in postings}
    noun = "posting" if len(postings) == 1 else "postings"
    return f"{len(postings)} new {noun} across {len(portals)} portal{'s' if len(portals) != 1 else ''}"
