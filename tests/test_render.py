from modules.portal_watch.lib import render
from modules.portal_watch.lib.models import Posting


def _p(ext, source="Acme", title="Engineer", location="Austin, TX", url="https://acme.example/job/1"):
    return Posting(external_id=ext, source_id=1, title=title, location=location, url=url, source_name=source)


def test_table_has_fixed_columns_and_one_row_per_posting():
    html = render.build_table([_p("1"), _p("2")])
    for col in render.COLUMNS:
        assert f"<th>{col}</th>" in html
    assert html.count("<tr>") == 3
    assert '<a href="https://acme.example/job/1">View</a>' in html


def test_cells_are_escaped():
    html = render.build_table([_p("1", title="R&D <Lead>", url="https://acme.example/job?a=1&b=2")])
    assert "R&amp;D &lt;Lead&gt;" in html
    assert 'href="https://acme.example/job?a=1&amp;b=2"' in html


def test_missing_values_render_placeholders():
    html = render.build_table([_p("1", title="", location=None, url="")])
    assert "(no title)" in html
    assert "View" not in html


def test_summary_message_counts_portals():
    postings = [_p("1"), _p("2"), _p("3", source="Globex")]
    assert render.summary_message(postings) == "3 new postings across 2 portals"
    assert render.summary_message([_p("1")]) == "1 new posting across 1 portal"


def test_wrap_document_includes_heading_and_intro():
    doc = render.wrap_document("<table></table>", heading="Portal Watch", intro="1 new posting")
    assert "<h2>Portal Watch</h2>" in doc
    assert "<p>1 new posting</p>" in doc
