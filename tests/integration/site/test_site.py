"""Integration tests for the parse -> transform -> schedule -> render pipeline.

The canonical document is TELL_DONT_ASK from samples.py:

    layout: post, title: "Tell don't ask", date: 2024-03-30, timezone: Europe/Madrid

With the default publish time (09:00 local, CET on that date) it resolves to
slug 2024-03-30-tell-dont-ask and UTC instant 2024-03-30T08:00:00Z.
"""

from datetime import datetime, timezone

import pytest

from folio.config import Settings
from folio.core.errors import (
    MalformedFrontMatter,
    PermalinkCollision,
    UnknownLayout,
    UnknownTimezone,
)
from folio.core.export import write_site
from folio.core.layouts import load_layouts
from folio.core.site import SiteBuilder, build_site, related_links

from samples import TELL_DONT_ASK, post_text


def _build(settings, layouts, site, **kwargs):
    return SiteBuilder(settings, layouts, site / "_posts").build(**kwargs)


def test_end_to_end_tell_dont_ask(site, settings, layouts, write_post):
    write_post("tell.html", TELL_DONT_ASK)
    result = _build(settings, layouts, site)

    assert result.ok
    [page] = result.pages
    assert page.output_path == "2024-03-30-tell-dont-ask.html"
    assert page.published == datetime(2024, 3, 30, 8, 0, tzinfo=timezone.utc)

    html = page.html.decode("utf-8")
    assert '<article class="post">' in html
    assert "<h1>Tell don't ask</h1>" in html
    assert "<h2>Objects should do things, not expose things</h2>" in html
    assert "url('/img/posts/tell.jpg')" in html
    assert 'datetime="2024-03-30T08:00:00Z"' in html
    assert "<p>Ask less, tell more.</p>" in html
    assert 'data-lang="typescript"' in html
    assert html.index("<body>") < html.index('<article class="post">') < html.index("Ask less")


def test_rendering_is_deterministic(site, settings, layouts, write_post):
    write_post("tell.html", TELL_DONT_ASK)
    write_post("other.html", post_text("Other", "2024-04-01"))
    first = _build(settings, layouts, site)
    second = _build(settings, layouts, site)
    assert [p.html for p in first.all_pages()] == [p.html for p in second.all_pages()]


def test_order_is_independent_of_discovery_order(site, settings, layouts, write_post):
    paths = [
        write_post("a.html", post_text("Alpha", "2024-01-01")),
        write_post("b.html", post_text("Beta", "2024-02-01")),
        write_post("c.html", post_text("Gamma", "2024-02-01")),
        write_post("d.html", post_text("Delta", "2023-12-31 23:00")),
    ]
    forward = _build(settings, layouts, site, paths=paths)
    backward = _build(settings, layouts, site, paths=list(reversed(paths)))
    expected = ["b.html", "c.html", "a.html", "d.html"]
    assert [p.source for p in forward.pages] == expected
    assert [p.source for p in backward.pages] == expected


def test_index_lists_posts_in_publish_order(site, settings, layouts, write_post):
    write_post("old.html", post_text("Old post", "2023-01-01"))
    write_post("new.html", post_text("New post", "2024-01-01"))
    result = _build(settings, layouts, site)
    index = result.index.html.decode("utf-8")
    assert result.index.output_path == "index.html"
    assert index.index("New post") < index.index("Old post")
    assert 'href="/2024-01-01-new-post.html"' in index


def test_index_layout_wraps_index(site, layouts, write_post):
    write_post("one.html", post_text("One", "2024-01-01"))
    settings = Settings(workers=2, index_layout="default", site_title="My Blog")
    result = _build(settings, layouts, site)
    index = result.index.html.decode("utf-8")
    assert "<title>My Blog | My Blog</title>" in index
    assert '<ul class="post-index">' in index


def test_unknown_index_layout_aborts(site, layouts, write_post):
    write_post("one.html", post_text("One", "2024-01-01"))
    with pytest.raises(UnknownLayout, match="index_layout"):
        _build(Settings(index_layout="nosuch"), layouts, site)


def test_missing_key_fails_fast(site, settings, layouts, write_post):
    write_post("good.html", post_text("Good", "2024-01-01"))
    write_post("bad.html", "---\nlayout: post\ndate: 2024-01-01\n---\n<p>x</p>\n")
    with pytest.raises(MalformedFrontMatter) as exc:
        _build(settings, layouts, site)
    assert exc.value.source == "bad.html"


def test_best_effort_skips_and_reports(site, layouts, write_post):
    write_post("good.html", post_text("Good", "2024-01-01"))
    write_post("bad.html", "---\nlayout: post\ndate: 2024-01-01\n---\n<p>x</p>\n")
    write_post("tz.html", post_text("Zoned", "2024-01-02", timezone="Mars/Base"))
    write_post("layout.html", post_text("Laid", "2024-01-03").replace("layout: post", "layout: ghost"))
    result = _build(Settings(workers=2, fail_fast=False), layouts, site)

    assert [p.source for p in result.pages] == ["good.html"]
    assert [(type(e), e.source) for e in result.errors] == [
        (MalformedFrontMatter, "bad.html"),
        (UnknownLayout, "layout.html"),
        (UnknownTimezone, "tz.html"),
    ]
    assert "good" in result.index.html.decode("utf-8").lower()


def test_best_effort_skips_impossible_date(site, layouts, write_post):
    write_post("good.html", post_text("Good", "2024-01-01"))
    write_post("bad.html", post_text("Bad", "2024-02-30"))
    result = _build(Settings(workers=2, fail_fast=False), layouts, site)

    assert [p.source for p in result.pages] == ["good.html"]
    assert [(type(e), e.source) for e in result.errors] == [(MalformedFrontMatter, "bad.html")]


def test_permalink_collision_fails_fast(site, settings, layouts, write_post):
    write_post("first.html", post_text("Same title", "2024-01-01", body="<p>one</p>"))
    write_post("second.html", post_text("Same title", "2024-01-01", body="<p>two</p>"))
    with pytest.raises(PermalinkCollision) as exc:
        _build(settings, layouts, site)
    assert exc.value.sources == ("first.html", "second.html")


def test_permalink_collision_best_effort_drops_both(site, layouts, write_post):
    write_post("first.html", post_text("Same title", "2024-01-01", body="<p>one</p>"))
    write_post("second.html", post_text("Same title", "2024-01-01", body="<p>two</p>"))
    write_post("third.html", post_text("Different", "2024-01-01"))
    result = _build(Settings(workers=2, fail_fast=False), layouts, site)
    assert [p.source for p in result.pages] == ["third.html"]
    assert [type(e) for e in result.errors] == [PermalinkCollision]


def test_collision_across_timezones_uses_local_date(site, settings, layouts, write_post):
    """Same local date and title collide even when the UTC instants differ."""
    write_post("a.html", post_text("Hello", "2024-05-05", timezone="Asia/Tokyo"))
    write_post("b.html", post_text("Hello", "2024-05-05", timezone="America/Los_Angeles"))
    with pytest.raises(PermalinkCollision):
        _build(settings, layouts, site)


def test_related_links_in_page_context(site, settings, layouts, write_post):
    (site / "_layouts" / "linked.html").write_text(
        "{{ content }}|prev={{ page.previous.title }}|next={{ page.next.title }}"
        "|related={% for r in page.related %}{{ r.title }},{% endfor %}"
    )
    layouts = load_layouts(site / "_layouts")
    for name, date in [("a.html", "2024-01-01"), ("b.html", "2024-01-02"), ("c.html", "2024-01-03")]:
        write_post(name, post_text(name[0].upper(), date).replace("layout: post", "layout: linked"))
    result = _build(settings, layouts, site)
    middle = next(p for p in result.pages if p.source == "b.html").html.decode("utf-8")
    assert "prev=A" in middle
    assert "next=C" in middle
    assert "related=C,A," in middle


def test_best_effort_never_links_to_failed_render(site, write_post):
    (site / "_layouts" / "linked.html").write_text(
        "{{ content }}|prev={{ page.previous.url }}|next={{ page.next.url }}"
        "|related={% for r in page.related %}{{ r.url }},{% endfor %}"
    )
    (site / "_layouts" / "strict.html").write_text("{{ content }}{{ page.missing.call() }}")
    layouts = load_layouts(site / "_layouts")
    write_post("a.html", post_text("A", "2024-01-01").replace("layout: post", "layout: linked"))
    write_post("b.html", post_text("B", "2024-01-02").replace("layout: post", "layout: strict"))
    write_post("c.html", post_text("C", "2024-01-03").replace("layout: post", "layout: linked"))
    result = _build(Settings(workers=2, fail_fast=False), layouts, site)

    assert [p.source for p in result.pages] == ["c.html", "a.html"]
    assert [e.source for e in result.errors] == ["b.html"]
    for page in result.all_pages():
        assert "/2024-01-02-b.html" not in page.html.decode("utf-8")
    newest = result.pages[0].html.decode("utf-8")
    assert "prev=/2024-01-01-a.html" in newest
    assert "related=/2024-01-01-a.html," in newest


def test_related_links_counts(site, settings, layouts, write_post):
    builder = SiteBuilder(settings, layouts, site / "_posts")
    docs = [
        builder.prepare_text(post_text(t, d), f"{t}.html")
        for t, d in [("A", "2024-01-05"), ("B", "2024-01-04"), ("C", "2024-01-03"), ("D", "2024-01-02")]
    ]
    links = related_links(docs, 2, "%Y-%m-%d")
    assert [r["title"] for r in links["A.html"]["related"]] == ["B", "C"]
    assert [r["title"] for r in links["C.html"]["related"]] == ["B", "D"]
    assert links["A.html"]["next"] is None
    assert links["D.html"]["previous"] is None
    assert related_links(docs, 0, "%Y-%m-%d")["B.html"]["related"] == []


def test_markdown_document(site, settings, layouts, write_post):
    write_post("notes.md", post_text("Notes", "2024-02-02", body="## Heading\n\n```python\nx = 1\n```\n"))
    result = _build(settings, layouts, site)
    html = result.pages[0].html.decode("utf-8")
    assert "<h2>Heading</h2>" in html
    assert 'data-lang="python"' in html


def test_build_site_and_write(site, write_post):
    write_post("tell.html", TELL_DONT_ASK)
    settings = Settings(workers=2)
    result = build_site(settings)
    written = write_site(result, site / "_site", workers=2)
    assert [p.name for p in written] == ["2024-03-30-tell-dont-ask.html", "index.html"]
    assert (site / "_site" / "2024-03-30-tell-dont-ask.html").read_bytes() == result.pages[0].html
