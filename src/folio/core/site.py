"""Site assembly: per-document stages on a worker pool around a serial reduction"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar

from jinja2 import Environment, TemplateError

from folio.config import Settings
from folio.core.errors import BuildError, MalformedLayout, PermalinkCollision, UnknownLayout
from folio.core.frontmatter import discover_documents, parse_document
from folio.core.layouts import LayoutSet, load_layouts
from folio.core.models import BuildResult, RenderedPage, ScheduledDocument
from folio.core.schedule import PermalinkIndex, localize, order_documents, permalink_slug
from folio.core.transform import transform_body, transform_markdown


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

INDEX_NAME = "index.html"
MARKDOWN_EXTENSIONS = {".md", ".markdown"}

INDEX_LIST = """\
<ul class="post-index">
{%- for post in posts %}
  <li><a href="{{ post.url }}">{{ post.title }}</a> <time datetime="{{ post.published }}">{{ post.date }}</time></li>
{%- endfor %}
</ul>
"""

INDEX_PAGE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{ site.title }}</title>
</head>
<body>
<h1>{{ site.title }}</h1>
{{ content }}</body>
</html>
"""


def source_id(path: Path, root: Path) -> str:
    """Stable identity for a document: its path relative to the content root."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _link(doc: ScheduledDocument, date_format: str) -> dict[str, str]:
    return {
        "title": doc.document.title,
        "subtitle": doc.document.subtitle or "",
        "url": doc.url,
        "slug": doc.slug,
        "date": doc.local_date.strftime(date_format),
        "published": doc.published.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


def related_links(ordered: list[ScheduledDocument], count: int, date_format: str) -> dict[str, dict[str, Any]]:
    """Previous/next and the nearest `count` neighbours of each document in publish order."""
    links: dict[str, dict[str, Any]] = {}
    for i, doc in enumerate(ordered):
        neighbours = []
        for distance in range(1, len(ordered)):
            for j in (i - distance, i + distance):
                if 0 <= j < len(ordered) and len(neighbours) < count:
                    neighbours.append(_link(ordered[j], date_format))
            if len(neighbours) >= count:
                break
        links[doc.path] = {
            "next": _link(ordered[i - 1], date_format) if i > 0 else None,
            "previous": _link(ordered[i + 1], date_format) if i + 1 < len(ordered) else None,
            "related": neighbours,
        }
    return links


class SiteBuilder:
    """Turns a content directory plus a LayoutSet into rendered pages.

    Stage 1 (parse, transform, schedule) and stage 3 (layout rendering) run
    per document on a thread pool; stage 2 (collision detection, ordering,
    related links) runs serially and is the only owner of corpus-wide state.
    With fail_fast the first error in source-path order is raised; otherwise
    failed documents are skipped and their errors collected on the result.
    """

    def __init__(self, settings: Settings, layouts: LayoutSet, content_dir: Optional[Path] = None):
        self.settings = settings
        self.layouts = layouts
        self.content_dir = Path(content_dir or settings.content_dir)
        self.workers = settings.workers or os.cpu_count() or 1
        self.errors: list[BuildError] = []
        self._env = Environment(autoescape=False, keep_trailing_newline=True)

    # --- stage plumbing ---

    def _run_stage(self, fn: Callable[[T], R], items: list[T], label: str) -> list[R]:
        """Map fn over items on the pool; results keep input order, failures dropped or raised."""
        results: list[R] = []
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"folio-{label}") as pool:
            futures = [pool.submit(fn, item) for item in items]
            for future in futures:
                try:
                    results.append(future.result())
                except BuildError as e:
                    if self.settings.fail_fast:
                        pool.shutdown(wait=True, cancel_futures=True)
                        raise
                    logger.warning("Skipping %s: %s", e.source, e.message)
                    self.errors.append(e)
        logger.debug("Stage %s: %d of %d succeeded", label, len(results), len(items))
        return results

    # --- stage 1: per-document, pure ---

    def prepare(self, path: Path) -> ScheduledDocument:
        """Parse, transform, and schedule one document file."""
        source = source_id(path, self.content_dir)
        try:
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise BuildError(f"cannot read document: {e}") from e
            return self.prepare_text(text, source)
        except BuildError as e:
            raise e.with_source(source)

    def prepare_text(self, text: str, source: str) -> ScheduledDocument:
        s = self.settings
        doc = parse_document(text, source, s.default_timezone, s.publish_time)
        self.layouts.resolve_chain(doc.layout)
        if Path(source).suffix.lower() in MARKDOWN_EXTENSIONS:
            body_html = transform_markdown(doc.body, s.highlight_unknown_language_as_plain, s.markdown_preset)
        else:
            body_html = transform_body(doc.body, s.highlight_unknown_language_as_plain)
        local = localize(doc.date, doc.timezone)
        return ScheduledDocument(
            document=doc,
            body_html=body_html,
            published=local.astimezone(timezone.utc),
            local_date=local,
            slug=permalink_slug(local, doc.title),
        )

    # --- stage 2: serial reduction ---

    def reduce(self, scheduled: list[ScheduledDocument]) -> list[ScheduledDocument]:
        """Detect permalink collisions and return the surviving documents in publish order.

        Every document involved in a collision is dropped, never just one of them.
        """
        index = PermalinkIndex()
        colliding: set[str] = set()
        for doc in sorted(scheduled, key=lambda d: d.path):
            try:
                index.register(doc.slug, doc.path)
            except PermalinkCollision as e:
                if self.settings.fail_fast:
                    raise
                logger.warning("Skipping %s: %s", e.source, e.message)
                self.errors.append(e)
                colliding.add(doc.slug)
        return order_documents(d for d in scheduled if d.slug not in colliding)

    # --- stage 3: per-document rendering ---

    def page_context(self, doc: ScheduledDocument, links: dict[str, Any]) -> dict[str, Any]:
        d = doc.document
        page = dict(d.extra)
        page.update(_link(doc, self.settings.date_format))
        page.update({
            "layout": d.layout,
            "timezone": d.timezone,
            "background": d.background or "",
            "source": d.path,
            **links,
        })
        return {"page": page, "site": {"title": self.settings.site_title}}

    def render(self, doc: ScheduledDocument, links: dict[str, Any]) -> RenderedPage:
        try:
            html = self.layouts.render(doc.document.layout, doc.body_html, self.page_context(doc, links))
        except TemplateError as e:
            raise MalformedLayout(f"rendering layout '{doc.document.layout}' failed: {e}", source=doc.path) from e
        return RenderedPage(
            source=doc.path,
            output_path=doc.output_name,
            html=html.encode("utf-8"),
            published=doc.published,
            sort_key=doc.sort_key,
        )

    def render_all(self, ordered: list[ScheduledDocument]) -> tuple[list[RenderedPage], list[ScheduledDocument]]:
        """Render every document with links that only point at rendered pages.

        When a page fails in best-effort mode its neighbours linked to it, so
        links are recomputed over the survivors and those pages rendered again.
        The survivor set shrinks on every retry.
        """
        while True:
            links = related_links(ordered, self.settings.related_posts, self.settings.date_format)
            failed = len(self.errors)
            pages = self._run_stage(lambda d: self.render(d, links[d.path]), ordered, "render")
            if len(self.errors) == failed:
                return pages, ordered
            rendered = {p.source for p in pages}
            ordered = [d for d in ordered if d.path in rendered]
            logger.debug("Re-rendering %d page(s) without links to failed pages", len(ordered))

    def render_index(self, ordered: list[ScheduledDocument]) -> RenderedPage:
        """Index of every rendered page in publish order."""
        posts = [_link(d, self.settings.date_format) for d in ordered]
        site = {"title": self.settings.site_title, "posts": posts}
        content = self._env.from_string(INDEX_LIST).render(posts=posts)
        index_layout = self.settings.index_layout
        if index_layout:
            page = {"title": self.settings.site_title, "subtitle": "", "date": "", "background": "", "url": "/"}
            html = self.layouts.render(index_layout, content, {"page": page, "site": site})
        else:
            html = self._env.from_string(INDEX_PAGE).render(content=content, site=site)
        return RenderedPage(
            source=INDEX_NAME,
            output_path=INDEX_NAME,
            html=html.encode("utf-8"),
            published=None,
            sort_key=(),
        )

    # --- orchestration ---

    def build(self, paths: Optional[Iterable[Path]] = None) -> BuildResult:
        """Run all stages over paths (default: every document under content_dir)."""
        if self.settings.index_layout and self.settings.index_layout not in self.layouts:
            raise UnknownLayout(f"index_layout '{self.settings.index_layout}' is not a known layout")
        if paths is None:
            if not self.content_dir.exists():
                raise FileNotFoundError(f"Content directory not found: {self.content_dir}")
            paths = discover_documents(self.content_dir)
        items = sorted(paths, key=lambda p: source_id(p, self.content_dir))
        logger.info("Building %d document(s) from %s", len(items), self.content_dir)

        self.errors = []
        self.layouts.warm()
        scheduled = self._run_stage(self.prepare, items, "prepare")
        ordered = self.reduce(scheduled)

        pages, ordered = self.render_all(ordered)
        index = self.render_index(ordered)

        errors = sorted(self.errors, key=lambda e: e.source or "")
        logger.info("Rendered %d page(s), %d error(s)", len(pages), len(errors))
        return BuildResult(pages=pages, index=index, errors=errors)


def build_site(settings: Settings, content_dir: Optional[Path] = None) -> BuildResult:
    """Load layouts and build the whole site in memory; nothing is written."""
    layouts = load_layouts(Path(settings.layouts_dir), settings.max_layout_chain_depth)
    return SiteBuilder(settings, layouts, content_dir).build()
