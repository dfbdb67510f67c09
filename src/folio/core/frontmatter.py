"""Document discovery and front matter extraction"""

import re
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import yaml

from folio.core.errors import EmptyDocument, MalformedFrontMatter
from folio.core.models import Document


DELIMITER = "---"
DOC_EXTENSIONS = {".html", ".htm", ".md", ".markdown"}
REQUIRED_KEYS = ("title", "layout", "date")
KNOWN_KEYS = {"layout", "title", "subtitle", "date", "timezone", "background"}

DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Return (frontmatter_dict, body). Text without an opening delimiter is all body."""
    text = text.lstrip("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != DELIMITER:
        return {}, text

    end_idx = None
    for i in range(1, len(lines)):
        if lines[i].strip() == DELIMITER:
            end_idx = i
            break
    if end_idx is None:
        raise MalformedFrontMatter("opening '---' has no matching closing delimiter")

    fm_text = "".join(lines[1:end_idx])
    body = "".join(lines[end_idx + 1:]).lstrip("\n")
    try:
        fm = yaml.safe_load(fm_text) if fm_text.strip() else {}
    except yaml.YAMLError as e:
        raise MalformedFrontMatter(f"invalid YAML front matter: {e}") from e
    except ValueError as e:
        # Timestamp-shaped scalars like 2024-02-30 fail inside the YAML constructor.
        raise MalformedFrontMatter(f"invalid value in front matter: {e}") from e
    if fm is None:
        fm = {}
    if not isinstance(fm, dict):
        raise MalformedFrontMatter(f"front matter must be a mapping, got {type(fm).__name__}")
    return {str(k): v for k, v in fm.items()}, body


def _text(value: Any) -> str | None:
    """Coerce a YAML scalar to a stripped string; None/empty stay None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_date(value: Any, default_time: time) -> datetime:
    """Normalize a front matter date to a datetime; date-only values take default_time.

    Naive results are local wall-clock times; a YAML timestamp carrying an
    explicit offset stays aware.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, default_time)
    if isinstance(value, str):
        raw = value.strip()
        if DATE_ONLY_RE.match(raw):
            try:
                return datetime.combine(date.fromisoformat(raw), default_time)
            except ValueError as e:
                raise MalformedFrontMatter(f"invalid date {raw!r}: {e}") from e
        for fmt in DATETIME_FORMATS:
            try:
                return datetime.strptime(raw, fmt)
            except ValueError:
                continue
    raise MalformedFrontMatter(f"unparseable date {value!r}; expected YYYY-MM-DD[ HH:MM[:SS]]")


def parse_document(
    text: str,
    path: str | Path,
    default_timezone: str = "UTC",
    default_time: time = time(9, 0),
    ) -> Document:
    """Parse raw document text into a Document. Raises before any metadata is exposed."""
    try:
        fm, body = split_frontmatter(text)
    except MalformedFrontMatter as e:
        raise e.with_source(path)

    missing = [k for k in REQUIRED_KEYS if _text(fm.get(k)) is None]
    if missing:
        raise MalformedFrontMatter(f"missing required front matter key(s): {', '.join(missing)}", source=path)
    if not body.strip():
        raise EmptyDocument("document body is empty", source=path)

    try:
        published = parse_date(fm["date"], default_time)
    except MalformedFrontMatter as e:
        raise e.with_source(path)

    return Document(
        path=str(path),
        title=_text(fm["title"]),
        subtitle=_text(fm.get("subtitle")),
        layout=_text(fm["layout"]),
        date=published,
        timezone=_text(fm.get("timezone")) or default_timezone,
        background=_text(fm.get("background")),
        body=body,
        extra={k: v for k, v in fm.items() if k not in KNOWN_KEYS},
    )


def discover_documents(path: Path) -> list[Path]:
    """Return sorted document files under path, or [path] if a single document file."""
    if path.is_file():
        return [path] if path.suffix.lower() in DOC_EXTENSIONS else []
    return sorted(
        p for p in path.rglob("*")
        if p.is_file() and p.suffix.lower() in DOC_EXTENSIONS and not p.name.startswith(".")
    )
