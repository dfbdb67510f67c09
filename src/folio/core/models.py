"""Data models for the parse, schedule, and render pipeline"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from folio.core.errors import BuildError


class Document(BaseModel):
    """A source document: validated front matter plus raw body. Immutable once loaded."""
    model_config = ConfigDict(frozen=True)

    path:       str
    title:      str = Field(..., min_length=1)
    subtitle:   Optional[str] = None
    layout:     str = Field(..., min_length=1)
    date:       datetime            # naive local wall-clock time
    timezone:   str
    background: Optional[str] = None
    body:       str = Field(..., min_length=1)
    extra:      dict[str, Any] = {}  # unrecognized front matter keys, kept as-is


@dataclass(frozen=True)
class Layout:
    """A named template with an optional parent layout."""
    name:     str
    template: str
    parent:   Optional[str] = None
    path:     Optional[Path] = None


@dataclass(frozen=True)
class CodeBlock:
    """A fenced code region found in a document body; never persisted."""
    language: Optional[str]
    code:     str


@dataclass(frozen=True)
class ScheduledDocument:
    """Per-document stage output: transformed body plus publish metadata."""
    document:    Document
    body_html:   str
    published:   datetime           # UTC
    local_date:  datetime           # aware, in the document's timezone
    slug:        str

    @property
    def path(self) -> str:
        return self.document.path

    @property
    def output_name(self) -> str:
        return f"{self.slug}.html"

    @property
    def url(self) -> str:
        return f"/{self.output_name}"

    @property
    def sort_key(self) -> tuple[float, str]:
        """Most recent first, then source path ascending."""
        return (-self.published.timestamp(), self.document.path)


@dataclass(frozen=True)
class RenderedPage:
    """A final page owned by the site assembler."""
    source:      str
    output_path: str                # relative to the output directory
    html:        bytes
    published:   Optional[datetime]
    sort_key:    tuple


@dataclass
class BuildResult:
    """Everything a build produced: ordered pages, the index, and collected errors."""
    pages:  list[RenderedPage] = field(default_factory=list)
    index:  Optional[RenderedPage] = None
    errors: list[BuildError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def all_pages(self) -> list[RenderedPage]:
        return self.pages + ([self.index] if self.index else [])
