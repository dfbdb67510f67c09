"""Build error taxonomy: every failure is a non-retryable data-correctness error"""

from pathlib import Path
from typing import Optional, Sequence


class BuildError(ValueError):
    """A build-time failure attributable to one source document or layout."""

    def __init__(self, message: str, source: Optional[str | Path] = None):
        super().__init__(message)
        self.message = message
        self.source = str(source) if source is not None else None

    def with_source(self, source: str | Path) -> "BuildError":
        """Attach the offending path if the raiser did not know it."""
        if self.source is None:
            self.source = str(source)
        return self

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message


class MalformedFrontMatter(BuildError):
    """Front matter is unterminated, unparseable, or lacks a required key."""


class EmptyDocument(BuildError):
    """A document has front matter but no body."""


class UnknownLayout(BuildError):
    """A document or layout names a layout that does not exist."""


class LayoutChainTooDeep(BuildError):
    """A layout's parent chain is longer than max_layout_chain_depth."""


class LayoutCycle(BuildError):
    """A layout's parent chain loops back on itself."""


class MissingSlot(BuildError):
    """A layout template never references the content slot."""


class MalformedLayout(BuildError):
    """A layout template is not valid template syntax."""


class UnknownTimezone(BuildError):
    """A timezone name does not resolve to a known IANA zone."""


class UnknownLanguage(BuildError):
    """A code block names a language no highlighter knows (strict mode only)."""


class PermalinkCollision(BuildError):
    """Two distinct documents compute the same permalink slug."""

    def __init__(self, slug: str, first: str | Path, second: str | Path):
        super().__init__(f"permalink '{slug}' is also claimed by {first}", source=second)
        self.slug = slug
        self.sources = (str(first), str(second))


class BuildFailed(RuntimeError):
    """Aggregate of build errors that abort the whole build."""

    def __init__(self, errors: Sequence[BuildError]):
        self.errors = list(errors)
        lines = "\n".join(f"  {e}" for e in self.errors)
        super().__init__(f"Build failed with {len(self.errors)} error(s):\n{lines}")
